"""Shared HTTP client pool for provider executors.

Purpose:
    Provide a thread-safe pool of reusable ``httpx.Client`` instances so the
    executor does not allocate a client per attempt. Per-request timeouts are
    always passed explicitly by the caller; the pool-level timeout only bounds
    requests that forget to.

Lifecycle & cleanup:
    - Clients are cached by ``(base_url, purpose)``. Purposes keep distinct
      pools (e.g., "execute" vs "probe").
    - All clients are closed at interpreter exit via ``atexit``. Tests and
      ``Gateway.close`` may call :func:`close_all_clients` explicitly.
"""

from __future__ import annotations

import atexit
import threading
from contextlib import suppress
from typing import Dict, Optional, Tuple

import httpx

from ..timeouts import get_timeout_policy

_CLIENTS: Dict[Tuple[Optional[str], str], httpx.Client] = {}
_LOCK = threading.RLock()


def get_httpx_client(base_url: Optional[str], purpose: str) -> httpx.Client:
    """Return a pooled ``httpx.Client`` for the given base URL and purpose.

    Parameters:
        base_url: Optional base URL set on the client so callers can issue
            relative requests. ``None`` groups clients under a shared key.
        purpose: Short stable string discriminating separate pools.

    Thread-safety:
        Safe for concurrent use; per-key creation is guarded by a re-entrant
        lock with a double-checked read.
    """
    key = (base_url, purpose)
    client = _CLIENTS.get(key)
    if client is not None and not client.is_closed:
        return client

    with _LOCK:
        client = _CLIENTS.get(key)
        if client is not None and not client.is_closed:
            return client
        timeout = get_timeout_policy().default_provider_seconds
        if base_url:
            client = httpx.Client(base_url=base_url, timeout=timeout)
        else:
            client = httpx.Client(timeout=timeout)
        _CLIENTS[key] = client
        return client


def close_all_clients() -> None:
    """Close and clear all pooled HTTP clients."""
    with _LOCK:
        for client in _CLIENTS.values():
            # nosec B110 - teardown of a pool that is being discarded anyway
            with suppress(Exception):
                client.close()
        _CLIENTS.clear()


def _cleanup_at_exit() -> None:
    close_all_clients()


atexit.register(_cleanup_at_exit)

__all__ = ["get_httpx_client", "close_all_clients"]
