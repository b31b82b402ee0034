"""Advisory online/offline signal.

The monitor is fed two ways: an active reachability probe (a short ``GET``
against ``probe_url``; any HTTP response counts as reachable) and passive
observations from the dispatcher (a request whose every attempt was
unreachable reports offline, any live success reports online).

The signal never gates a live request. Callers read :attr:`is_online` to
decide whether to show an offline banner.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, Optional

import httpx

from ..clock import Clock
from ..http import get_httpx_client
from ..logging import get_logger, log_event
from ..timeouts import get_timeout_policy, httpx_timeout

DEFAULT_PROBE_INTERVAL_MS = 60_000


@dataclass(frozen=True)
class ConnectivityStatus:
    online: bool
    known: bool
    changed_at_ms: Optional[int]
    last_probe_ms: Optional[int]
    source: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "online": self.online,
            "known": self.known,
            "changed_at_ms": self.changed_at_ms,
            "last_probe_ms": self.last_probe_ms,
            "source": self.source,
        }


class ConnectivityMonitor:
    """Tracks the coarse reachability of the outside world.

    Parameters
    ----------
    clock:
        Timestamps for changes and probe scheduling.
    probe_url:
        Target for :meth:`probe`; ``None`` disables active probing.
    probe_timeout_ms:
        Timeout for one probe; defaults to the policy's probe timeout.
    interval_ms:
        Minimum spacing between probes issued by :meth:`probe_if_due`.
    client:
        Optional ``httpx.Client``; defaults to the shared pool.
    """

    def __init__(
        self,
        clock: Clock,
        *,
        probe_url: Optional[str] = None,
        probe_timeout_ms: Optional[int] = None,
        interval_ms: int = DEFAULT_PROBE_INTERVAL_MS,
        client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._clock = clock
        self.probe_url = probe_url
        self.probe_timeout_ms = probe_timeout_ms or int(get_timeout_policy().probe_seconds * 1000)
        self.interval_ms = interval_ms
        self._client = client
        self._logger = logger or get_logger("connectivity")
        self._lock = Lock()
        self._online: Optional[bool] = None
        self._changed_at: Optional[int] = None
        self._last_probe: Optional[int] = None
        self._source: Optional[str] = None

    @property
    def is_online(self) -> bool:
        """``True`` until an observation says otherwise."""
        with self._lock:
            return self._online is not False

    def status(self) -> ConnectivityStatus:
        with self._lock:
            return ConnectivityStatus(
                online=self._online is not False,
                known=self._online is not None,
                changed_at_ms=self._changed_at,
                last_probe_ms=self._last_probe,
                source=self._source,
            )

    def record(self, online: bool, source: str = "passive") -> None:
        now = self._clock.now_ms()
        with self._lock:
            previous = self._online
            self._online = online
            self._source = source
            changed = previous is not None and previous != online
            if previous != online:
                self._changed_at = now
        if changed:
            log_event(
                self._logger,
                "connectivity.changed",
                level=logging.WARNING if not online else logging.INFO,
                online=online,
                source=source,
            )

    def probe(self) -> bool:
        """Issue one reachability probe and record its result."""
        if not self.probe_url:
            return self.is_online
        client = self._client or get_httpx_client(None, "probe")
        with self._lock:
            self._last_probe = self._clock.now_ms()
        try:
            client.get(self.probe_url, timeout=httpx_timeout(self.probe_timeout_ms))
        except httpx.HTTPError as exc:
            log_event(self._logger, "connectivity.probe", level=logging.DEBUG, url=self.probe_url, reachable=False, error=type(exc).__name__)
            self.record(False, source="probe")
            return False
        self.record(True, source="probe")
        return True

    def probe_if_due(self) -> Optional[bool]:
        if not self.probe_url:
            return None
        with self._lock:
            last = self._last_probe
        if last is not None and self._clock.now_ms() - last < self.interval_ms:
            return None
        return self.probe()


__all__ = ["ConnectivityMonitor", "ConnectivityStatus", "DEFAULT_PROBE_INTERVAL_MS"]
