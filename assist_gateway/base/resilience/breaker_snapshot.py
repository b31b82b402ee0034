"""Opportunistic on-disk persistence for circuit breaker state.

A restart should not hammer a provider that was known to be failing a moment
ago. The store writes the breaker registry's snapshot as JSON and reads it
back on startup. The file is discarded when its ``schema_version`` or the
``open_threshold`` it was written under differs from the running
configuration.

Failures to read or write are logged and swallowed: the snapshot is an
optimisation, not a source of truth.
"""

from __future__ import annotations

import json
from contextlib import suppress
from pathlib import Path
from typing import Optional, Union

from ..logging import get_logger, log_event
from ..utils import atomic_write_text
from .circuit_breaker import CircuitBreakerRegistry

SCHEMA_VERSION = 1


class BreakerSnapshotStore:
    """Persist and restore a :class:`CircuitBreakerRegistry`."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()
        self._logger = get_logger("assist_gateway.breaker.snapshot")

    def save(self, breakers: CircuitBreakerRegistry) -> bool:
        document = {
            "schema_version": SCHEMA_VERSION,
            "open_threshold": breakers.open_threshold,
            "breakers": breakers.snapshot(),
        }
        try:
            atomic_write_text(self.path, json.dumps(document, sort_keys=True))
        except OSError as exc:
            log_event(self._logger, "breaker.snapshot.write_failed", path=str(self.path), error=str(exc))
            return False
        return True

    def load(self, breakers: CircuitBreakerRegistry) -> int:
        """Restore ``breakers`` from disk; returns how many entries were applied."""
        document = self._read()
        if document is None:
            return 0
        if document.get("schema_version") != SCHEMA_VERSION:
            return self._discard("schema_version", document.get("schema_version"))
        if document.get("open_threshold") != breakers.open_threshold:
            return self._discard("open_threshold", document.get("open_threshold"))
        entries = document.get("breakers")
        if not isinstance(entries, dict):
            return self._discard("breakers", type(entries).__name__)
        applied = breakers.restore(entries)
        log_event(self._logger, "breaker.snapshot.restored", path=str(self.path), applied=applied)
        return applied

    def _read(self) -> Optional[dict]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            log_event(self._logger, "breaker.snapshot.read_failed", path=str(self.path), error=str(exc))
            return None
        try:
            document = json.loads(text)
        except ValueError:
            self._discard("json", None)
            return None
        return document if isinstance(document, dict) else None

    def _discard(self, mismatch: str, found: object) -> int:
        log_event(self._logger, "breaker.snapshot.discarded", path=str(self.path), mismatch=mismatch, found=found)
        with suppress(OSError):
            self.path.unlink()
        return 0


__all__ = ["BreakerSnapshotStore", "SCHEMA_VERSION"]
