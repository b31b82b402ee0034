"""Namespaced TTL cache of canonical results.

Purpose
-------
Holds normalized results keyed by request fingerprint, one namespace per
service. The backing :class:`~.stores.CacheStore` is authoritative; this class
keeps a size index over it so eviction and statistics do not rescan the disk.

Contracts
---------
- ``get`` distinguishes a fresh ``HIT``, a ``MISS`` and an ``EXPIRED`` entry.
  Expired entries are returned with their payload and are not removed on
  read; the fallback chain may still serve them as stale.
- ``put`` is best-effort: a store failure is logged as ``cache.put.failed``
  and the request carries on.
- When the indexed total exceeds ``max_bytes`` the oldest entries (by
  ``created_at_ms``) are evicted until the total is at most 80% of the bound.
- ``sweep`` removes entries strictly past expiry and unreadable files. It
  runs on ``open`` and then at most once per ``sweep_interval_ms`` through
  ``sweep_if_due``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, TypeVar

from ..cancellation import CancellationToken
from ..clock import Clock
from ..logging import get_logger, log_event
from .entry import CacheEntry
from .keys import sanitize
from .single_flight import SingleFlight
from .stores import CacheStore

T = TypeVar("T")

DEFAULT_MAX_BYTES = 100 * 1024 * 1024
DEFAULT_SWEEP_INTERVAL_MS = 3_600_000
EVICTION_TARGET_FRACTION = 0.8


class CacheStatus(str, Enum):
    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CacheLookup:
    """Result of :meth:`ResponseCache.get`; ``entry`` is ``None`` on a miss."""

    status: CacheStatus
    entry: Optional[CacheEntry] = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT

    @property
    def expired(self) -> bool:
        return self.status is CacheStatus.EXPIRED


@dataclass(frozen=True)
class SweepReport:
    expired_removed: int = 0
    corrupted_removed: int = 0
    bytes_freed: int = 0
    failures: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "expired_removed": self.expired_removed,
            "corrupted_removed": self.corrupted_removed,
            "bytes_freed": self.bytes_freed,
            "failures": self.failures,
        }


@dataclass(frozen=True)
class CacheStats:
    entries: int
    bytes: int
    max_bytes: int
    expired: int
    namespaces: Dict[str, int] = field(default_factory=dict)
    evictions: int = 0
    put_failures: int = 0
    last_sweep_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": self.entries,
            "bytes": self.bytes,
            "max_bytes": self.max_bytes,
            "expired": self.expired,
            "namespaces": dict(self.namespaces),
            "evictions": self.evictions,
            "put_failures": self.put_failures,
            "last_sweep_ms": self.last_sweep_ms,
        }


@dataclass(frozen=True)
class _Indexed:
    created_at_ms: int
    expires_at_ms: int
    size_bytes: int


class ResponseCache:
    """TTL cache over a :class:`CacheStore` with size-bounded eviction.

    Parameters
    ----------
    store: CacheStore
        Backing store (``DiskCacheStore`` in production, ``MemoryCacheStore``
        in tests).
    clock: Clock
        Source of ``now_ms`` for entry timestamps and expiry checks.
    max_bytes: int
        Upper bound for the indexed total; eviction brings it down to 80%.
    sweep_interval_ms: int
        Minimum spacing between scheduled sweeps.
    """

    def __init__(
        self,
        store: CacheStore,
        clock: Clock,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        sweep_interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self.store = store
        self.clock = clock
        self.max_bytes = int(max_bytes)
        self.sweep_interval_ms = int(sweep_interval_ms)
        self._logger = logger or get_logger("cache")
        self._lock = Lock()
        self._index: Dict[Tuple[str, str], _Indexed] = {}
        self._total_bytes = 0
        self._evictions = 0
        self._put_failures = 0
        self._last_sweep_ms: Optional[int] = None
        self._flights = SingleFlight()

    # ------------------------------------------------------------------ lifecycle
    def open(self) -> SweepReport:
        """Drop temp files left by interrupted writes, then run the startup sweep.

        Temp files are only cleared here, before any writer of this process
        has started.
        """
        removed = self.store.remove_stale_temp_files()
        if removed:
            log_event(self._logger, "cache.temp_files.removed", level=logging.WARNING, removed=removed)
        return self.sweep()

    # ------------------------------------------------------------------ reads
    def get(self, namespace: str, fingerprint: str) -> CacheLookup:
        entry = self.store.read(namespace, fingerprint)
        if entry is None:
            return CacheLookup(CacheStatus.MISS)
        if entry.is_expired(self.clock.now_ms()):
            return CacheLookup(CacheStatus.EXPIRED, entry)
        return CacheLookup(CacheStatus.HIT, entry)

    # ------------------------------------------------------------------ writes
    def put(self, namespace: str, entry: CacheEntry) -> bool:
        """Write ``entry`` through to the store; return ``False`` if it was not stored."""
        if entry.namespace != namespace:
            raise ValueError(f"entry namespace {entry.namespace!r} does not match {namespace!r}")
        try:
            size = self.store.write(entry)
        except OSError as exc:
            with self._lock:
                self._put_failures += 1
            log_event(
                self._logger,
                "cache.put.failed",
                level=logging.WARNING,
                namespace=namespace,
                fingerprint=entry.fingerprint,
                error=str(exc),
            )
            return False
        key = (namespace, sanitize(entry.fingerprint))
        with self._lock:
            previous = self._index.get(key)
            if previous is not None:
                self._total_bytes -= previous.size_bytes
            self._index[key] = _Indexed(entry.created_at_ms, entry.expires_at_ms, size)
            self._total_bytes += size
            over = self._total_bytes > self.max_bytes
        if over:
            self._evict()
        return True

    def store_result(
        self,
        namespace: str,
        fingerprint: str,
        payload: Mapping[str, Any],
        ttl_ms: int,
        *,
        source_provider: Optional[str] = None,
    ) -> Optional[CacheEntry]:
        """Build an entry expiring ``ttl_ms`` from now and ``put`` it.

        A non-positive TTL means "do not cache" and stores nothing.
        """
        if ttl_ms <= 0:
            return None
        now = self.clock.now_ms()
        entry = CacheEntry(
            fingerprint=fingerprint,
            namespace=namespace,
            payload=dict(payload),
            created_at_ms=now,
            expires_at_ms=now + int(ttl_ms),
            source_provider=source_provider,
        ).with_size()
        return entry if self.put(namespace, entry) else None

    def _evict(self) -> None:
        target = int(self.max_bytes * EVICTION_TARGET_FRACTION)
        with self._lock:
            ordered = sorted(self._index.items(), key=lambda item: (item[1].created_at_ms, item[0]))
        removed = 0
        freed = 0
        for (namespace, key), indexed in ordered:
            with self._lock:
                if self._total_bytes <= target:
                    break
            try:
                self.store.delete_key(namespace, key)
            except OSError as exc:
                log_event(self._logger, "cache.evict.failed", level=logging.WARNING, namespace=namespace, key=key, error=str(exc))
                continue
            with self._lock:
                if self._index.pop((namespace, key), None) is not None:
                    self._total_bytes -= indexed.size_bytes
                    self._evictions += 1
            removed += 1
            freed += indexed.size_bytes
        if removed:
            log_event(self._logger, "cache.evict", removed=removed, bytes_freed=freed, target_bytes=target)

    def invalidate(self, namespace: str, fingerprint: Optional[str] = None) -> int:
        """Remove one entry, or the whole namespace when ``fingerprint`` is omitted."""
        if fingerprint is not None:
            removed = 1 if self.store.delete(namespace, fingerprint) else 0
            with self._lock:
                indexed = self._index.pop((namespace, sanitize(fingerprint)), None)
                if indexed is not None:
                    self._total_bytes -= indexed.size_bytes
        else:
            removed = self.store.delete_namespace(namespace)
            with self._lock:
                for key in [k for k in self._index if k[0] == namespace]:
                    self._total_bytes -= self._index.pop(key).size_bytes
        log_event(self._logger, "cache.invalidate", level=logging.DEBUG, namespace=namespace, fingerprint=fingerprint, removed=removed)
        return removed

    # ------------------------------------------------------------------ maintenance
    def sweep(self) -> SweepReport:
        """Remove expired and unreadable entries and rebuild the size index."""
        now = self.clock.now_ms()
        index: Dict[Tuple[str, str], _Indexed] = {}
        expired = corrupted = freed = failures = 0
        for item in self.store.scan():
            entry = item.entry
            if entry is not None and not entry.is_expired(now):
                index[(item.namespace, item.key)] = _Indexed(entry.created_at_ms, entry.expires_at_ms, item.size_bytes)
                continue
            try:
                self.store.delete_key(item.namespace, item.key)
            except OSError as exc:
                failures += 1
                log_event(self._logger, "cache.sweep.failed", level=logging.WARNING, namespace=item.namespace, key=item.key, error=str(exc))
                continue
            freed += item.size_bytes
            if entry is None:
                corrupted += 1
            else:
                expired += 1
        with self._lock:
            self._index = index
            self._total_bytes = sum(v.size_bytes for v in index.values())
            self._last_sweep_ms = now
        report = SweepReport(expired_removed=expired, corrupted_removed=corrupted, bytes_freed=freed, failures=failures)
        log_event(self._logger, "cache.sweep", **report.to_dict())
        return report

    def sweep_if_due(self) -> Optional[SweepReport]:
        with self._lock:
            last = self._last_sweep_ms
        if last is not None and self.clock.now_ms() - last < self.sweep_interval_ms:
            return None
        return self.sweep()

    # ------------------------------------------------------------------ coordination
    def single_flight(
        self,
        namespace: str,
        fingerprint: str,
        build: Callable[[], T],
        token: Optional[CancellationToken] = None,
    ) -> Tuple[T, bool]:
        """Run ``build`` once per concurrent ``(namespace, fingerprint)``.

        Returns ``(value, shared)`` where ``shared`` is ``True`` for callers
        that waited on another caller's build.
        """
        return self._flights.run((namespace, fingerprint), build, token)

    def in_flight(self) -> int:
        return len(self._flights)

    # ------------------------------------------------------------------ introspection
    def stats(self) -> CacheStats:
        now = self.clock.now_ms()
        with self._lock:
            namespaces: Dict[str, int] = {}
            expired = 0
            for (namespace, _key), indexed in self._index.items():
                namespaces[namespace] = namespaces.get(namespace, 0) + 1
                if now > indexed.expires_at_ms:
                    expired += 1
            return CacheStats(
                entries=len(self._index),
                bytes=self._total_bytes,
                max_bytes=self.max_bytes,
                expired=expired,
                namespaces=namespaces,
                evictions=self._evictions,
                put_failures=self._put_failures,
                last_sweep_ms=self._last_sweep_ms,
            )


__all__ = [
    "ResponseCache",
    "CacheLookup",
    "CacheStatus",
    "CacheStats",
    "SweepReport",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_SWEEP_INTERVAL_MS",
]
