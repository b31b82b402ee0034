"""Thread-safe in-memory counters for a single provider's attempts."""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, Optional

from .latency_stats_snapshot import LatencyStatsSnapshot
from .provider_counters_snapshot import ProviderCountersSnapshot


class ProviderCounters:
    """Attempt lifecycle counters for one provider.

    Every executor call is bracketed by :meth:`record_start` and exactly one of
    :meth:`record_success`, :meth:`record_failure` or :meth:`record_cancelled`.
    Skips are recorded separately and never touch ``in_flight``.
    """

    __slots__ = (
        "_provider",
        "_lock",
        "_attempts",
        "_success",
        "_failure",
        "_cancelled",
        "_in_flight",
        "_failure_by_classification",
        "_skipped",
        "_latency_count",
        "_latency_total",
        "_latency_min",
        "_latency_max",
    )

    def __init__(self, provider: str):
        self._provider = provider
        self._lock = RLock()
        self._attempts = 0
        self._success = 0
        self._failure = 0
        self._cancelled = 0
        self._in_flight = 0
        self._failure_by_classification: Dict[str, int] = {}
        self._skipped: Dict[str, int] = {}
        self._latency_count = 0
        self._latency_total = 0
        self._latency_min: Optional[int] = None
        self._latency_max: Optional[int] = None

    def record_start(self) -> None:
        with self._lock:
            self._attempts += 1
            self._in_flight += 1

    def record_success(self, latency_ms: Optional[int] = None) -> None:
        with self._lock:
            self._success += 1
            self._in_flight = max(0, self._in_flight - 1)
            if latency_ms is not None:
                self._update_latency(latency_ms)

    def record_failure(self, classification: str, latency_ms: Optional[int] = None) -> None:
        """Record a failed attempt under its classification value."""
        with self._lock:
            self._failure += 1
            self._failure_by_classification[classification] = (
                self._failure_by_classification.get(classification, 0) + 1
            )
            self._in_flight = max(0, self._in_flight - 1)
            if latency_ms is not None:
                self._update_latency(latency_ms)

    def record_cancelled(self) -> None:
        with self._lock:
            self._cancelled += 1
            self._in_flight = max(0, self._in_flight - 1)

    def record_skip(self, reason: str) -> None:
        with self._lock:
            self._skipped[reason] = self._skipped.get(reason, 0) + 1

    def _update_latency(self, latency_ms: int) -> None:
        latency_ms = max(0, int(latency_ms))
        self._latency_count += 1
        self._latency_total += latency_ms
        if self._latency_min is None or latency_ms < self._latency_min:
            self._latency_min = latency_ms
        if self._latency_max is None or latency_ms > self._latency_max:
            self._latency_max = latency_ms

    def snapshot(self) -> ProviderCountersSnapshot:
        with self._lock:
            avg_ms = self._latency_total / self._latency_count if self._latency_count else None
            return ProviderCountersSnapshot(
                provider=self._provider,
                attempts=self._attempts,
                success=self._success,
                failure=self._failure,
                cancelled=self._cancelled,
                in_flight=self._in_flight,
                failure_by_classification=dict(self._failure_by_classification),
                skipped=dict(self._skipped),
                latency=LatencyStatsSnapshot(
                    count=self._latency_count,
                    total_ms=self._latency_total,
                    min_ms=self._latency_min,
                    max_ms=self._latency_max,
                    avg_ms=avg_ms,
                ),
            )

    def as_dict(self) -> Dict[str, Any]:
        return self.snapshot().to_dict()


__all__ = ["ProviderCounters"]
