"""Provider counters snapshot dataclass.

Immutable snapshot of per-provider dispatch counters, designed for
serialization and logging.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict

from .latency_stats_snapshot import LatencyStatsSnapshot


@dataclass(frozen=True)
class ProviderCountersSnapshot:
    """Point-in-time view of one provider's counters.

    ``skipped`` counts candidates passed over by the limiter or breaker
    without an executor call, keyed by skip reason.
    """

    provider: str
    attempts: int
    success: int
    failure: int
    cancelled: int
    in_flight: int
    failure_by_classification: Dict[str, int]
    skipped: Dict[str, int]
    latency: LatencyStatsSnapshot

    def to_dict(self) -> Dict[str, Any]:
        """Return a dictionary representation suitable for JSON serialization."""
        return asdict(self)


__all__ = ["ProviderCountersSnapshot"]
