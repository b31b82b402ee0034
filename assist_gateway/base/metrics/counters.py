"""Gateway statistics counters.

Re-exports the implementations from ``metrics/counters_parts`` so callers
have a single import path.
"""

from .counters_parts import (
    GatewayCounters,
    GatewayStatistics,
    LatencyStatsSnapshot,
    ProviderCounters,
    ProviderCountersSnapshot,
)

__all__ = [
    "GatewayCounters",
    "GatewayStatistics",
    "LatencyStatsSnapshot",
    "ProviderCounters",
    "ProviderCountersSnapshot",
]
