"""Gateway metrics package.

Exports request counters and their immutable snapshots.
"""

from .counters import (
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
