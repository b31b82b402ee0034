"""One-class-per-file parts for gateway and provider counters."""

from .gateway_counters import GatewayCounters, GatewayStatistics
from .latency_stats_snapshot import LatencyStatsSnapshot
from .provider_counters import ProviderCounters
from .provider_counters_snapshot import ProviderCountersSnapshot

__all__ = [
    "GatewayCounters",
    "GatewayStatistics",
    "LatencyStatsSnapshot",
    "ProviderCounters",
    "ProviderCountersSnapshot",
]
