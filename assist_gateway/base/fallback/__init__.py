"""Offline fallback: strategy chains, static tables and connectivity signal."""

from .connectivity import ConnectivityMonitor, ConnectivityStatus
from .orchestrator import (
    DEFAULT_CHAINS,
    STALE_CACHE,
    STATIC_TABLE,
    STRATEGIES,
    UNAVAILABLE,
    FallbackOrchestrator,
    parse_chains,
)
from .static_tables import (
    DEFAULT_USD_RATES,
    RateLookup,
    StaticRateTable,
    convert_units,
    normalize_unit,
    unit_category,
)

__all__ = [
    "ConnectivityMonitor",
    "ConnectivityStatus",
    "FallbackOrchestrator",
    "DEFAULT_CHAINS",
    "STALE_CACHE",
    "STATIC_TABLE",
    "STRATEGIES",
    "UNAVAILABLE",
    "parse_chains",
    "DEFAULT_USD_RATES",
    "RateLookup",
    "StaticRateTable",
    "convert_units",
    "normalize_unit",
    "unit_category",
]
