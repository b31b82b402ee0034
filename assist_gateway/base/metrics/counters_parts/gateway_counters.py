"""Gateway-wide request counters and the aggregate statistics snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from threading import RLock
from typing import Any, Dict

from .provider_counters import ProviderCounters
from .provider_counters_snapshot import ProviderCountersSnapshot

_GATEWAY_FIELDS = (
    "requests",
    "cache_hits",
    "cache_misses",
    "stale_served",
    "static_served",
    "coalesced",
    "exhausted",
    "caller_errors",
    "cancelled",
)


@dataclass(frozen=True)
class GatewayStatistics:
    """Immutable result of ``Gateway.statistics()``."""

    gateway: Dict[str, int]
    providers: Dict[str, ProviderCountersSnapshot] = field(default_factory=dict)
    cache: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GatewayCounters:
    """Registry of gateway-level counters plus lazily created provider counters."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._values: Dict[str, int] = dict.fromkeys(_GATEWAY_FIELDS, 0)
        self._providers: Dict[str, ProviderCounters] = {}

    def incr(self, name: str, amount: int = 1) -> None:
        if name not in self._values:
            raise KeyError(f"unknown gateway counter: {name}")
        with self._lock:
            self._values[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._values[name]

    def provider(self, name: str) -> ProviderCounters:
        """Return (creating on first use) the counters for provider ``name``."""
        with self._lock:
            counters = self._providers.get(name)
            if counters is None:
                counters = ProviderCounters(name)
                self._providers[name] = counters
            return counters

    def snapshot(self, cache: Dict[str, Any] | None = None) -> GatewayStatistics:
        with self._lock:
            values = dict(self._values)
            providers = dict(self._providers)
        return GatewayStatistics(
            gateway=values,
            providers={name: c.snapshot() for name, c in sorted(providers.items())},
            cache=dict(cache or {}),
        )


__all__ = ["GatewayCounters", "GatewayStatistics"]
