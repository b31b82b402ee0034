"""Resilience primitives: circuit breakers and their persisted snapshot."""

from .breaker_snapshot import SCHEMA_VERSION, BreakerSnapshotStore
from .circuit_breaker import (
    DEFAULT_OPEN_COOLDOWN_MS,
    DEFAULT_OPEN_THRESHOLD,
    BreakerSnapshot,
    BreakerState,
    CircuitBreakerRegistry,
)

__all__ = [
    "BreakerSnapshotStore",
    "SCHEMA_VERSION",
    "BreakerSnapshot",
    "BreakerState",
    "CircuitBreakerRegistry",
    "DEFAULT_OPEN_COOLDOWN_MS",
    "DEFAULT_OPEN_THRESHOLD",
]
