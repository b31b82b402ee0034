"""
Provider records held by the registry.

A :class:`Provider` is a closed, immutable record: one per ``(service, name)``
pair. Limits and priority are fixed for the lifetime of the record; a
configuration change builds a new record and the registry swaps it in
atomically. ``credential`` is excluded from ``repr`` so a record can be
logged or printed without leaking the secret.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional


class Service(str, Enum):
    """Coarse capability exposed to callers."""

    CHAT = "chat"
    WEATHER = "weather"
    RATES = "rates"


SERVICE_OPERATIONS: Dict[Service, FrozenSet[str]] = {
    Service.CHAT: frozenset({"completion"}),
    Service.WEATHER: frozenset({"current", "forecast"}),
    Service.RATES: frozenset({"pair", "latest"}),
}


def coerce_service(value: "Service | str") -> Service:
    """Return ``value`` as a :class:`Service`, raising ``ValueError`` if unknown."""
    if isinstance(value, Service):
        return value
    return Service(str(value).strip().lower())


@dataclass(frozen=True)
class RateLimit:
    """Sliding-window admission limit: ``max_requests`` per ``window_ms``."""

    max_requests: int
    window_ms: int


@dataclass(frozen=True)
class Provider:
    """Typed upstream provider record.

    Attributes:
        service: Service this record serves.
        name: Stable identifier; limiter and breaker state are keyed by it.
        base_endpoint: Base URL handed to the executor.
        credential: Opaque secret, never logged.
        priority: Higher is preferred.
        enabled: Disabled providers are never returned by ``lookup``.
        limit: Sliding-window admission limit.
        timeout_ms: Per-attempt budget in milliseconds.
        capabilities: Operation names this provider implements.
        health_probe: Optional URL that answers 2xx when the provider is up.
        dialect: Wire format understood by the executor and normalizer;
            defaults to ``name``.
    """

    service: Service
    name: str
    base_endpoint: str
    limit: RateLimit
    capabilities: FrozenSet[str]
    priority: int = 0
    enabled: bool = True
    timeout_ms: int = 10_000
    credential: Optional[str] = field(default=None, repr=False)
    health_probe: Optional[str] = None
    dialect: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "service", coerce_service(self.service))
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))
        if not self.dialect:
            object.__setattr__(self, "dialect", self.name)

    @property
    def key(self) -> tuple:
        return (self.service, self.name)

    def supports(self, operation: str) -> bool:
        return operation in self.capabilities

    def with_enabled(self, enabled: bool) -> "Provider":
        return replace(self, enabled=enabled)

    def validation_errors(self) -> list[str]:
        """Return human-readable reasons this record is invalid (empty if valid)."""
        errors: list[str] = []
        if not self.name or not self.name.strip():
            errors.append("name must be non-empty")
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            errors.append(f"priority must be a finite integer, got {self.priority!r}")
        if self.limit.window_ms <= 0:
            errors.append(f"limit.window_ms must be > 0, got {self.limit.window_ms}")
        if self.limit.max_requests <= 0:
            errors.append(f"limit.max_requests must be > 0, got {self.limit.max_requests}")
        if self.timeout_ms <= 0:
            errors.append(f"timeout_ms must be > 0, got {self.timeout_ms}")
        if not self.capabilities:
            errors.append("capabilities must not be empty")
        else:
            unknown = self.capabilities - SERVICE_OPERATIONS.get(self.service, frozenset())
            if unknown:
                errors.append(f"unknown operations for {self.service.value}: {sorted(unknown)}")
        return errors

    def describe(self) -> Dict[str, Any]:
        """Loggable summary without the credential."""
        return {
            "service": self.service.value,
            "name": self.name,
            "dialect": self.dialect,
            "priority": self.priority,
            "enabled": self.enabled,
            "has_credential": bool(self.credential),
        }


def make_provider(
    service: "Service | str",
    name: str,
    base_endpoint: str,
    *,
    capabilities: Iterable[str],
    max_requests: int = 60,
    window_ms: int = 60_000,
    **kwargs: Any,
) -> Provider:
    """Convenience constructor used by configuration loading and tests."""
    return Provider(
        service=coerce_service(service),
        name=name,
        base_endpoint=base_endpoint,
        limit=RateLimit(max_requests=max_requests, window_ms=window_ms),
        capabilities=frozenset(capabilities),
        **kwargs,
    )


__all__ = ["Service", "SERVICE_OPERATIONS", "coerce_service", "RateLimit", "Provider", "make_provider"]
