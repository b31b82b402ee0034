"""Typed gateway settings.

Pydantic models for the configuration document read at startup. Field names
are snake_case in Python; the camelCase spellings used in configuration
files (``baseEndpoint``, ``timeoutMillis`` ...) are accepted as aliases.

Example (YAML)::

    providers:
      - service: weather
        name: weatherapi
        baseEndpoint: https://api.weatherapi.com/v1
        credential: ${WEATHERAPI_KEY}
        priority: 2
        limit: {maxRequests: 60, windowMillis: 60000}
        timeoutMillis: 8000
        capabilities: [current, forecast]
    cache:
      rootPath: ~/.assist_gateway/cache
      ttlMillis: {weather.current: 900000}
    defaults:
      openThreshold: 5
      openCooldownMillis: 60000
      globalRequestBudgetMillis: 120000
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..base.models import SERVICE_OPERATIONS, Provider, Service, coerce_service, make_provider
from .defaults import (
    DEFAULT_CACHE_MAX_BYTES,
    DEFAULT_CACHE_ROOT,
    DEFAULT_CACHE_SWEEP_INTERVAL_MS,
    DEFAULT_CONNECTIVITY_INTERVAL_MS,
    DEFAULT_CONNECTIVITY_PROBE_TIMEOUT_MS,
    DEFAULT_CONNECTIVITY_PROBE_URL,
    DEFAULT_GLOBAL_REQUEST_BUDGET_MS,
    DEFAULT_LIMIT_MAX_REQUESTS,
    DEFAULT_LIMIT_WINDOW_MS,
    DEFAULT_OPEN_COOLDOWN_MS,
    DEFAULT_OPEN_THRESHOLD,
    DEFAULT_PROVIDER_TIMEOUT_MS,
    DEFAULT_PROVIDERS,
)
from .env import is_placeholder, resolve_credential


class _Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class LimitSettings(_Settings):
    max_requests: int = Field(DEFAULT_LIMIT_MAX_REQUESTS, alias="maxRequests", gt=0)
    window_ms: int = Field(DEFAULT_LIMIT_WINDOW_MS, alias="windowMillis", gt=0)


class ProviderSettings(_Settings):
    """One entry of ``providers``.

    ``capabilities`` defaults to every operation of the service. A provider
    marked ``requiresCredential`` (the default) without a usable credential,
    either configured or found in the environment, is built disabled.
    """

    service: Service
    name: str = Field(min_length=1)
    base_endpoint: str = Field(alias="baseEndpoint", min_length=1)
    credential: Optional[str] = Field(default=None, repr=False)
    priority: int = 0
    enabled: bool = True
    limit: LimitSettings = Field(default_factory=LimitSettings)
    timeout_ms: int = Field(DEFAULT_PROVIDER_TIMEOUT_MS, alias="timeoutMillis", gt=0)
    capabilities: Optional[List[str]] = None
    health_probe: Optional[str] = Field(default=None, alias="healthProbe")
    dialect: Optional[str] = None
    requires_credential: bool = Field(True, alias="requiresCredential")

    @field_validator("service", mode="before")
    @classmethod
    def _service(cls, value: Any) -> Service:
        return coerce_service(value)

    def resolved_credential(self) -> Optional[str]:
        if self.credential and not is_placeholder(self.credential):
            return self.credential
        # keyless providers only read their own variable, never their dialect's
        names = (self.name, self.dialect or self.name) if self.requires_credential else (self.name,)
        value, _var = resolve_credential(*names)
        return value

    def to_provider(self) -> Provider:
        credential = self.resolved_credential()
        enabled = self.enabled and (credential is not None or not self.requires_credential)
        capabilities = self.capabilities if self.capabilities is not None else sorted(SERVICE_OPERATIONS[self.service])
        return make_provider(
            self.service,
            self.name,
            self.base_endpoint,
            capabilities=capabilities,
            max_requests=self.limit.max_requests,
            window_ms=self.limit.window_ms,
            credential=credential,
            priority=self.priority,
            enabled=enabled,
            timeout_ms=self.timeout_ms,
            health_probe=self.health_probe,
            dialect=self.dialect or "",
        )


class CacheSettings(_Settings):
    root_path: Optional[str] = Field(DEFAULT_CACHE_ROOT, alias="rootPath")
    max_bytes: int = Field(DEFAULT_CACHE_MAX_BYTES, alias="maxBytes", gt=0)
    sweep_interval_ms: int = Field(DEFAULT_CACHE_SWEEP_INTERVAL_MS, alias="sweepIntervalMillis", gt=0)
    ttl_ms: Dict[str, int] = Field(default_factory=dict, alias="ttlMillis")

    @field_validator("ttl_ms")
    @classmethod
    def _known_operations(cls, value: Dict[str, int]) -> Dict[str, int]:
        for key, ttl in value.items():
            service, _, operation = key.partition(".")
            try:
                svc = coerce_service(service)
            except ValueError as exc:
                raise ValueError(f"unknown service in ttlMillis key {key!r}") from exc
            if operation not in SERVICE_OPERATIONS[svc]:
                raise ValueError(f"unknown operation in ttlMillis key {key!r}")
            if ttl < 0:
                raise ValueError(f"ttlMillis for {key!r} must be >= 0")
        return value


class DefaultsSettings(_Settings):
    open_threshold: int = Field(DEFAULT_OPEN_THRESHOLD, alias="openThreshold", ge=1)
    open_cooldown_ms: int = Field(DEFAULT_OPEN_COOLDOWN_MS, alias="openCooldownMillis", gt=0)
    global_request_budget_ms: Optional[int] = Field(
        DEFAULT_GLOBAL_REQUEST_BUDGET_MS, alias="globalRequestBudgetMillis", gt=0
    )


class FallbackSettings(_Settings):
    static_rates: Optional[Dict[str, float]] = Field(default=None, alias="staticRates")
    static_rates_as_of_ms: Optional[int] = Field(default=None, alias="staticRatesAsOfMillis")
    chains: Dict[str, List[str]] = Field(default_factory=dict)


class ConnectivitySettings(_Settings):
    probe_url: Optional[str] = Field(DEFAULT_CONNECTIVITY_PROBE_URL, alias="probeUrl")
    probe_timeout_ms: int = Field(DEFAULT_CONNECTIVITY_PROBE_TIMEOUT_MS, alias="probeTimeoutMillis", gt=0)
    interval_ms: int = Field(DEFAULT_CONNECTIVITY_INTERVAL_MS, alias="intervalMillis", gt=0)


class GatewaySettings(_Settings):
    """Root configuration document."""

    providers: List[ProviderSettings] = Field(
        default_factory=lambda: [ProviderSettings.model_validate(p) for p in DEFAULT_PROVIDERS]
    )
    cache: CacheSettings = Field(default_factory=CacheSettings)
    defaults: DefaultsSettings = Field(default_factory=DefaultsSettings)
    fallback: FallbackSettings = Field(default_factory=FallbackSettings)
    connectivity: ConnectivitySettings = Field(default_factory=ConnectivitySettings)
    breaker_snapshot_path: Optional[str] = Field(default=None, alias="breakerSnapshotPath")

    def build_providers(self) -> List[Provider]:
        return [p.to_provider() for p in self.providers]


__all__ = [
    "GatewaySettings",
    "ProviderSettings",
    "LimitSettings",
    "CacheSettings",
    "DefaultsSettings",
    "FallbackSettings",
    "ConnectivitySettings",
]
