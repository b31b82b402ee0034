"""Declarative fallback chains evaluated after every live provider failed.

Each service has an ordered chain of strategy names:

``stale-cache``
    Serve the expired cache entry observed at the start of the request,
    tagged ``Degradation(reason="stale", cached_at_ms=<created_at>)``.
``static-table``
    Compute the answer from compiled-in tables (currency cross rates),
    tagged ``Degradation(reason="static")``.
``unavailable``
    Stop; the dispatcher reports exhaustion with the attempt log.

Strategies that do not apply to an operation are skipped, so a chain that
names ``static-table`` for chat simply falls through.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from ..caching import CacheEntry
from ..clock import Clock, to_datetime
from ..errors import ConfigError
from ..log_support import LogContext
from ..logging import get_logger, log_event
from ..models import (
    Degradation,
    GatewayResponse,
    OperationDescriptor,
    RatesResult,
    Service,
    coerce_service,
    parse_result,
)
from .static_tables import StaticRateTable

STALE_CACHE = "stale-cache"
STATIC_TABLE = "static-table"
UNAVAILABLE = "unavailable"
STRATEGIES = (STALE_CACHE, STATIC_TABLE, UNAVAILABLE)

DEFAULT_CHAINS: Dict[Service, Tuple[str, ...]] = {
    Service.CHAT: (STALE_CACHE, UNAVAILABLE),
    Service.WEATHER: (STALE_CACHE, UNAVAILABLE),
    Service.RATES: (STALE_CACHE, STATIC_TABLE, UNAVAILABLE),
}

_EXPECTED_KIND = {
    (Service.CHAT, "completion"): "chat",
    (Service.WEATHER, "current"): "weather.current",
    (Service.WEATHER, "forecast"): "weather.forecast",
    (Service.RATES, "pair"): "rates",
    (Service.RATES, "latest"): "rates",
}


def parse_chains(raw: Mapping[str, Sequence[str]]) -> Dict[Service, Tuple[str, ...]]:
    """Validate a ``{service: [strategy, ...]}`` mapping from configuration.

    Raises:
        ConfigError: Unknown service or strategy name.
    """
    chains = dict(DEFAULT_CHAINS)
    for service_name, names in raw.items():
        try:
            service = coerce_service(service_name)
        except ValueError as exc:
            raise ConfigError(f"fallback chain for unknown service {service_name!r}") from exc
        unknown = [n for n in names if n not in STRATEGIES]
        if unknown:
            raise ConfigError(f"unknown fallback strategies for {service.value}: {unknown}")
        chains[service] = tuple(names)
    return chains


class FallbackOrchestrator:
    """Evaluates the per-service chain for one exhausted request."""

    def __init__(
        self,
        clock: Clock,
        *,
        static_rates: Optional[StaticRateTable] = None,
        chains: Optional[Mapping[Service, Sequence[str]]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._clock = clock
        self.static_rates = static_rates if static_rates is not None else StaticRateTable.default()
        self._chains: Dict[Service, Tuple[str, ...]] = dict(DEFAULT_CHAINS)
        if chains:
            self._chains.update({coerce_service(k): tuple(v) for k, v in chains.items()})
        self._logger = logger or get_logger("fallback")
        self._handlers: Dict[str, Callable[[OperationDescriptor, Optional[CacheEntry]], Optional[GatewayResponse]]] = {
            STALE_CACHE: self._stale_cache,
            STATIC_TABLE: self._static_table,
        }

    def chain(self, service: Service) -> Tuple[str, ...]:
        return self._chains.get(service, (UNAVAILABLE,))

    def resolve(
        self,
        descriptor: OperationDescriptor,
        stale_entry: Optional[CacheEntry] = None,
        ctx: Optional[LogContext] = None,
    ) -> Optional[GatewayResponse]:
        """Return a degraded response, or ``None`` when the chain ends in ``unavailable``."""
        for strategy in self.chain(descriptor.service):
            if strategy == UNAVAILABLE:
                break
            response = self._handlers[strategy](descriptor, stale_entry)
            if response is not None:
                log_event(self._logger, "gateway.fallback", ctx, level=logging.WARNING, strategy=strategy, outcome="served")
                return response
        log_event(self._logger, "gateway.fallback", ctx, level=logging.WARNING, strategy=UNAVAILABLE, outcome="unavailable")
        return None

    def _stale_cache(self, descriptor: OperationDescriptor, entry: Optional[CacheEntry]) -> Optional[GatewayResponse]:
        if entry is None:
            return None
        try:
            result = parse_result(entry.payload)
        except ValidationError:
            return None
        if getattr(result, "kind", None) != _EXPECTED_KIND[(descriptor.service, descriptor.operation)]:
            return None
        return GatewayResponse(
            result=result,
            provider=entry.source_provider,
            cached=True,
            fingerprint=entry.fingerprint,
            degraded=Degradation(reason="stale", cached_at_ms=entry.created_at_ms),
        )

    def _static_table(self, descriptor: OperationDescriptor, _entry: Optional[CacheEntry]) -> Optional[GatewayResponse]:
        if descriptor.service is not Service.RATES:
            return None
        result = self.static_rates_result(descriptor)
        if result is None:
            return None
        return GatewayResponse(
            result=result,
            provider=None,
            cached=False,
            fingerprint=descriptor.fingerprint,
            degraded=Degradation(reason="static"),
        )

    def static_rates_result(self, descriptor: OperationDescriptor) -> Optional[BaseModel]:
        """Build a :class:`RatesResult` for ``rates.pair``/``rates.latest`` from the static table."""
        base = descriptor.args["base"]
        if descriptor.operation == "pair":
            lookup = self.static_rates.lookup(base, descriptor.args["quote"])
            if lookup is None:
                return None
            quotes = {descriptor.args["quote"]: lookup.rate}
        else:
            quotes = self.static_rates.quotes(base, descriptor.args.get("symbols"))
            if not quotes:
                return None
        as_of = self.static_rates.as_of_ms if self.static_rates.as_of_ms is not None else self._clock.now_ms()
        return RatesResult(base=base, as_of=to_datetime(as_of), quotes=quotes)


__all__ = [
    "FallbackOrchestrator",
    "DEFAULT_CHAINS",
    "STRATEGIES",
    "STALE_CACHE",
    "STATIC_TABLE",
    "UNAVAILABLE",
    "parse_chains",
]
