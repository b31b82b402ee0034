"""Composition root and caller-facing gateway.

:func:`build_gateway` wires every component from :class:`GatewaySettings`;
tests pass their own clock, executor and cache store instead of the
production defaults. :class:`Gateway` is the object callers hold: it
forwards ``request`` to the dispatcher and adds the operator and convenience
surface (``convert``, breaker resets, connectivity, shutdown).
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

import httpx

from .base.caching import CacheStore, DiskCacheStore, MemoryCacheStore, ResponseCache
from .base.clock import Clock, SystemClock
from .base.errors import CallerError
from .base.execution import Executor, HttpExecutor
from .base.fallback import (
    ConnectivityMonitor,
    ConnectivityStatus,
    FallbackOrchestrator,
    StaticRateTable,
    convert_units,
    parse_chains,
    unit_category,
)
from .base.http import close_all_clients
from .base.logging import get_logger, log_event
from .base.metrics import GatewayStatistics
from .base.models import ConversionResult, GatewayResponse, RequestOptions, Service
from .base.normalization import Normalizer
from .base.ratelimit import SlidingWindowRateLimiter
from .base.registry import ProviderRegistry
from .base.resilience import BreakerSnapshotStore, CircuitBreakerRegistry
from .base.routing import Dispatcher, HealthEntry
from .config import GatewaySettings, load_settings


def _is_currency(code: str) -> bool:
    return len(code.strip()) == 3 and code.strip().isalpha()


class Gateway:
    """Caller API over a fully wired :class:`Dispatcher`."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        connectivity: Optional[ConnectivityMonitor] = None,
        snapshot_store: Optional[BreakerSnapshotStore] = None,
        owned_executor: Optional[HttpExecutor] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.connectivity = connectivity
        self._snapshot_store = snapshot_store
        self._owned_executor = owned_executor
        self._logger = get_logger("gateway")
        self._closed = False

    # ------------------------------------------------------------------ requests
    def request(
        self,
        service: "Service | str",
        operation: str,
        args: Optional[Mapping[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> GatewayResponse:
        return self.dispatcher.request(service, operation, args, options)

    def convert(
        self,
        amount: float,
        from_unit: str,
        to_unit: str,
        options: Optional[RequestOptions] = None,
    ) -> GatewayResponse:
        """Convert ``amount`` between units or currencies.

        Physical units resolve locally from the static tables. Currency codes
        go through ``rates.pair`` so a live rate wins, with the static table
        (direct, inverse, USD pivot) as the offline fallback.

        Raises:
            CallerError: Non-finite amount, unknown units or mixed categories.
            AllProvidersExhaustedError: No live or static rate for the pair.
        """
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
            raise CallerError(f"amount must be a finite number, got {amount!r}")
        if unit_category(from_unit) is not None and unit_category(to_unit) is not None:
            category, value, factor = convert_units(amount, from_unit, to_unit)
            result = ConversionResult(
                category=category,
                amount=float(amount),
                from_unit=from_unit,
                to_unit=to_unit,
                value=value,
                rate=factor,
            )
            return GatewayResponse(
                result=result,
                provider=None,
                cached=False,
                fingerprint=f"convert:{category}:{from_unit.strip().lower()}:{to_unit.strip().lower()}",
            )
        if not (_is_currency(from_unit) and _is_currency(to_unit)):
            raise CallerError(f"cannot convert {from_unit!r} to {to_unit!r}")
        base, quote = from_unit.strip().upper(), to_unit.strip().upper()
        response = self.request(Service.RATES, "pair", {"base": base, "quote": quote}, options)
        rate = response.result.quotes.get(quote)
        if rate is None:
            raise CallerError(f"no rate for {base}->{quote} in the response")
        result = ConversionResult(
            category="currency",
            amount=float(amount),
            from_unit=base,
            to_unit=quote,
            value=float(amount) * rate,
            rate=rate,
        )
        return GatewayResponse(
            result=result,
            provider=response.provider,
            cached=response.cached,
            fingerprint=response.fingerprint,
            degraded=response.degraded,
        )

    # ------------------------------------------------------------------ observability
    def health(self, service: "Service | str | None" = None) -> List[HealthEntry]:
        return self.dispatcher.health(service)

    def statistics(self) -> GatewayStatistics:
        return self.dispatcher.statistics()

    def invalidate(self, namespace: str, fingerprint: Optional[str] = None) -> int:
        return self.dispatcher.invalidate(namespace, fingerprint)

    def connectivity_status(self) -> Optional[ConnectivityStatus]:
        return self.connectivity.status() if self.connectivity is not None else None

    def check_connectivity(self) -> Optional[bool]:
        """Run the reachability probe if one is due; advisory only."""
        return self.connectivity.probe_if_due() if self.connectivity is not None else None

    # ------------------------------------------------------------------ operator actions
    def probe_health(self, service: "Service | str | None" = None) -> Dict[str, bool]:
        return self.dispatcher.probe_health(service)

    def reset_breaker(self, name: str, *, enable: bool = True) -> None:
        self.dispatcher.reset_breaker(name, enable=enable)

    def set_enabled(self, name: str, enabled: bool) -> int:
        return self.dispatcher.registry.set_enabled(name, enabled)

    def sweep_cache(self) -> Dict[str, int]:
        return self.dispatcher.cache.sweep().to_dict()

    def save_breakers(self) -> bool:
        if self._snapshot_store is None:
            return False
        return self._snapshot_store.save(self.dispatcher.breakers)

    def close(self) -> None:
        """Persist breaker state and release executor threads and HTTP clients."""
        if self._closed:
            return
        self._closed = True
        self.save_breakers()
        if self._owned_executor is not None:
            self._owned_executor.close()
            close_all_clients()
        log_event(self._logger, "gateway.closed")

    def __enter__(self) -> "Gateway":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()


def build_gateway(
    settings: Optional[GatewaySettings] = None,
    *,
    clock: Optional[Clock] = None,
    executor: Optional[Executor] = None,
    cache_store: Optional[CacheStore] = None,
    probe_client: Optional[httpx.Client] = None,
) -> Gateway:
    """Wire a :class:`Gateway` from settings.

    Parameters
    ----------
    settings:
        Loaded settings; defaults to :func:`load_settings` (file named by
        ``ASSIST_GATEWAY_CONFIG`` or the built-in defaults).
    clock:
        Time source; ``SystemClock`` when omitted.
    executor:
        Upstream executor; an :class:`HttpExecutor` owned by the gateway when
        omitted.
    cache_store:
        Cache backend; a ``DiskCacheStore`` at ``cache.rootPath`` (or an
        in-memory store when the root path is empty) when omitted.
    probe_client:
        ``httpx.Client`` for health and connectivity probes.
    """
    settings = settings if settings is not None else load_settings()
    clock = clock or SystemClock()
    logger = get_logger("gateway")

    registry = ProviderRegistry(settings.build_providers())

    snapshot_store = BreakerSnapshotStore(settings.breaker_snapshot_path) if settings.breaker_snapshot_path else None
    breakers = CircuitBreakerRegistry(
        open_threshold=settings.defaults.open_threshold,
        open_cooldown_ms=settings.defaults.open_cooldown_ms,
        on_transition=(lambda *_args: snapshot_store.save(breakers)) if snapshot_store is not None else None,
    )
    if snapshot_store is not None:
        snapshot_store.load(breakers)

    if cache_store is None:
        root = settings.cache.root_path
        cache_store = DiskCacheStore(root) if root else MemoryCacheStore()
    cache = ResponseCache(
        cache_store,
        clock,
        max_bytes=settings.cache.max_bytes,
        sweep_interval_ms=settings.cache.sweep_interval_ms,
    )
    cache.open()

    static_rates = (
        StaticRateTable(settings.fallback.static_rates, settings.fallback.static_rates_as_of_ms)
        if settings.fallback.static_rates
        else StaticRateTable.default()
    )
    fallback = FallbackOrchestrator(clock, static_rates=static_rates, chains=parse_chains(settings.fallback.chains))
    connectivity = ConnectivityMonitor(
        clock,
        probe_url=settings.connectivity.probe_url,
        probe_timeout_ms=settings.connectivity.probe_timeout_ms,
        interval_ms=settings.connectivity.interval_ms,
        client=probe_client,
    )

    owned: Optional[HttpExecutor] = None
    if executor is None:
        owned = HttpExecutor(clock)
        executor = owned

    dispatcher = Dispatcher(
        registry=registry,
        limiter=SlidingWindowRateLimiter(),
        breakers=breakers,
        executor=executor,
        normalizer=Normalizer(clock),
        cache=cache,
        fallback=fallback,
        clock=clock,
        connectivity=connectivity,
        ttl_ms=settings.cache.ttl_ms,
        global_budget_ms=settings.defaults.global_request_budget_ms,
        probe_client=probe_client,
    )
    log_event(
        logger,
        "gateway.built",
        providers=len(registry),
        enabled=sum(1 for p in registry.all() if p.enabled),
        cache_root=settings.cache.root_path,
    )
    return Gateway(dispatcher, connectivity=connectivity, snapshot_store=snapshot_store, owned_executor=owned)


__all__ = ["Gateway", "build_gateway"]
