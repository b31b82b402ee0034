"""Failover dispatcher: the single entry point for gateway requests.

Flow of one ``request``
-----------------------
1. Validate arguments into an :class:`OperationDescriptor` and compute its
   fingerprint. A fresh cache hit returns immediately.
2. Concurrent misses for the same fingerprint are coalesced: one caller
   (the leader) walks the providers, the rest wait for its response.
3. The leader orders candidates by registry priority, moving a preferred
   provider to the head when the limiter and breaker would both admit it.
4. Each candidate is tried at most once, in order: limiter admission,
   breaker admission, one executor exchange, then normalization. The first
   canonical result is cached, recorded as a breaker success and returned.
   A caller-fault classification stops the walk and surfaces as
   :class:`CallerError`; every other failure moves on to the next candidate.
5. When the list is exhausted the fallback chain runs (stale cache, static
   tables). If it produces nothing, :class:`AllProvidersExhaustedError`
   carries the ordered attempt log.

Cancellation at any point raises :class:`CancelledError`; an attempt that was
in flight gives its limiter slot back and leaves no breaker verdict.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from pydantic import ValidationError

from ..caching import CacheEntry, ResponseCache
from ..clock import Clock
from ..errors import (
    AllProvidersExhaustedError,
    AttemptRecord,
    CallerError,
    CancelledError,
    Classification,
    MalformedResponseError,
    SkipRecord,
)
from ..execution import ExecutionOutcome, Executor
from ..fallback import ConnectivityMonitor, FallbackOrchestrator
from ..http import get_httpx_client
from ..log_support import LogContext
from ..logging import get_logger, log_event, normalized_log_event
from ..metrics import GatewayCounters, GatewayStatistics
from ..models import (
    GatewayResponse,
    OperationDescriptor,
    Provider,
    RequestOptions,
    Service,
    build_descriptor,
    coerce_service,
    parse_result,
    result_to_payload,
)
from ..normalization import Normalizer
from ..ratelimit import SlidingWindowRateLimiter
from ..registry import ProviderRegistry
from ..resilience import BreakerState, CircuitBreakerRegistry
from ..timeouts import get_timeout_policy, httpx_timeout, request_budget_ms

DEFAULT_TTL_MS: Dict[str, int] = {
    "chat.completion": 0,
    "weather.current": 30 * 60 * 1000,
    "weather.forecast": 60 * 60 * 1000,
    "rates.pair": 60 * 60 * 1000,
    "rates.latest": 60 * 60 * 1000,
}


@dataclass(frozen=True)
class HealthEntry:
    """One row of :meth:`Dispatcher.health`."""

    provider: str
    service: str
    state: BreakerState
    enabled: bool
    consecutive_failures: int
    next_attempt_at_ms: Optional[int] = None
    last_error: Optional[str] = None
    in_window: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "service": self.service,
            "state": self.state.value,
            "enabled": self.enabled,
            "consecutive_failures": self.consecutive_failures,
            "next_attempt_at_ms": self.next_attempt_at_ms,
            "last_error": self.last_error,
            "in_window": self.in_window,
        }


class _Walk:
    """Mutable attempt log for one provider walk."""

    def __init__(self) -> None:
        self.attempts: List[AttemptRecord] = []
        self.skipped: List[SkipRecord] = []

    def all_unreachable(self) -> bool:
        return bool(self.attempts) and all(
            a.classification is Classification.PROVIDER_UNREACHABLE for a in self.attempts
        )


class Dispatcher:
    """Routes requests across providers with admission control and failover.

    Every collaborator is injected so tests can drive the dispatcher with a
    :class:`~assist_gateway.base.clock.ManualClock`, a memory-backed cache
    and a scripted executor.

    Parameters
    ----------
    registry, limiter, breakers, executor, normalizer, cache, fallback, clock:
        The gateway components.
    counters:
        Statistics sink; a fresh one is created when omitted.
    connectivity:
        Optional monitor fed with passive online/offline observations.
    ttl_ms:
        Cache TTL per ``"service.operation"``; unspecified operations use
        :data:`DEFAULT_TTL_MS`.
    global_budget_ms:
        Upper bound for one ``request``; ``None`` means twice the longest
        candidate timeout.
    probe_client:
        ``httpx.Client`` used by :meth:`probe_health`; defaults to the pool.
    """

    def __init__(
        self,
        *,
        registry: ProviderRegistry,
        limiter: SlidingWindowRateLimiter,
        breakers: CircuitBreakerRegistry,
        executor: Executor,
        normalizer: Normalizer,
        cache: ResponseCache,
        fallback: FallbackOrchestrator,
        clock: Clock,
        counters: Optional[GatewayCounters] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        ttl_ms: Optional[Mapping[str, int]] = None,
        global_budget_ms: Optional[int] = None,
        probe_client: Optional[httpx.Client] = None,
    ) -> None:
        self.registry = registry
        self.limiter = limiter
        self.breakers = breakers
        self.executor = executor
        self.normalizer = normalizer
        self.cache = cache
        self.fallback = fallback
        self.clock = clock
        self.counters = counters or GatewayCounters()
        self.connectivity = connectivity
        self.ttl_ms: Dict[str, int] = {**DEFAULT_TTL_MS, **dict(ttl_ms or {})}
        self.global_budget_ms = global_budget_ms
        self._probe_client = probe_client
        self._logger = get_logger("dispatcher")

    # ------------------------------------------------------------------ caller API
    def request(
        self,
        service: "Service | str",
        operation: str,
        args: Optional[Mapping[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> GatewayResponse:
        """Serve one ``service.operation`` request.

        Raises:
            CallerError: Invalid arguments, or a provider reported a
                caller-fault for this request.
            AllProvidersExhaustedError: No provider and no fallback produced
                a result.
            CancelledError: ``options.cancel`` fired.
        """
        options = options or RequestOptions()
        token = options.cancel
        self.counters.incr("requests")
        try:
            descriptor = build_descriptor(
                service, operation, args, units=options.units, language=options.language
            )
        except CallerError:
            self.counters.incr("caller_errors")
            raise
        namespace = descriptor.service.value
        fp = descriptor.fingerprint
        ctx = LogContext(service=namespace, operation=descriptor.operation, fingerprint=fp)
        normalized_log_event(self._logger, "gateway.request.start", ctx, phase="start", level=logging.DEBUG)

        if token is not None and token.cancelled:
            self.counters.incr("cancelled")
            token.raise_if_cancelled()
        cached, stale = self._cached_response(descriptor, ctx)
        # sweep after the lookup so an expired entry read here stays servable
        self.cache.sweep_if_due()
        if cached is not None:
            return cached
        self.counters.incr("cache_misses")

        if options.force_offline:
            normalized_log_event(self._logger, "gateway.offline", ctx, phase="fallback", reason="force_offline")
            return self._fallback(descriptor, stale, _Walk(), ctx, detail="offline mode requested")

        try:
            response, shared = self.cache.single_flight(
                namespace, fp, lambda: self._lead(descriptor, options, ctx, stale), token
            )
        except CancelledError:
            self.counters.incr("cancelled")
            raise
        if shared:
            self.counters.incr("coalesced")
            log_event(self._logger, "gateway.coalesced", ctx, level=logging.DEBUG)
        return response

    def health(self, service: "Service | str | None" = None) -> List[HealthEntry]:
        """Breaker and limiter view of every provider (optionally one service)."""
        now = self.clock.now_ms()
        svc = coerce_service(service) if service is not None else None
        rows: List[HealthEntry] = []
        for provider in self.registry.all():
            if svc is not None and provider.service is not svc:
                continue
            snap = self.breakers.state(provider.name, now)
            limiter = self.limiter.state(provider.name, now, provider.limit.window_ms)
            rows.append(
                HealthEntry(
                    provider=provider.name,
                    service=provider.service.value,
                    state=snap.state,
                    enabled=provider.enabled,
                    consecutive_failures=snap.consecutive_failures,
                    next_attempt_at_ms=snap.next_attempt_at_ms if snap.state is BreakerState.OPEN else None,
                    last_error=snap.last_error,
                    in_window=limiter.in_window,
                )
            )
        return rows

    def statistics(self) -> GatewayStatistics:
        return self.counters.snapshot(cache=self.cache.stats().to_dict())

    def invalidate(self, namespace: str, fingerprint: Optional[str] = None) -> int:
        return self.cache.invalidate(namespace, fingerprint)

    def reset_breaker(self, name: str, *, enable: bool = True) -> None:
        """Operator action: close ``name``'s breaker and optionally re-enable it."""
        self.breakers.reset(name)
        if enable:
            self.registry.set_enabled(name, True)
        log_event(self._logger, "gateway.breaker.reset", provider=name, enabled=enable)

    def probe_health(self, service: "Service | str | None" = None) -> Dict[str, bool]:
        """GET each enabled provider's ``health_probe``; failures count toward its breaker."""
        svc = coerce_service(service) if service is not None else None
        timeout = httpx_timeout(int(get_timeout_policy().probe_seconds * 1000))
        client = self._probe_client or get_httpx_client(None, "probe")
        results: Dict[str, bool] = {}
        for provider in self.registry.all():
            if not provider.enabled or not provider.health_probe:
                continue
            if svc is not None and provider.service is not svc:
                continue
            try:
                response = client.get(provider.health_probe, timeout=timeout)
                healthy = response.is_success
                detail = None if healthy else f"health probe HTTP {response.status_code}"
            except httpx.HTTPError as exc:
                healthy = False
                detail = f"health probe {type(exc).__name__}"
            if not healthy:
                self.breakers.record_failure(provider.name, self.clock.now_ms(), detail)
            results[provider.name] = healthy
            log_event(self._logger, "gateway.health.probe", provider=provider.name, healthy=healthy, detail=detail)
        return results

    # ------------------------------------------------------------------ internals
    @staticmethod
    def _cancel_check(token) -> None:
        if token is not None:
            token.raise_if_cancelled()

    def _cached_response(
        self, descriptor: OperationDescriptor, ctx: LogContext
    ) -> Tuple[Optional[GatewayResponse], Optional[CacheEntry]]:
        """Return ``(fresh response, None)`` on a hit or ``(None, expired entry | None)``."""
        lookup = self.cache.get(descriptor.service.value, descriptor.fingerprint)
        if lookup.hit and lookup.entry is not None:
            try:
                result = parse_result(lookup.entry.payload)
            except ValidationError:
                log_event(self._logger, "gateway.cache.unreadable", ctx, level=logging.WARNING)
                self.cache.invalidate(descriptor.service.value, descriptor.fingerprint)
                return None, None
            self.counters.incr("cache_hits")
            normalized_log_event(
                self._logger, "gateway.cache.hit", ctx, phase="cache", source_provider=lookup.entry.source_provider
            )
            return (
                GatewayResponse(
                    result=result,
                    provider=lookup.entry.source_provider,
                    cached=True,
                    fingerprint=descriptor.fingerprint,
                ),
                None,
            )
        if lookup.expired:
            normalized_log_event(
                self._logger, "gateway.cache.stale", ctx, phase="cache", cached_at_ms=lookup.entry.created_at_ms
            )
            return None, lookup.entry
        return None, None

    def _lead(
        self,
        descriptor: OperationDescriptor,
        options: RequestOptions,
        ctx: LogContext,
        stale: Optional[CacheEntry],
    ) -> GatewayResponse:
        # another leader may have filled the cache between our miss and our turn
        cached, refreshed = self._cached_response(descriptor, ctx)
        if cached is not None:
            return cached
        stale = refreshed or stale
        walk = _Walk()
        response = self._walk(descriptor, options, walk, ctx)
        if response is not None:
            return response
        if self.connectivity is not None and walk.all_unreachable():
            self.connectivity.record(False)
        return self._fallback(descriptor, stale, walk, ctx)

    def _candidates(self, descriptor: OperationDescriptor, options: RequestOptions, walk: _Walk) -> List[Provider]:
        candidates = self.registry.lookup(
            descriptor.service,
            operation=descriptor.operation,
            failures=self.breakers.consecutive_failures,
        )
        for provider in self.registry.all():
            if (
                provider.service is descriptor.service
                and not provider.enabled
                and provider.supports(descriptor.operation)
            ):
                walk.skipped.append(SkipRecord(provider.name, "disabled"))
        preferred = options.preferred_provider
        if preferred:
            now = self.clock.now_ms()
            for index, provider in enumerate(candidates):
                if provider.name != preferred:
                    continue
                if index and self.limiter.would_admit(provider, now) and self.breakers.peek(provider.name, now):
                    candidates.insert(0, candidates.pop(index))
                break
        return candidates

    def _skip(self, provider: Provider, reason: str, walk: _Walk, ctx: LogContext) -> None:
        walk.skipped.append(SkipRecord(provider.name, reason))
        self.counters.provider(provider.name).record_skip(reason)
        normalized_log_event(self._logger, "gateway.skip", ctx.with_provider(provider.name), phase="admission", reason=reason)

    def _walk(
        self, descriptor: OperationDescriptor, options: RequestOptions, walk: _Walk, ctx: LogContext
    ) -> Optional[GatewayResponse]:
        token = options.cancel
        candidates = self._candidates(descriptor, options, walk)
        budget = request_budget_ms((p.timeout_ms for p in candidates), self.global_budget_ms)
        deadline = self.clock.now_ms() + budget
        attempt = 0
        for provider in candidates:
            self._cancel_check(token)
            now = self.clock.now_ms()
            remaining = deadline - now
            if remaining <= 0:
                normalized_log_event(
                    self._logger, "gateway.budget.exhausted", ctx, phase="admission", level=logging.WARNING, budget_ms=budget
                )
                break
            ticket = object()
            if not self.limiter.admit(provider, now, ticket):
                self._skip(provider, "rate_limited", walk, ctx)
                continue
            if not self.breakers.admit(provider.name, now):
                self.limiter.release(provider.name, ticket)
                self._skip(provider, "breaker_open", walk, ctx)
                continue
            attempt += 1
            response = self._attempt(descriptor, options, provider, ticket, attempt, min(provider.timeout_ms, remaining), walk, ctx)
            if response is not None:
                return response
        return None

    def _attempt(
        self,
        descriptor: OperationDescriptor,
        options: RequestOptions,
        provider: Provider,
        ticket: object,
        attempt: int,
        timeout_ms: int,
        walk: _Walk,
        ctx: LogContext,
    ) -> Optional[GatewayResponse]:
        """Run one admitted attempt; return a response on success, ``None`` to fail over."""
        pctx = ctx.with_provider(provider.name)
        counters = self.counters.provider(provider.name)
        counters.record_start()
        try:
            outcome = self.executor.execute(provider, descriptor, timeout_ms=timeout_ms, token=options.cancel)
        except CancelledError:
            self.limiter.release(provider.name, ticket)
            self.breakers.release(provider.name)
            counters.record_cancelled()
            normalized_log_event(self._logger, "gateway.attempt", pctx, phase="cancelled", attempt=attempt)
            raise
        except Exception as exc:
            outcome = ExecutionOutcome(Classification.MALFORMED_RESPONSE, detail=f"{type(exc).__name__}: {exc}")

        classification = outcome.classification
        detail = outcome.detail
        if outcome.ok:
            try:
                result = self.normalizer.normalize(descriptor, provider.dialect, outcome.body, provider=provider)
            except MalformedResponseError as exc:
                classification = Classification.MALFORMED_RESPONSE
                detail = str(exc)
            except CallerError as exc:
                self.breakers.release(provider.name)
                self._record_attempt(provider, Classification.CALLER_ERROR, exc.detail, outcome, attempt, walk, pctx)
                self.counters.incr("caller_errors")
                raise CallerError(exc.detail, provider=provider.name) from exc
            except Exception as exc:
                classification = Classification.MALFORMED_RESPONSE
                detail = f"{type(exc).__name__}: {exc}"
            else:
                return self._succeed(descriptor, options, provider, result, outcome, attempt, walk, pctx)

        self._record_attempt(provider, classification, detail, outcome, attempt, walk, pctx)
        if classification is Classification.CALLER_ERROR:
            self.breakers.release(provider.name)
            self.counters.incr("caller_errors")
            raise CallerError(detail or "provider rejected the request", provider=provider.name)
        if classification is Classification.PROVIDER_RATE_LIMITED:
            now = self.clock.now_ms()
            self.limiter.back_off(provider.name, outcome.retry_at_ms or now + provider.limit.window_ms)
            self.breakers.release(provider.name)
            return None
        self.breakers.record_failure(provider.name, self.clock.now_ms(), detail)
        if classification is Classification.PROVIDER_AUTH_FAILURE:
            self.registry.set_enabled(provider.name, False)
            log_event(self._logger, "gateway.provider.disabled", pctx, level=logging.WARNING, reason=classification.value)
        return None

    def _record_attempt(
        self,
        provider: Provider,
        classification: Classification,
        detail: Optional[str],
        outcome: ExecutionOutcome,
        attempt: int,
        walk: _Walk,
        ctx: LogContext,
    ) -> None:
        walk.attempts.append(AttemptRecord(provider.name, classification, detail, outcome.latency_ms))
        self.counters.provider(provider.name).record_failure(classification.value, outcome.latency_ms)
        normalized_log_event(
            self._logger,
            "gateway.attempt",
            ctx,
            phase="attempt",
            attempt=attempt,
            classification=classification.value,
            level=logging.WARNING,
            status=outcome.status,
            detail=detail,
            latency_ms=outcome.latency_ms,
        )

    def _succeed(
        self,
        descriptor: OperationDescriptor,
        options: RequestOptions,
        provider: Provider,
        result: Any,
        outcome: ExecutionOutcome,
        attempt: int,
        walk: _Walk,
        ctx: LogContext,
    ) -> GatewayResponse:
        walk.attempts.append(AttemptRecord(provider.name, Classification.SUCCESS, None, outcome.latency_ms))
        ttl = options.ttl_override_ms if options.ttl_override_ms is not None else self.ttl_ms.get(descriptor.name, 0)
        self.cache.store_result(
            descriptor.service.value,
            descriptor.fingerprint,
            result_to_payload(result),
            ttl,
            source_provider=provider.name,
        )
        self.breakers.record_success(provider.name)
        self.counters.provider(provider.name).record_success(outcome.latency_ms)
        if self.connectivity is not None:
            self.connectivity.record(True)
        normalized_log_event(
            self._logger,
            "gateway.attempt",
            ctx,
            phase="attempt",
            attempt=attempt,
            classification=Classification.SUCCESS.value,
            latency_ms=outcome.latency_ms,
        )
        return GatewayResponse(result=result, provider=provider.name, cached=False, fingerprint=descriptor.fingerprint)

    def _fallback(
        self,
        descriptor: OperationDescriptor,
        stale: Optional[CacheEntry],
        walk: _Walk,
        ctx: LogContext,
        detail: Optional[str] = None,
    ) -> GatewayResponse:
        response = self.fallback.resolve(descriptor, stale, ctx)
        if response is not None and response.degraded is not None:
            self.counters.incr("stale_served" if response.degraded.reason == "stale" else "static_served")
            return response
        self.counters.incr("exhausted")
        error = AllProvidersExhaustedError(
            descriptor.service.value,
            descriptor.operation,
            walk.attempts,
            walk.skipped,
            detail=detail or (None if walk.attempts or walk.skipped else "no provider configured"),
        )
        normalized_log_event(
            self._logger,
            "gateway.exhausted",
            ctx,
            phase="fallback",
            level=logging.ERROR,
            attempts=[a.to_dict() for a in walk.attempts],
            skipped=[s.to_dict() for s in walk.skipped],
        )
        raise error


__all__ = ["Dispatcher", "HealthEntry", "DEFAULT_TTL_MS"]
