"""Shared harness for dispatcher and gateway tests.

``ScriptedExecutor`` stands in for the HTTP executor: each provider name gets
a queue of scripted outcomes (or callables producing one) so scenarios can
exercise failover, breakers and cancellation without any network I/O. The
body builders return minimal upstream payloads in each dialect's wire shape.
"""
from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple, Union

from assist_gateway.base.caching import MemoryCacheStore, ResponseCache
from assist_gateway.base.cancellation import CancellationToken
from assist_gateway.base.clock import ManualClock
from assist_gateway.base.errors import Classification
from assist_gateway.base.execution import ExecutionOutcome
from assist_gateway.base.fallback import ConnectivityMonitor, FallbackOrchestrator, StaticRateTable
from assist_gateway.base.models import OperationDescriptor, Provider, make_provider
from assist_gateway.base.normalization import Normalizer
from assist_gateway.base.ratelimit import SlidingWindowRateLimiter
from assist_gateway.base.registry import ProviderRegistry
from assist_gateway.base.resilience import CircuitBreakerRegistry
from assist_gateway.base.routing import Dispatcher

# 2023-11-14T22:13:20Z
START_MS = 1_700_000_000_000

Script = Union[ExecutionOutcome, BaseException, Callable[..., ExecutionOutcome]]


def ok(body: Any, latency_ms: int = 5) -> ExecutionOutcome:
    return ExecutionOutcome(Classification.SUCCESS, status=200, body=body, latency_ms=latency_ms)


def fail(
    classification: Classification,
    status: Optional[int] = None,
    detail: Optional[str] = None,
    retry_at_ms: Optional[int] = None,
) -> ExecutionOutcome:
    return ExecutionOutcome(
        classification,
        status=status,
        detail=detail or classification.value,
        retry_at_ms=retry_at_ms,
        latency_ms=5,
    )


class ScriptedExecutor:
    """Executor returning scripted outcomes per provider name.

    Queued scripts are consumed first; once a provider's queue is empty its
    ``respond`` default is used, and without one the provider is unreachable.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queues: Dict[str, Deque[Script]] = {}
        self._defaults: Dict[str, Script] = {}
        self.calls: List[Tuple[str, OperationDescriptor, int]] = []

    def script(self, name: str, *items: Script) -> "ScriptedExecutor":
        with self._lock:
            self._queues.setdefault(name, deque()).extend(items)
        return self

    def respond(self, name: str, item: Script) -> "ScriptedExecutor":
        with self._lock:
            self._defaults[name] = item
        return self

    def called(self, name: Optional[str] = None) -> List[str]:
        with self._lock:
            return [c[0] for c in self.calls if name is None or c[0] == name]

    def execute(
        self,
        provider: Provider,
        descriptor: OperationDescriptor,
        *,
        timeout_ms: int,
        token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome:
        if token is not None:
            token.raise_if_cancelled()
        with self._lock:
            self.calls.append((provider.name, descriptor, timeout_ms))
            queue = self._queues.get(provider.name)
            item = queue.popleft() if queue else self._defaults.get(provider.name)
        if item is None:
            return fail(Classification.PROVIDER_UNREACHABLE, detail="ConnectError: unreachable")
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(provider, descriptor, token)
        return item


# ---------------------------------------------------------------- providers


def weather_provider(name: str, priority: int = 0, **kwargs: Any) -> Provider:
    kwargs.setdefault("dialect", "weatherapi")
    kwargs.setdefault("capabilities", ("current", "forecast"))
    return make_provider(
        "weather",
        name,
        f"https://{name}.test/v1",
        priority=priority,
        credential=f"key-{name}",
        **kwargs,
    )


def chat_provider(name: str, priority: int = 0, **kwargs: Any) -> Provider:
    kwargs.setdefault("dialect", "openai")
    kwargs.setdefault("capabilities", ("completion",))
    return make_provider(
        "chat",
        name,
        f"https://{name}.test/v1",
        priority=priority,
        credential=f"key-{name}",
        **kwargs,
    )


def rates_provider(name: str, priority: int = 0, **kwargs: Any) -> Provider:
    kwargs.setdefault("dialect", "exchangerate")
    kwargs.setdefault("capabilities", ("pair", "latest"))
    return make_provider(
        "rates",
        name,
        f"https://{name}.test/v6",
        priority=priority,
        credential=f"key-{name}",
        **kwargs,
    )


# ---------------------------------------------------------------- bodies


def weatherapi_current_body(temp_c: float = 12.0, name: str = "London") -> Dict[str, Any]:
    return {
        "location": {
            "name": name,
            "country": "United Kingdom",
            "lat": 51.52,
            "lon": -0.11,
            "tz_id": "Europe/London",
        },
        "current": {
            "last_updated_epoch": 1_700_000_000,
            "temp_c": temp_c,
            "feelslike_c": temp_c - 2,
            "humidity": 81,
            "pressure_mb": 1012.0,
            "wind_kph": 18.0,
            "wind_degree": 220,
            "vis_km": 10.0,
            "condition": {"text": "Partly cloudy", "code": 1003},
        },
    }


def openai_chat_body(text: str = "Hello there", model: str = "test-model") -> Dict[str, Any]:
    return {
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}, "finish_reason": "stop"}],
        "usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10},
    }


def exchangerate_body(base: str = "USD", rates: Optional[Dict[str, float]] = None) -> Dict[str, Any]:
    table = {base: 1.0, **(rates or {"EUR": 0.9, "GBP": 0.8})}
    return {
        "result": "success",
        "base_code": base,
        "time_last_update_unix": 1_699_990_000,
        "conversion_rates": table,
    }


# ---------------------------------------------------------------- wiring


class Harness:
    """A dispatcher wired with in-memory collaborators and a manual clock."""

    def __init__(
        self,
        providers: Iterable[Provider],
        *,
        clock: Optional[ManualClock] = None,
        executor: Optional[ScriptedExecutor] = None,
        store: Optional[MemoryCacheStore] = None,
        open_threshold: int = 3,
        open_cooldown_ms: int = 60_000,
        static_rates: Optional[StaticRateTable] = None,
        ttl_ms: Optional[Dict[str, int]] = None,
        global_budget_ms: Optional[int] = None,
    ) -> None:
        self.clock = clock or ManualClock(START_MS)
        self.executor = executor or ScriptedExecutor()
        self.store = store if store is not None else MemoryCacheStore()
        self.registry = ProviderRegistry(providers)
        self.limiter = SlidingWindowRateLimiter()
        self.breakers = CircuitBreakerRegistry(open_threshold=open_threshold, open_cooldown_ms=open_cooldown_ms)
        self.cache = ResponseCache(self.store, self.clock)
        self.cache.open()
        self.connectivity = ConnectivityMonitor(self.clock)
        self.fallback = FallbackOrchestrator(self.clock, static_rates=static_rates)
        self.dispatcher = Dispatcher(
            registry=self.registry,
            limiter=self.limiter,
            breakers=self.breakers,
            executor=self.executor,
            normalizer=Normalizer(self.clock),
            cache=self.cache,
            fallback=self.fallback,
            clock=self.clock,
            connectivity=self.connectivity,
            ttl_ms=ttl_ms,
            global_budget_ms=global_budget_ms,
        )

    def request(self, service: str, operation: str, args: Optional[Dict[str, Any]] = None, options: Any = None):
        return self.dispatcher.request(service, operation, args, options)


__all__ = [
    "START_MS",
    "ScriptedExecutor",
    "Harness",
    "ok",
    "fail",
    "weather_provider",
    "chat_provider",
    "rates_provider",
    "weatherapi_current_body",
    "openai_chat_body",
    "exchangerate_body",
]
