"""Dispatcher scenario tests on a manual clock with a scripted executor.

Covers:
- Happy path, failover order and attempt bookkeeping.
- Breaker open / half-open probe / recovery without executor calls to an
  open provider.
- Limiter refusal, Retry-After back-off and window slide.
- Fresh cache hits, stale and static fallback, exhaustion with the attempt log.
- Single-flight coalescing of concurrent identical requests.
- Cancellation releasing the limiter slot without a breaker verdict.
- Caller errors stop the walk; auth failures disable the provider.
- Preferred provider, offline mode, TTL override, budget and health rows.
"""
from __future__ import annotations

import threading
import time

import pytest

from assist_gateway.base.cancellation import CancellationToken, CancelledError
from assist_gateway.base.errors import AllProvidersExhaustedError, CallerError, Classification
from assist_gateway.base.models import RequestOptions
from assist_gateway.base.resilience import BreakerState

from .helpers import (
    START_MS,
    Harness,
    chat_provider,
    exchangerate_body,
    fail,
    ok,
    openai_chat_body,
    rates_provider,
    weather_provider,
    weatherapi_current_body,
)

LONDON = {"location": "London"}
NO_CACHE = RequestOptions(ttl_override_ms=0)


def _server_error():
    return fail(Classification.PROVIDER_SERVER_ERROR, status=500, detail="HTTP 500")


def test_weather_happy_path(clock, executor):
    body = {"temp_c": 20, "condition": "Sunny", "humidity": 65, "wind_kph": 10, "location": "London, UK"}
    harness = Harness(
        [weather_provider("p1", priority=2, dialect="proxy"), weather_provider("p2", priority=1)],
        clock=clock,
        executor=executor,
    )
    executor.respond("p1", ok(body))
    response = harness.request("weather", "current", LONDON)
    result = response.result
    assert (result.location.name, result.location.country) == ("London", "UK")
    assert result.observed.temperature_c == 20.0
    assert result.observed.humidity_pct == 65
    assert result.observed.wind_mps == pytest.approx(2.78, abs=0.01)
    assert result.observed.condition_text == "Sunny"
    assert response.provider == "p1" and not response.cached and response.degraded is None
    assert executor.called() == ["p1"]


def test_failover_records_one_failure(clock, executor):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.script("p1", _server_error())
    executor.respond("p2", ok(weatherapi_current_body(temp_c=8)))
    response = harness.request("weather", "current", LONDON)
    assert response.provider == "p2"
    assert response.result.observed.temperature_c == 8
    assert harness.breakers.consecutive_failures("p1") == 1
    assert harness.breakers.consecutive_failures("p2") == 0
    stats = harness.dispatcher.statistics()
    assert stats.providers["p1"].failure_by_classification == {"provider_server_error": 1}
    assert stats.providers["p2"].success == 1


def test_breaker_opens_then_probes_after_cooldown(clock, executor):
    harness = Harness(
        [weather_provider("p1", priority=2), weather_provider("p2", priority=1)],
        clock=clock,
        executor=executor,
        open_threshold=5,
        open_cooldown_ms=60_000,
    )
    executor.respond("p1", _server_error())
    executor.respond("p2", ok(weatherapi_current_body()))
    for _ in range(5):
        assert harness.request("weather", "current", LONDON, NO_CACHE).provider == "p2"
    assert harness.breakers.state("p1").state is BreakerState.OPEN

    harness.request("weather", "current", LONDON, NO_CACHE)
    assert executor.called("p1") == ["p1"] * 5

    clock.advance(60_000)
    executor.respond("p1", ok(weatherapi_current_body(temp_c=1)))
    assert harness.request("weather", "current", LONDON, NO_CACHE).provider == "p1"
    assert harness.breakers.state("p1").state is BreakerState.CLOSED
    assert harness.request("weather", "current", LONDON, NO_CACHE).provider == "p1"


def test_rate_limit_refusal_and_window_slide(clock, executor):
    harness = Harness(
        [weather_provider("p1", priority=2, max_requests=2, window_ms=1_000), weather_provider("p2", priority=1)],
        clock=clock,
        executor=executor,
    )
    executor.respond("p1", ok(weatherapi_current_body()))
    executor.respond("p2", ok(weatherapi_current_body()))
    providers = []
    for offset in (0, 100, 200):
        clock.set(START_MS + offset)
        providers.append(harness.request("weather", "current", LONDON, NO_CACHE).provider)
    assert providers == ["p1", "p1", "p2"]
    assert harness.dispatcher.statistics().providers["p1"].skipped == {"rate_limited": 1}
    clock.set(START_MS + 1_001)
    assert harness.request("weather", "current", LONDON, NO_CACHE).provider == "p1"


def test_retry_after_backs_off_without_breaker_failure(clock, executor):
    harness = Harness([rates_provider("p1", priority=2), rates_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.script("p1", fail(Classification.PROVIDER_RATE_LIMITED, status=429, retry_at_ms=START_MS + 30_000))
    executor.respond("p1", ok(exchangerate_body()))
    executor.respond("p2", ok(exchangerate_body()))
    pair = {"base": "USD", "quote": "EUR"}
    assert harness.request("rates", "pair", pair, NO_CACHE).provider == "p2"
    assert harness.breakers.consecutive_failures("p1") == 0
    clock.advance(1_000)
    assert harness.request("rates", "pair", pair, NO_CACHE).provider == "p2"
    clock.set(START_MS + 30_000)
    assert harness.request("rates", "pair", pair, NO_CACHE).provider == "p1"


def test_fresh_cache_hit_skips_providers(clock, executor):
    harness = Harness([weather_provider("p1")], clock=clock, executor=executor)
    executor.respond("p1", ok(weatherapi_current_body()))
    first = harness.request("weather", "current", LONDON)
    second = harness.request("weather", "current", {"location": "london"})
    assert second.cached and second.provider == "p1"
    assert second.result == first.result
    assert executor.called() == ["p1"]
    stats = harness.dispatcher.statistics().gateway
    assert (stats["cache_hits"], stats["cache_misses"]) == (1, 1)


def test_chat_is_never_cached_by_default(clock, executor):
    harness = Harness([chat_provider("c1")], clock=clock, executor=executor)
    executor.respond("c1", ok(openai_chat_body()))
    harness.request("chat", "completion", {"prompt": "hi"})
    harness.request("chat", "completion", {"prompt": "hi"})
    assert executor.called() == ["c1", "c1"]


def test_stale_cache_served_when_all_unreachable(clock, executor):
    harness = Harness([weather_provider("p1"), weather_provider("p2")], clock=clock, executor=executor)
    executor.script("p1", ok(weatherapi_current_body(temp_c=15)))
    original = harness.request("weather", "current", LONDON)
    clock.advance(3_600_000)
    response = harness.request("weather", "current", LONDON)
    assert response.degraded.reason == "stale"
    assert response.degraded.cached_at_ms == START_MS
    assert response.result == original.result
    assert response.cached
    assert harness.dispatcher.statistics().gateway["stale_served"] == 1
    # every attempt was unreachable, so the advisory signal flips
    assert not harness.connectivity.is_online


def test_static_rates_when_no_provider_answers(clock, executor):
    harness = Harness([rates_provider("fx")], clock=clock, executor=executor)
    executor.respond("fx", _server_error())
    response = harness.request("rates", "pair", {"base": "GBP", "quote": "EUR"})
    assert response.degraded.reason == "static"
    assert round(100 * response.result.quotes["EUR"], 2) == 111.84
    assert harness.dispatcher.statistics().gateway["static_served"] == 1


def test_exhaustion_carries_attempt_log(clock, executor):
    harness = Harness(
        [weather_provider("p1", priority=3), weather_provider("p2", priority=2), weather_provider("off", enabled=False)],
        clock=clock,
        executor=executor,
    )
    executor.respond("p1", _server_error())
    with pytest.raises(AllProvidersExhaustedError) as info:
        harness.request("weather", "current", LONDON)
    error = info.value
    assert [(a.provider, a.classification) for a in error.attempts] == [
        ("p1", Classification.PROVIDER_SERVER_ERROR),
        ("p2", Classification.PROVIDER_UNREACHABLE),
    ]
    assert [(s.provider, s.reason) for s in error.skipped] == [("off", "disabled")]
    assert harness.dispatcher.statistics().gateway["exhausted"] == 1
    # a server error proves the network works
    assert harness.connectivity.is_online


def test_no_provider_configured(clock, executor):
    harness = Harness([], clock=clock, executor=executor)
    with pytest.raises(AllProvidersExhaustedError) as info:
        harness.request("chat", "completion", {"prompt": "hi"})
    assert info.value.detail == "no provider configured"
    assert info.value.attempts == [] and info.value.skipped == []


def test_breaker_open_skip_is_recorded(clock, executor):
    harness = Harness([weather_provider("p1")], clock=clock, executor=executor, open_threshold=1)
    with pytest.raises(AllProvidersExhaustedError):
        harness.request("weather", "current", LONDON)
    with pytest.raises(AllProvidersExhaustedError) as info:
        harness.request("weather", "current", LONDON)
    assert info.value.attempts == []
    assert [s.reason for s in info.value.skipped] == ["breaker_open"]
    assert executor.called() == ["p1"]


def test_concurrent_identical_requests_coalesce(clock, executor):
    harness = Harness([weather_provider("p1")], clock=clock, executor=executor)
    release = threading.Event()

    def slow(provider, descriptor, token):
        release.wait(5)
        return ok(weatherapi_current_body())

    executor.respond("p1", slow)
    results = []
    lock = threading.Lock()

    def caller():
        response = harness.request("weather", "current", LONDON)
        with lock:
            results.append(response)

    leader = threading.Thread(target=caller)
    leader.start()
    deadline = time.monotonic() + 5
    while not executor.calls and time.monotonic() < deadline:
        time.sleep(0.005)
    followers = [threading.Thread(target=caller) for _ in range(5)]
    for t in followers:
        t.start()
    time.sleep(0.2)
    release.set()
    for t in [leader, *followers]:
        t.join(5)

    assert len(results) == 6
    assert executor.called() == ["p1"]
    assert len({r.result.observed.temperature_c for r in results}) == 1
    stats = harness.dispatcher.statistics().gateway
    assert stats["coalesced"] + stats["cache_hits"] == 5


def test_cancellation_releases_limiter_slot(clock, executor):
    harness = Harness([weather_provider("p1", max_requests=1)], clock=clock, executor=executor)
    token = CancellationToken()

    def cancelled(provider, descriptor, tok):
        tok.cancel("user closed the app")
        raise CancelledError("user closed the app")

    executor.script("p1", cancelled)
    with pytest.raises(CancelledError):
        harness.request("weather", "current", LONDON, RequestOptions(cancel=token))
    assert harness.limiter.admissions("p1") == ()
    assert harness.breakers.consecutive_failures("p1") == 0
    stats = harness.dispatcher.statistics()
    assert stats.gateway["cancelled"] == 1
    assert stats.providers["p1"].cancelled == 1
    assert stats.providers["p1"].in_flight == 0
    # the slot is usable again
    executor.respond("p1", ok(weatherapi_current_body()))
    assert harness.request("weather", "current", LONDON).provider == "p1"


def test_cancellation_between_attempts_stops_the_walk(clock, executor):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    token = CancellationToken()

    def fail_then_cancel(provider, descriptor, tok):
        tok.cancel()
        return _server_error()

    executor.script("p1", fail_then_cancel)
    with pytest.raises(CancelledError):
        harness.request("weather", "current", LONDON, RequestOptions(cancel=token))
    assert executor.called() == ["p1"]


def test_already_cancelled_request_does_no_work(clock, executor):
    harness = Harness([weather_provider("p1")], clock=clock, executor=executor)
    token = CancellationToken()
    token.cancel()
    with pytest.raises(CancelledError):
        harness.request("weather", "current", LONDON, RequestOptions(cancel=token))
    assert executor.calls == []


def test_caller_error_stops_the_walk(clock, executor):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.script("p1", fail(Classification.CALLER_ERROR, status=400, detail="HTTP 400: No matching location"))
    with pytest.raises(CallerError) as info:
        harness.request("weather", "current", {"location": "Atlantis"})
    assert info.value.provider == "p1"
    assert executor.called() == ["p1"]
    assert harness.breakers.consecutive_failures("p1") == 0
    assert harness.dispatcher.statistics().gateway["caller_errors"] == 1


def test_unknown_currency_from_normalizer_is_a_caller_error(clock, executor):
    harness = Harness([rates_provider("fx")], clock=clock, executor=executor)
    executor.respond("fx", ok(exchangerate_body()))
    with pytest.raises(CallerError, match="XYZ"):
        harness.request("rates", "pair", {"base": "USD", "quote": "XYZ"})
    assert harness.breakers.consecutive_failures("fx") == 0


@pytest.mark.parametrize(
    ("service", "operation", "args"),
    [
        ("weather", "forecast", {"location": "Oslo", "days": 30}),
        ("rates", "latest", {"base": "USD", "symbols": 5}),
        ("rates", "latest", {"base": "USD", "symbols": {"EUR": 1}}),
        ("rates", "latest", {"base": "USD", "symbols": ["EUR", 7]}),
    ],
)
def test_invalid_arguments_never_reach_providers(clock, executor, service, operation, args):
    harness = Harness([weather_provider("p1"), rates_provider("fx")], clock=clock, executor=executor)
    with pytest.raises(CallerError):
        harness.request(service, operation, args)
    assert executor.calls == []


def test_malformed_body_fails_over(clock, executor):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.script("p1", ok({"current": {"humidity": 5}}))
    executor.respond("p2", ok(weatherapi_current_body()))
    assert harness.request("weather", "current", LONDON).provider == "p2"
    assert harness.breakers.consecutive_failures("p1") == 1


def test_wrongly_shaped_chat_body_fails_over(clock, executor):
    harness = Harness([chat_provider("a", priority=10), chat_provider("b", priority=1)], clock=clock, executor=executor)
    broken = openai_chat_body()
    broken["choices"][0]["message"] = "not an object"
    executor.script("a", ok(broken))
    executor.respond("b", ok(openai_chat_body("from b")))
    response = harness.request("chat", "completion", {"prompt": "hi"})
    assert (response.provider, response.result.text) == ("b", "from b")
    assert harness.breakers.consecutive_failures("a") == 1


def test_unexpected_executor_error_fails_over(clock, executor):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.script("p1", RuntimeError("socket exploded"))
    executor.respond("p2", ok(weatherapi_current_body()))
    response = harness.request("weather", "current", LONDON)
    assert response.provider == "p2"
    assert harness.breakers.state("p1").last_error == "RuntimeError: socket exploded"


def test_half_open_attempt_that_blows_up_reopens_the_breaker(clock, executor, monkeypatch):
    harness = Harness([chat_provider("a")], clock=clock, executor=executor, open_threshold=1)
    executor.script("a", fail(Classification.PROVIDER_SERVER_ERROR, status=500))
    with pytest.raises(AllProvidersExhaustedError):
        harness.request("chat", "completion", {"prompt": "hi"})
    assert harness.breakers.state("a").state is BreakerState.OPEN

    def broken(descriptor, dialect, raw, *, provider=None):
        raise RuntimeError("mapper bug")

    monkeypatch.setattr(harness.dispatcher.normalizer, "normalize", broken)
    executor.respond("a", ok(openai_chat_body()))
    clock.advance(60_000)
    with pytest.raises(AllProvidersExhaustedError) as info:
        harness.request("chat", "completion", {"prompt": "hi"})
    assert [a.classification for a in info.value.attempts] == [Classification.MALFORMED_RESPONSE]
    snap = harness.breakers.state("a", clock.now_ms())
    assert snap.state is BreakerState.OPEN
    assert not snap.probe_in_flight

    monkeypatch.undo()
    clock.advance(60_000)
    assert harness.request("chat", "completion", {"prompt": "hi"}).provider == "a"
    assert harness.breakers.state("a").state is BreakerState.CLOSED


def test_auth_failure_disables_provider(clock, executor):
    harness = Harness([chat_provider("c1", priority=2), chat_provider("c2", priority=1)], clock=clock, executor=executor)
    executor.script("c1", fail(Classification.PROVIDER_AUTH_FAILURE, status=401))
    executor.respond("c2", ok(openai_chat_body()))
    assert harness.request("chat", "completion", {"prompt": "hi"}).provider == "c2"
    assert not harness.registry.get("chat", "c1").enabled
    harness.request("chat", "completion", {"prompt": "again"})
    assert executor.called("c1") == ["c1"]
    harness.dispatcher.reset_breaker("c1")
    assert harness.registry.get("chat", "c1").enabled


def test_preferred_provider_moves_to_head(clock, executor):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.respond("p1", ok(weatherapi_current_body()))
    executor.respond("p2", ok(weatherapi_current_body()))
    response = harness.request("weather", "current", LONDON, RequestOptions(preferred_provider="p2", ttl_override_ms=0))
    assert response.provider == "p2"


def test_preferred_provider_with_open_breaker_keeps_order(clock, executor):
    harness = Harness(
        [weather_provider("p1", priority=2), weather_provider("p2", priority=1)],
        clock=clock,
        executor=executor,
        open_threshold=1,
    )
    harness.breakers.record_failure("p2", clock.now_ms(), "down")
    executor.respond("p1", ok(weatherapi_current_body()))
    response = harness.request("weather", "current", LONDON, RequestOptions(preferred_provider="p2"))
    assert response.provider == "p1"


def test_force_offline_skips_live_providers(clock, executor):
    harness = Harness([rates_provider("fx"), weather_provider("w1")], clock=clock, executor=executor)
    offline = RequestOptions(force_offline=True)
    response = harness.request("rates", "pair", {"base": "USD", "quote": "JPY"}, offline)
    assert response.degraded.reason == "static"
    with pytest.raises(AllProvidersExhaustedError, match="offline mode requested"):
        harness.request("weather", "current", LONDON, offline)
    assert executor.calls == []


def test_ttl_override_and_configured_ttl(clock, executor):
    harness = Harness([weather_provider("p1")], clock=clock, executor=executor, ttl_ms={"weather.current": 1_000})
    executor.respond("p1", ok(weatherapi_current_body()))
    harness.request("weather", "current", LONDON)
    clock.advance(1_001)
    assert not harness.request("weather", "current", LONDON).cached
    harness.request("weather", "current", {"location": "Paris"}, RequestOptions(ttl_override_ms=0))
    assert not harness.request("weather", "current", {"location": "Paris"}).cached
    assert executor.called() == ["p1"] * 4


def test_global_budget_stops_the_walk(clock, executor):
    harness = Harness(
        [weather_provider("p1", priority=2), weather_provider("p2", priority=1)],
        clock=clock,
        executor=executor,
        global_budget_ms=100,
    )

    def slow_failure(provider, descriptor, token):
        clock.advance(150)
        return _server_error()

    executor.script("p1", slow_failure)
    with pytest.raises(AllProvidersExhaustedError):
        harness.request("weather", "current", LONDON)
    assert executor.called() == ["p1"]
    # each attempt gets at most the remaining budget
    assert executor.calls[0][2] == 100


def test_health_rows(clock, executor):
    harness = Harness(
        [weather_provider("p1"), rates_provider("fx")],
        clock=clock,
        executor=executor,
        open_threshold=1,
        open_cooldown_ms=5_000,
    )
    with pytest.raises(AllProvidersExhaustedError):
        harness.request("weather", "current", LONDON)
    rows = {row.provider: row for row in harness.dispatcher.health()}
    assert rows["p1"].state is BreakerState.OPEN
    assert rows["p1"].next_attempt_at_ms == START_MS + 5_000
    assert rows["p1"].in_window == 1
    assert rows["fx"].state is BreakerState.CLOSED and rows["fx"].next_attempt_at_ms is None
    assert [r.provider for r in harness.dispatcher.health("rates")] == ["fx"]
    assert rows["p1"].to_dict()["state"] == "open"


def test_attempt_events_carry_normalized_keys(clock, executor, log_events):
    harness = Harness([weather_provider("p1", priority=2), weather_provider("p2", priority=1)], clock=clock, executor=executor)
    executor.script("p1", _server_error())
    executor.respond("p2", ok(weatherapi_current_body()))
    harness.request("weather", "current", LONDON)
    attempts = log_events.events("gateway.attempt")
    assert [(e["provider"], e["attempt"], e["classification"]) for e in attempts] == [
        ("p1", 1, "provider_server_error"),
        ("p2", 2, "success"),
    ]
    for event in attempts + log_events.events("gateway.request.start"):
        assert event["structured"] is True
        assert {"phase", "attempt"} <= set(event)
    assert all("key-p1" not in str(e) for e in log_events.events())
