"""Gateway composition and caller surface tests.

Covers:
- ``build_gateway`` wiring from settings with injected clock/executor/store.
- ``convert`` for physical units (local) and currencies (live, then static).
- Caller errors for bad amounts and mixed unit kinds.
- Operator actions: enable/disable, breaker persistence, sweeps, health probes.
- Shutdown is idempotent and usable as a context manager.
"""
from __future__ import annotations

import json

import httpx
import pytest

from assist_gateway import build_gateway
from assist_gateway.base.caching import MemoryCacheStore
from assist_gateway.base.errors import AllProvidersExhaustedError, CallerError, Classification
from assist_gateway.base.resilience import BreakerState
from assist_gateway.config import settings_from_mapping

from .helpers import ScriptedExecutor, exchangerate_body, fail, ok, weatherapi_current_body

FX = {
    "service": "rates",
    "name": "fx",
    "dialect": "exchangerate",
    "baseEndpoint": "https://fx.test/v6",
    "credential": "fx-key",
    "priority": 2,
}
WEATHER = {
    "service": "weather",
    "name": "w1",
    "dialect": "weatherapi",
    "baseEndpoint": "https://w1.test/v1",
    "credential": "w1-key",
}


def _settings(providers=(FX, WEATHER), **extra):
    document = {
        "providers": list(providers),
        "cache": {"rootPath": None},
        "connectivity": {"probeUrl": None},
        "defaults": {"openThreshold": 2},
    }
    document.update(extra)
    return settings_from_mapping(document)


def _gateway(clock, executor, settings=None, **kwargs):
    return build_gateway(
        settings or _settings(),
        clock=clock,
        executor=executor,
        cache_store=MemoryCacheStore(),
        **kwargs,
    )


def test_unit_conversion_is_local(clock, executor):
    gateway = _gateway(clock, executor)
    response = gateway.convert(5, "km", "Miles")
    assert response.result.category == "length"
    assert response.result.value == pytest.approx(3.10686, rel=1e-5)
    assert response.provider is None and response.degraded is None
    assert response.fingerprint == "convert:length:km:miles"
    temperature = gateway.convert(100, "C", "F").result
    assert temperature.value == pytest.approx(212.0)
    assert temperature.rate is None
    assert executor.calls == []


def test_currency_conversion_uses_live_rate(clock, executor):
    gateway = _gateway(clock, executor)
    executor.respond("fx", ok(exchangerate_body("USD", {"EUR": 0.9})))
    response = gateway.convert(100, "usd", "eur")
    result = response.result
    assert (result.category, result.from_unit, result.to_unit) == ("currency", "USD", "EUR")
    assert result.value == pytest.approx(90.0)
    assert result.rate == pytest.approx(0.9)
    assert response.provider == "fx" and not response.cached
    assert gateway.convert(1, "USD", "EUR").cached


def test_currency_conversion_falls_back_to_static_table(clock, executor):
    gateway = _gateway(clock, executor)
    executor.respond("fx", fail(Classification.PROVIDER_SERVER_ERROR, status=500))
    response = gateway.convert(100, "GBP", "EUR")
    assert round(response.result.value, 2) == 111.84
    assert response.degraded.reason == "static"
    assert response.provider is None


def test_static_conversion_without_rate_providers(clock, executor):
    gateway = _gateway(clock, executor, _settings(providers=[WEATHER]))
    assert round(gateway.convert(100, "GBP", "EUR").result.value, 2) == 111.84
    with pytest.raises(AllProvidersExhaustedError):
        gateway.convert(1, "USD", "XYZ")


def test_configured_static_rates_replace_defaults(clock, executor):
    settings = _settings(providers=[], fallback={"staticRates": {"USD_EUR": 0.5}})
    gateway = _gateway(clock, executor, settings)
    assert gateway.convert(10, "USD", "EUR").result.value == pytest.approx(5.0)
    with pytest.raises(AllProvidersExhaustedError):
        gateway.convert(10, "USD", "GBP")


@pytest.mark.parametrize(
    ("amount", "source", "target"),
    [
        (True, "km", "m"),
        (float("nan"), "km", "m"),
        (float("inf"), "USD", "EUR"),
        ("10", "km", "m"),
        (1, "km", "EUR"),
        (1, "km", "kg"),
        (1, "dollars", "euros"),
    ],
)
def test_convert_caller_errors(clock, executor, amount, source, target):
    gateway = _gateway(clock, executor)
    with pytest.raises(CallerError):
        gateway.convert(amount, source, target)
    assert executor.calls == []


def test_request_forwarding_and_statistics(clock, executor):
    gateway = _gateway(clock, executor)
    executor.respond("w1", ok(weatherapi_current_body(temp_c=4)))
    response = gateway.request("weather", "current", {"location": "Oslo"})
    assert response.result.observed.temperature_c == 4
    assert gateway.request("weather", "current", {"location": "Oslo"}).cached
    stats = gateway.statistics()
    assert stats.gateway["requests"] == 2
    assert stats.gateway["cache_hits"] == 1
    assert stats.cache["entries"] == 1
    assert stats.cache["namespaces"] == {"weather": 1}
    assert gateway.invalidate("weather") == 1
    assert not gateway.request("weather", "current", {"location": "Oslo"}).cached


def test_set_enabled_removes_provider_from_rotation(clock, executor):
    gateway = _gateway(clock, executor)
    assert gateway.set_enabled("w1", False) == 1
    with pytest.raises(AllProvidersExhaustedError) as info:
        gateway.request("weather", "current", {"location": "Oslo"})
    assert [(s.provider, s.reason) for s in info.value.skipped] == [("w1", "disabled")]
    gateway.reset_breaker("w1")
    executor.respond("w1", ok(weatherapi_current_body()))
    assert gateway.request("weather", "current", {"location": "Oslo"}).provider == "w1"


def test_breaker_state_is_persisted_and_restored(clock, tmp_path):
    path = tmp_path / "state" / "breakers.json"
    settings = _settings(breakerSnapshotPath=str(path))
    executor = ScriptedExecutor().respond("fx", fail(Classification.PROVIDER_SERVER_ERROR, status=500))
    gateway = _gateway(clock, executor, settings)
    gateway.convert(1, "USD", "EUR")
    gateway.convert(1, "USD", "GBP")
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["breakers"]["fx"]["state"] == "open"
    gateway.close()

    restored = _gateway(clock, ScriptedExecutor(), settings)
    rows = {row.provider: row for row in restored.health()}
    assert rows["fx"].state is BreakerState.OPEN
    assert rows["fx"].consecutive_failures == 2
    assert restored.save_breakers() is True


def test_save_breakers_without_store(clock, executor):
    assert _gateway(clock, executor).save_breakers() is False


def test_sweep_cache_reports_removals(clock, executor):
    gateway = _gateway(clock, executor)
    executor.respond("w1", ok(weatherapi_current_body()))
    gateway.request("weather", "current", {"location": "Oslo"})
    clock.advance(30 * 60 * 1000 + 1)
    report = gateway.sweep_cache()
    assert report["expired_removed"] == 1
    assert report["failures"] == 0


def test_connectivity_surface(clock, executor):
    gateway = _gateway(clock, executor)
    status = gateway.connectivity_status()
    assert status.online and not status.known
    assert gateway.check_connectivity() is None
    with pytest.raises(AllProvidersExhaustedError):
        gateway.request("weather", "current", {"location": "Oslo"})
    assert not gateway.connectivity_status().online


def test_probe_health_counts_failures(clock, executor):
    probed = []

    def handler(request):
        probed.append(str(request.url))
        return httpx.Response(503)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    settings = _settings(providers=[{**FX, "healthProbe": "https://fx.test/health"}, WEATHER])
    gateway = _gateway(clock, executor, settings, probe_client=client)
    assert gateway.probe_health() == {"fx": False}
    assert probed == ["https://fx.test/health"]
    assert gateway.health("rates")[0].consecutive_failures == 1
    assert gateway.probe_health("weather") == {}


def test_close_is_idempotent(clock, executor, log_events):
    with _gateway(clock, executor) as gateway:
        pass
    gateway.close()
    assert len(log_events.events("gateway.closed")) == 1


def test_default_settings_build_an_owned_executor(clock):
    gateway = build_gateway(clock=clock, cache_store=MemoryCacheStore())
    try:
        rows = gateway.health()
        assert len(rows) == 11
        assert {row.provider for row in rows if row.enabled} == {"exchangerate-open", "proxy-chat", "proxy-weather"}
    finally:
        gateway.close()
    assert gateway.health()[0].state is BreakerState.CLOSED
