"""Pytest configuration for the gateway test suite.

Provides a manual clock, an in-memory cache store, a scripted executor and a
log capture attached to the shared ``assist_gateway`` logger (which does not
propagate to the root logger, so ``caplog`` would miss its records).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List

import pytest

from assist_gateway.base.caching import MemoryCacheStore
from assist_gateway.base.clock import ManualClock
from assist_gateway.base.http import close_all_clients
from assist_gateway.base.logging import BASE_LOGGER_NAME, LOG_LEVEL_ENV, get_logger

from .helpers import START_MS, ScriptedExecutor

_CREDENTIAL_VARS = (
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENROUTER_API_KEY",
    "GROQ_API_KEY",
    "DEEPSEEK_API_KEY",
    "WEATHERAPI_KEY",
    "WEATHER_API_KEY",
    "OPENWEATHER_API_KEY",
    "OPENWEATHERMAP_API_KEY",
    "EXCHANGERATE_API_KEY",
    "EXCHANGE_RATE_API_KEY",
    "FIXER_API_KEY",
    "ASSIST_GATEWAY_PROXY_TOKEN",
    "ASSIST_GATEWAY_CONFIG",
)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear credential and config variables so developer keys never leak into tests."""

    for name in _CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    close_all_clients()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock(START_MS)


@pytest.fixture()
def memory_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture()
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


class EventCapture:
    """Collected ``log_event`` payloads, decoded from their JSON messages."""

    def __init__(self) -> None:
        self.records: List[logging.LogRecord] = []

    def events(self, name: str | None = None) -> List[Dict[str, Any]]:
        out = []
        for record in self.records:
            try:
                payload = json.loads(record.getMessage())
            except ValueError:
                continue
            if isinstance(payload, dict) and (name is None or payload.get("event") == name):
                out.append(payload)
        return out


@pytest.fixture()
def log_events(monkeypatch: pytest.MonkeyPatch) -> Iterator[EventCapture]:
    # get_logger re-applies the env level on every call; pin it so DEBUG survives
    monkeypatch.setenv(LOG_LEVEL_ENV, "DEBUG")
    capture = EventCapture()
    handler = logging.Handler(level=logging.DEBUG)
    handler.emit = capture.records.append  # type: ignore[method-assign]
    base = get_logger(BASE_LOGGER_NAME)
    previous = base.level
    base.setLevel(logging.DEBUG)
    base.addHandler(handler)
    try:
        yield capture
    finally:
        base.removeHandler(handler)
        base.setLevel(previous)
