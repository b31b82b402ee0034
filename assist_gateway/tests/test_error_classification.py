"""Unit tests for outcome classification and the caller-facing error types.

Covers:
- HTTP status mapping, including 503 with and without Retry-After.
- Transport exception mapping (connect timeout vs read timeout vs errors).
- Retry-After parsing for delta-seconds and HTTP-dates.
- Breaker and failover properties of each classification.
- AllProvidersExhaustedError summary and dict form.
"""
from __future__ import annotations

import httpx
import pytest

from assist_gateway.base.errors import (
    AllProvidersExhaustedError,
    AttemptRecord,
    CallerError,
    Classification,
    SkipRecord,
    classify_exception,
    classify_status,
    parse_retry_after,
)

NOW = 1_700_000_000_000


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (200, Classification.SUCCESS),
        (204, Classification.SUCCESS),
        (400, Classification.CALLER_ERROR),
        (401, Classification.PROVIDER_AUTH_FAILURE),
        (403, Classification.PROVIDER_AUTH_FAILURE),
        (404, Classification.CALLER_ERROR),
        (408, Classification.PROVIDER_TIMEOUT),
        (418, Classification.CALLER_ERROR),
        (429, Classification.PROVIDER_RATE_LIMITED),
        (500, Classification.PROVIDER_SERVER_ERROR),
        (503, Classification.PROVIDER_SERVER_ERROR),
        (302, Classification.MALFORMED_RESPONSE),
    ],
)
def test_classify_status(status, expected):
    assert classify_status(status) is expected  # nosec B101 - pytest assert in tests


def test_503_with_retry_after_is_rate_limited():
    assert classify_status(503, {"Retry-After": "30"}) is Classification.PROVIDER_RATE_LIMITED
    assert classify_status(503, httpx.Headers({"retry-after": "30"})) is Classification.PROVIDER_RATE_LIMITED


def test_classify_exception_precedence():
    request = httpx.Request("GET", "https://example.test")
    assert classify_exception(httpx.ConnectTimeout("slow", request=request)) is Classification.PROVIDER_UNREACHABLE
    assert classify_exception(httpx.ReadTimeout("slow", request=request)) is Classification.PROVIDER_TIMEOUT
    assert classify_exception(TimeoutError()) is Classification.PROVIDER_TIMEOUT
    assert classify_exception(httpx.ConnectError("refused", request=request)) is Classification.PROVIDER_UNREACHABLE
    assert classify_exception(RuntimeError("tls")) is Classification.PROVIDER_UNREACHABLE


def test_classify_http_status_error_uses_response():
    request = httpx.Request("GET", "https://example.test")
    response = httpx.Response(429, request=request)
    exc = httpx.HTTPStatusError("too many", request=request, response=response)
    assert classify_exception(exc) is Classification.PROVIDER_RATE_LIMITED


def test_parse_retry_after_seconds_and_dates():
    assert parse_retry_after("120", NOW) == NOW + 120_000
    assert parse_retry_after(None, NOW) is None
    assert parse_retry_after("soon", NOW) is None
    # 2023-11-14T22:14:20Z is one minute after NOW
    assert parse_retry_after("Tue, 14 Nov 2023 22:14:20 GMT", NOW) == NOW + 60_000
    # dates in the past clamp to now
    assert parse_retry_after("Mon, 13 Nov 2023 00:00:00 GMT", NOW) == NOW


def test_breaker_and_failover_properties():
    assert Classification.PROVIDER_TIMEOUT.counts_toward_breaker
    assert Classification.MALFORMED_RESPONSE.counts_toward_breaker
    assert not Classification.PROVIDER_RATE_LIMITED.counts_toward_breaker
    assert not Classification.CALLER_ERROR.counts_toward_breaker
    assert Classification.PROVIDER_RATE_LIMITED.allows_failover
    assert not Classification.CALLER_ERROR.allows_failover
    assert not Classification.SUCCESS.allows_failover


def test_exhausted_error_summary_and_dict():
    error = AllProvidersExhaustedError(
        "weather",
        "current",
        [AttemptRecord("a", Classification.PROVIDER_TIMEOUT, "slow", 12)],
        [SkipRecord("b", "breaker_open")],
    )
    assert "a=provider_timeout" in str(error)
    data = error.to_dict()
    assert data["attempts"] == [
        {"provider": "a", "classification": "provider_timeout", "detail": "slow", "latency_ms": 12}
    ]
    assert data["skipped"] == [{"provider": "b", "reason": "breaker_open"}]


def test_exhausted_error_without_attempts_mentions_detail():
    error = AllProvidersExhaustedError("chat", "completion", detail="no provider configured")
    assert "no provider attempted" in str(error)
    assert "no provider configured" in str(error)


def test_caller_error_carries_provider():
    error = CallerError("unknown location", provider="weatherapi")
    assert error.detail == "unknown location"
    assert error.provider == "weatherapi"
