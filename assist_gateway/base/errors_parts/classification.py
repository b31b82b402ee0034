"""
Executor outcome classifications and the helpers that produce them.

Every upstream exchange ends in exactly one :class:`Classification`. The
mapping follows a fixed precedence so that behaviour is predictable across
dialects:

    1. Transport exceptions (``httpx`` connect/TLS/DNS errors, timeouts).
    2. HTTP status mapping (429, 503 + ``Retry-After``, 5xx, 401/403, 4xx).
    3. Body parseability for 2xx responses (handled by the executor).

The two boolean properties on the enum drive the dispatcher: whether the
breaker counts the failure and whether another provider may be tried.
"""
from __future__ import annotations

from datetime import timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Dict, Mapping, Optional

import httpx


class Classification(str, Enum):
    """Normalized outcome of a single provider exchange."""

    SUCCESS = "success"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    PROVIDER_TIMEOUT = "provider_timeout"
    PROVIDER_RATE_LIMITED = "provider_rate_limited"
    PROVIDER_SERVER_ERROR = "provider_server_error"
    PROVIDER_AUTH_FAILURE = "provider_auth_failure"
    CALLER_ERROR = "caller_error"
    MALFORMED_RESPONSE = "malformed_response"

    @property
    def counts_toward_breaker(self) -> bool:
        return self in _BREAKER_COUNTED

    @property
    def allows_failover(self) -> bool:
        return self not in (Classification.SUCCESS, Classification.CALLER_ERROR)


_BREAKER_COUNTED = frozenset(
    {
        Classification.PROVIDER_UNREACHABLE,
        Classification.PROVIDER_TIMEOUT,
        Classification.PROVIDER_SERVER_ERROR,
        Classification.PROVIDER_AUTH_FAILURE,
        Classification.MALFORMED_RESPONSE,
    }
)


_HTTP_STATUS_MAP: Dict[int, Classification] = {
    400: Classification.CALLER_ERROR,
    401: Classification.PROVIDER_AUTH_FAILURE,
    402: Classification.PROVIDER_AUTH_FAILURE,
    403: Classification.PROVIDER_AUTH_FAILURE,
    404: Classification.CALLER_ERROR,
    408: Classification.PROVIDER_TIMEOUT,
    422: Classification.CALLER_ERROR,
    429: Classification.PROVIDER_RATE_LIMITED,
}


def header_value(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup that also accepts plain dictionaries."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def parse_retry_after(value: Optional[str], now_ms: int) -> Optional[int]:
    """Parse a ``Retry-After`` header into an absolute epoch-ms instant.

    Accepts delta-seconds (``"120"``) and HTTP-dates. Returns ``None`` when the
    header is absent or unparseable.
    """
    if not value:
        return None
    text = value.strip()
    if text.isdigit():
        return now_ms + int(text) * 1000
    try:
        moment = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        return None
    if moment is None:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(now_ms, int(moment.timestamp() * 1000))


def classify_status(status: int, headers: Optional[Mapping[str, str]] = None) -> Classification:
    """Map an HTTP status (plus headers) to a :class:`Classification`.

    2xx statuses map to ``SUCCESS``; body parsing is the caller's concern.
    """
    if 200 <= status < 300:
        return Classification.SUCCESS
    if status == 503 and header_value(headers, "retry-after"):
        return Classification.PROVIDER_RATE_LIMITED
    if status in _HTTP_STATUS_MAP:
        return _HTTP_STATUS_MAP[status]
    if status >= 500:
        return Classification.PROVIDER_SERVER_ERROR
    if 400 <= status < 500:
        return Classification.CALLER_ERROR
    # 1xx/3xx reaching here means redirects were not followed or the upstream misbehaved
    return Classification.MALFORMED_RESPONSE


def classify_exception(exc: BaseException) -> Classification:
    """Classify a transport-level exception raised while talking to a provider.

    Precedence:
        1. Connect timeout before generic timeouts (a connect timeout means the
           provider was never reached).
        2. Other ``httpx`` timeouts and builtin ``TimeoutError``.
        3. Everything else (connection, DNS, TLS, protocol errors) means the
           provider was not reached.
    """
    if isinstance(exc, httpx.ConnectTimeout):
        return Classification.PROVIDER_UNREACHABLE
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return Classification.PROVIDER_TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code, exc.response.headers)
    return Classification.PROVIDER_UNREACHABLE


__all__ = [
    "Classification",
    "classify_status",
    "classify_exception",
    "parse_retry_after",
    "header_value",
    "_HTTP_STATUS_MAP",
]
