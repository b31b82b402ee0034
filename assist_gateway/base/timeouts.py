"""Unified timeout policy for the gateway.

Key Components
--------------
TimeoutPolicy
    Frozen dataclass of the timeout values that are not carried on provider
    records: the default per-provider budget, the health/connectivity probe
    timeout and the optional global per-``request`` budget.

get_timeout_policy()
    Returns a process-cached policy, parsing environment overrides on first
    use and again whenever one of the variables changes. Supported variables
    (all optional, positive seconds):
        GATEWAY_TIMEOUT_DEFAULT_SECONDS
        GATEWAY_TIMEOUT_PROBE_SECONDS
        GATEWAY_TIMEOUT_BUDGET_SECONDS

request_budget_ms()
    Resolves the global budget for one ``request``: the configured value when
    set, otherwise twice the longest candidate timeout.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterable, Optional

import httpx

_ENV_DEFAULT = "GATEWAY_TIMEOUT_DEFAULT_SECONDS"
_ENV_PROBE = "GATEWAY_TIMEOUT_PROBE_SECONDS"
_ENV_BUDGET = "GATEWAY_TIMEOUT_BUDGET_SECONDS"


@dataclass(frozen=True)
class TimeoutPolicy:
    """Container for gateway-level timeout values (seconds).

    Attributes:
        default_provider_seconds: Budget applied to providers whose record
            does not set ``timeout_ms``.
        probe_seconds: Timeout for health and connectivity probes.
        request_budget_seconds: Global cap for a single ``request``; ``None``
            means "twice the longest candidate timeout".
        connect_fraction: Share of a provider budget allotted to the TCP/TLS
            connect phase.
    """

    default_provider_seconds: float = 10.0
    probe_seconds: float = 3.0
    request_budget_seconds: Optional[float] = None
    connect_fraction: float = 0.5


_CACHED: TimeoutPolicy | None = None
_ENV_GUARD: str | None = None


def _parse_env_float(name: str, default: float | None) -> float | None:
    """Read ``name`` as a positive float, falling back to ``default``."""
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def get_timeout_policy() -> TimeoutPolicy:
    """Return the process-cached :class:`TimeoutPolicy`."""
    global _CACHED, _ENV_GUARD  # noqa: PLW0603 - documented module cache
    guard = "/".join(os.getenv(name, "") for name in (_ENV_DEFAULT, _ENV_PROBE, _ENV_BUDGET))
    if _CACHED is not None and _ENV_GUARD == guard:
        return _CACHED
    defaults = TimeoutPolicy()
    _CACHED = TimeoutPolicy(
        default_provider_seconds=float(_parse_env_float(_ENV_DEFAULT, defaults.default_provider_seconds)),
        probe_seconds=float(_parse_env_float(_ENV_PROBE, defaults.probe_seconds)),
        request_budget_seconds=_parse_env_float(_ENV_BUDGET, None),
    )
    _ENV_GUARD = guard
    return _CACHED


def request_budget_ms(candidate_timeouts_ms: Iterable[int], configured_ms: Optional[int] = None) -> int:
    """Resolve the global per-request budget in milliseconds.

    Precedence: explicit ``configured_ms``, then the environment override,
    then ``2 x max(candidate_timeouts_ms)``.
    """
    if configured_ms is not None and configured_ms > 0:
        return int(configured_ms)
    policy = get_timeout_policy()
    if policy.request_budget_seconds is not None:
        return int(policy.request_budget_seconds * 1000)
    longest = max(candidate_timeouts_ms, default=int(policy.default_provider_seconds * 1000))
    return 2 * int(longest)


def httpx_timeout(timeout_ms: int) -> httpx.Timeout:
    """Build an ``httpx.Timeout`` whose every phase fits inside ``timeout_ms``."""
    policy = get_timeout_policy()
    total = max(timeout_ms, 1) / 1000
    return httpx.Timeout(total, connect=max(total * policy.connect_fraction, 0.001))


__all__ = ["TimeoutPolicy", "get_timeout_policy", "request_budget_ms", "httpx_timeout"]
