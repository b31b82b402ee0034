"""assist_gateway.config.env
=========================

Environment variable mapping for provider credentials and ``${VAR}``
interpolation of configuration values.

Design Notes
------------
- ``ENV_MAP`` maps a provider name (or dialect) to its canonical variable.
  Providers that historically accepted several names list them in
  ``ENV_ALIASES`` with the canonical name first.
- Helpers never raise on unknown providers or unset variables; callers
  decide how to proceed.
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

ENV_MAP: Dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "weatherapi": "WEATHERAPI_KEY",
    "openweathermap": "OPENWEATHER_API_KEY",
    "exchangerate": "EXCHANGERATE_API_KEY",
    "fixer": "FIXER_API_KEY",
    "proxy-chat": "ASSIST_GATEWAY_PROXY_TOKEN",
    "proxy-weather": "ASSIST_GATEWAY_PROXY_TOKEN",
}

ENV_ALIASES: Dict[str, Tuple[str, ...]] = {
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "weatherapi": ("WEATHERAPI_KEY", "WEATHER_API_KEY"),
    "openweathermap": ("OPENWEATHER_API_KEY", "OPENWEATHERMAP_API_KEY"),
    "exchangerate": ("EXCHANGERATE_API_KEY", "EXCHANGE_RATE_API_KEY"),
}

_VAR_RE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def is_placeholder(val: Optional[str]) -> bool:
    """Return True if ``val`` looks like a placeholder rather than a real secret.

    Heuristics: contains 'placeholder', 'changeme', 'example' or 'your_', or
    starts with 'test_'. Case-insensitive.
    """
    if val is None:
        return False
    v = str(val).strip().lower()
    return (
        "placeholder" in v
        or "changeme" in v
        or "example" in v
        or "your_" in v
        or v.startswith("test_")
    )


def get_env_var_candidates(*names: str) -> Iterable[str]:
    """Yield acceptable variable names for the first known of ``names``.

    A provider is looked up by its own name first, then by its dialect, so
    ``openrouter`` (dialect ``openai``) resolves ``OPENROUTER_API_KEY`` and
    never ``OPENAI_API_KEY``.
    """
    for name in names:
        key = (name or "").lower()
        canonical = ENV_MAP.get(key)
        if canonical is None:
            continue
        yield canonical
        for alias in ENV_ALIASES.get(key, ()):
            if alias != canonical:
                yield alias
        return


def resolve_credential(*names: str) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(value, variable)`` for the first non-placeholder credential found."""
    for var in get_env_var_candidates(*names):
        val = os.environ.get(var)
        if val and not is_placeholder(val):
            return val, var
    return None, None


def interpolate(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """Replace ``${VAR}`` / ``${VAR:-default}`` inside every string of ``value``.

    Unset variables without a default become the empty string. Dicts and
    lists are walked recursively; other values pass through unchanged.
    """
    env = os.environ if environ is None else environ
    if isinstance(value, str):
        return _VAR_RE.sub(lambda m: env.get(m.group(1), m.group(2) or ""), value)
    if isinstance(value, dict):
        return {k: interpolate(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate(v, env) for v in value]
    return value


__all__ = [
    "ENV_MAP",
    "ENV_ALIASES",
    "is_placeholder",
    "get_env_var_candidates",
    "resolve_credential",
    "interpolate",
]
