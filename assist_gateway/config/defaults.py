"""assist_gateway.config.defaults
==============================

Central place for the small, stable default values used when a setting is
absent from the configuration file. Only plain constants live here; nothing
in this module performs I/O or imports other gateway packages.

Module Purpose
--------------
- Single import location for thresholds and sizes. Cache TTL defaults live
  beside the dispatcher that applies them.
- The built-in provider list used when a configuration omits ``providers``.
  Providers that need a credential are disabled unless one is configured or
  found in the environment (see ``config.env``).
"""

from __future__ import annotations

from typing import Any, Dict, List

# ---- Breaker / budget ----
DEFAULT_OPEN_THRESHOLD = 5
DEFAULT_OPEN_COOLDOWN_MS = 60_000
DEFAULT_GLOBAL_REQUEST_BUDGET_MS = 120_000

# ---- Provider records ----
DEFAULT_PROVIDER_TIMEOUT_MS = 10_000
DEFAULT_LIMIT_MAX_REQUESTS = 60
DEFAULT_LIMIT_WINDOW_MS = 60_000

# ---- Cache ----
DEFAULT_CACHE_ROOT = "~/.assist_gateway/cache"
DEFAULT_CACHE_MAX_BYTES = 100 * 1024 * 1024
DEFAULT_CACHE_SWEEP_INTERVAL_MS = 3_600_000

# ---- Connectivity ----
DEFAULT_CONNECTIVITY_PROBE_URL = "https://www.gstatic.com/generate_204"
DEFAULT_CONNECTIVITY_PROBE_TIMEOUT_MS = 3_000
DEFAULT_CONNECTIVITY_INTERVAL_MS = 60_000

# ---- Companion proxy ----
DEFAULT_PROXY_URL = "https://mdsaad-proxy-api.onrender.com"

# Built-in providers, in configuration-file form (camelCase keys).
DEFAULT_PROVIDERS: List[Dict[str, Any]] = [
    # chat
    {
        "service": "chat",
        "name": "gemini",
        "baseEndpoint": "https://generativelanguage.googleapis.com/v1beta",
        "priority": 5,
        "limit": {"maxRequests": 60, "windowMillis": 60_000},
        "timeoutMillis": 30_000,
        "capabilities": ["completion"],
    },
    {
        "service": "chat",
        "name": "openrouter",
        "dialect": "openai",
        "baseEndpoint": "https://openrouter.ai/api/v1",
        "priority": 4,
        "limit": {"maxRequests": 100, "windowMillis": 60_000},
        "timeoutMillis": 30_000,
        "capabilities": ["completion"],
    },
    {
        "service": "chat",
        "name": "groq",
        "dialect": "openai",
        "baseEndpoint": "https://api.groq.com/openai/v1",
        "priority": 3,
        "limit": {"maxRequests": 30, "windowMillis": 60_000},
        "timeoutMillis": 30_000,
        "capabilities": ["completion"],
    },
    {
        "service": "chat",
        "name": "deepseek",
        "dialect": "openai",
        "baseEndpoint": "https://api.deepseek.com/v1",
        "priority": 2,
        "limit": {"maxRequests": 50, "windowMillis": 60_000},
        "timeoutMillis": 30_000,
        "capabilities": ["completion"],
    },
    {
        "service": "chat",
        "name": "proxy-chat",
        "dialect": "proxy",
        "baseEndpoint": DEFAULT_PROXY_URL,
        "priority": 1,
        "limit": {"maxRequests": 20, "windowMillis": 60_000},
        "timeoutMillis": 30_000,
        "capabilities": ["completion"],
        "requiresCredential": False,
    },
    # weather
    {
        "service": "weather",
        "name": "weatherapi",
        "baseEndpoint": "https://api.weatherapi.com/v1",
        "priority": 2,
        "limit": {"maxRequests": 60, "windowMillis": 60_000},
        "capabilities": ["current", "forecast"],
    },
    {
        "service": "weather",
        "name": "openweathermap",
        "baseEndpoint": "https://api.openweathermap.org/data/2.5",
        "priority": 1,
        "limit": {"maxRequests": 60, "windowMillis": 60_000},
        "capabilities": ["current", "forecast"],
    },
    {
        "service": "weather",
        "name": "proxy-weather",
        "dialect": "proxy",
        "baseEndpoint": DEFAULT_PROXY_URL,
        "priority": 0,
        "limit": {"maxRequests": 20, "windowMillis": 60_000},
        "capabilities": ["current", "forecast"],
        "requiresCredential": False,
    },
    # rates
    {
        "service": "rates",
        "name": "exchangerate",
        "baseEndpoint": "https://v6.exchangerate-api.com/v6",
        "priority": 2,
        "limit": {"maxRequests": 60, "windowMillis": 60_000},
        "capabilities": ["pair", "latest"],
    },
    {
        "service": "rates",
        "name": "fixer",
        "baseEndpoint": "https://data.fixer.io/api",
        "priority": 1,
        "limit": {"maxRequests": 30, "windowMillis": 60_000},
        "capabilities": ["pair", "latest"],
    },
    {
        "service": "rates",
        "name": "exchangerate-open",
        "dialect": "exchangerate",
        "baseEndpoint": "https://api.exchangerate-api.com/v4",
        "priority": 0,
        "limit": {"maxRequests": 30, "windowMillis": 60_000},
        "capabilities": ["pair", "latest"],
        "requiresCredential": False,
    },
]


__all__ = [
    "DEFAULT_OPEN_THRESHOLD",
    "DEFAULT_OPEN_COOLDOWN_MS",
    "DEFAULT_GLOBAL_REQUEST_BUDGET_MS",
    "DEFAULT_PROVIDER_TIMEOUT_MS",
    "DEFAULT_LIMIT_MAX_REQUESTS",
    "DEFAULT_LIMIT_WINDOW_MS",
    "DEFAULT_CACHE_ROOT",
    "DEFAULT_CACHE_MAX_BYTES",
    "DEFAULT_CACHE_SWEEP_INTERVAL_MS",
    "DEFAULT_CONNECTIVITY_PROBE_URL",
    "DEFAULT_CONNECTIVITY_PROBE_TIMEOUT_MS",
    "DEFAULT_CONNECTIVITY_INTERVAL_MS",
    "DEFAULT_PROXY_URL",
    "DEFAULT_PROVIDERS",
]
