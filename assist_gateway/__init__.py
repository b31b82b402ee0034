"""assist_gateway package

Multi-provider request gateway for chat completions, weather and exchange
rates.

Purpose:
    Give an assistant application one ``request`` call per capability while
    the gateway orders providers, enforces per-provider rate limits, opens
    circuit breakers on failing upstreams, coalesces identical concurrent
    requests, caches normalized results and degrades to stale or static data
    when nothing live answers. Packaging is configured via the repository
    root ``pyproject.toml``.

Public API (re-exported):
    - Version: ``__version__``
    - Composition: :func:`build_gateway`, :class:`Gateway`, :func:`load_settings`
    - Requests: :class:`RequestOptions`, :class:`GatewayResponse`,
      :class:`Degradation`, :class:`CancellationToken`
    - Exceptions: :class:`GatewayError`, :class:`CallerError`,
      :class:`AllProvidersExhaustedError`, :class:`CancelledError`,
      :class:`ConfigError`

Example:
    >>> from assist_gateway import build_gateway, RequestOptions
    >>> with build_gateway() as gateway:  # doctest: +SKIP
    ...     reply = gateway.request("weather", "current", {"location": "London"})
    ...     print(reply.result.observed.temperature_c, reply.provider)
"""

from .base.cancellation import CancellationToken
from .base.errors import (
    AllProvidersExhaustedError,
    CallerError,
    CancelledError,
    ConfigError,
    GatewayError,
)
from .base.models import Degradation, GatewayResponse, RequestOptions, Service
from .config import GatewaySettings, load_settings
from .gateway import Gateway, build_gateway

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Composition
    "Gateway",
    "build_gateway",
    "GatewaySettings",
    "load_settings",
    # Requests
    "Service",
    "RequestOptions",
    "GatewayResponse",
    "Degradation",
    "CancellationToken",
    # Exceptions
    "GatewayError",
    "CallerError",
    "AllProvidersExhaustedError",
    "CancelledError",
    "ConfigError",
]
