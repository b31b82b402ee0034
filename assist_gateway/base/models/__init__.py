"""Typed records and canonical results shared by every gateway component.

Prefer importing from ``assist_gateway.base.models`` for the stable surface.
"""

from .descriptor import (
    DEFAULT_FORECAST_DAYS,
    MAX_FORECAST_DAYS,
    OperationDescriptor,
    build_descriptor,
    fingerprint,
)
from .provider import SERVICE_OPERATIONS, Provider, RateLimit, Service, coerce_service, make_provider
from .response import Degradation, GatewayResponse, RequestOptions
from .results import (
    ChatResult,
    ConversionResult,
    CurrentWeather,
    Forecast,
    ForecastDay,
    Location,
    NormalizedResult,
    Observation,
    RatesResult,
    parse_result,
    result_to_payload,
)

__all__ = [
    "DEFAULT_FORECAST_DAYS",
    "MAX_FORECAST_DAYS",
    "OperationDescriptor",
    "build_descriptor",
    "fingerprint",
    "SERVICE_OPERATIONS",
    "Provider",
    "RateLimit",
    "Service",
    "coerce_service",
    "make_provider",
    "Degradation",
    "GatewayResponse",
    "RequestOptions",
    "ChatResult",
    "ConversionResult",
    "CurrentWeather",
    "Forecast",
    "ForecastDay",
    "Location",
    "NormalizedResult",
    "Observation",
    "RatesResult",
    "parse_result",
    "result_to_payload",
]
