"""Weather wire dialects: WeatherAPI.com, OpenWeatherMap and the proxy."""

from __future__ import annotations

from ...models import OperationDescriptor, Provider, Service
from .base import RequestSpec, WireDialect, drop_none, join_url

# OpenWeatherMap's free forecast is 3-hourly; eight slots make a day
OWM_SLOTS_PER_DAY = 8


def build_weatherapi(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    forecast = descriptor.operation == "forecast"
    params = drop_none(
        {
            "key": provider.credential,
            "q": descriptor.args["location"],
            "lang": descriptor.language,
            "days": descriptor.args.get("days") if forecast else None,
        }
    )
    path = "forecast.json" if forecast else "current.json"
    return RequestSpec("GET", join_url(provider.base_endpoint, path), params=params)


def build_openweathermap(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    forecast = descriptor.operation == "forecast"
    params = drop_none(
        {
            "q": descriptor.args["location"],
            "appid": provider.credential,
            # always request metric; the normalizer still converts defensively
            "units": "metric",
            "lang": descriptor.language,
            "cnt": descriptor.args.get("days", 0) * OWM_SLOTS_PER_DAY if forecast else None,
        }
    )
    path = "forecast" if forecast else "weather"
    return RequestSpec("GET", join_url(provider.base_endpoint, path), params=params)


def build_proxy(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    forecast = descriptor.operation == "forecast"
    params = drop_none(
        {
            "location": descriptor.args["location"],
            "units": "metric",
            "language": descriptor.language,
            "forecast": "true" if forecast else None,
            "days": descriptor.args.get("days") if forecast else None,
        }
    )
    headers = {"Authorization": f"Bearer {provider.credential}"} if provider.credential else {}
    return RequestSpec("GET", join_url(provider.base_endpoint, "v1/weather/current"), params=params, headers=headers)


WEATHER_DIALECTS = (
    WireDialect(Service.WEATHER, "weatherapi", build_weatherapi),
    WireDialect(Service.WEATHER, "openweathermap", build_openweathermap),
    WireDialect(Service.WEATHER, "proxy", build_proxy),
)

__all__ = ["WEATHER_DIALECTS", "OWM_SLOTS_PER_DAY"]
