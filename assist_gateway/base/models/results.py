"""
Canonical normalized results returned to callers.

Purpose
-------
Pydantic models describing the provider-independent shape of every result
the gateway hands back. The ``kind`` field is a discriminator so a cached
payload (plain JSON) can be parsed back into the right model with
:func:`parse_result` without knowing which provider produced it.

Units are fixed: Celsius, metres per second, hectopascals, kilometres.
Instants are timezone-aware UTC ``datetime`` values. Optional fields that a
provider did not report stay ``None``; they are never zero-filled.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _Canonical(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ChatResult(_Canonical):
    """Completion text plus usage metadata."""

    kind: Literal["chat"] = "chat"
    text: str
    model_used: str
    tokens_in: Optional[int] = None
    tokens_out: Optional[int] = None
    finish_reason: str = "unknown"


class Location(_Canonical):
    name: str
    country: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


class Observation(_Canonical):
    """Current conditions in canonical units."""

    temperature_c: float
    feels_like_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    pressure_hpa: Optional[float] = None
    wind_mps: Optional[float] = None
    wind_deg: Optional[float] = None
    visibility_km: Optional[float] = None
    condition_code: Optional[str] = None
    condition_text: Optional[str] = None
    observed_at: datetime


class CurrentWeather(_Canonical):
    kind: Literal["weather.current"] = "weather.current"
    location: Location
    observed: Observation


class ForecastDay(_Canonical):
    """One calendar day of forecast data."""

    day: date
    temp_min_c: Optional[float] = None
    temp_max_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_max_mps: Optional[float] = None
    precipitation_mm: Optional[float] = None
    chance_of_rain_pct: Optional[float] = None
    condition_code: Optional[str] = None
    condition_text: Optional[str] = None


class Forecast(_Canonical):
    kind: Literal["weather.forecast"] = "weather.forecast"
    location: Location
    days: List[ForecastDay] = Field(default_factory=list, max_length=10)


class RatesResult(_Canonical):
    """Exchange rates: one unit of ``base`` buys ``quotes[code]`` of ``code``."""

    kind: Literal["rates"] = "rates"
    base: str
    as_of: datetime
    quotes: Dict[str, float]

    @field_validator("quotes")
    @classmethod
    def _positive_quotes(cls, value: Dict[str, float]) -> Dict[str, float]:
        for code, factor in value.items():
            if factor <= 0:
                raise ValueError(f"quote for {code} must be positive")
        return value


class ConversionResult(_Canonical):
    """Outcome of ``Gateway.convert`` for units or currencies."""

    kind: Literal["conversion"] = "conversion"
    category: str
    amount: float
    from_unit: str
    to_unit: str
    value: float
    rate: Optional[float] = None


NormalizedResult = Annotated[
    Union[ChatResult, CurrentWeather, Forecast, RatesResult, ConversionResult],
    Field(discriminator="kind"),
]

_RESULT_ADAPTER: TypeAdapter = TypeAdapter(NormalizedResult)


def parse_result(payload: Mapping[str, Any]) -> BaseModel:
    """Rebuild a canonical result from its JSON form (``result_to_payload``)."""
    return _RESULT_ADAPTER.validate_python(dict(payload))


def result_to_payload(result: BaseModel) -> Dict[str, Any]:
    """Serialise a canonical result to a JSON-compatible mapping."""
    return result.model_dump(mode="json")


__all__ = [
    "ChatResult",
    "Location",
    "Observation",
    "CurrentWeather",
    "ForecastDay",
    "Forecast",
    "RatesResult",
    "ConversionResult",
    "NormalizedResult",
    "parse_result",
    "result_to_payload",
]
