"""Weather response mappers (one per dialect) into canonical weather results.

Mappers receive the parsed upstream body and return either
:class:`CurrentWeather` or a list of :class:`ForecastDay` plus the
:class:`Location`. A response without a current temperature is malformed;
every other field is optional and stays ``None`` when absent.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import MalformedResponseError
from ..models import CurrentWeather, ForecastDay, Location, Observation, OperationDescriptor
from .timestamps import from_epoch_seconds, local_date, parse_date, parse_local
from .units import (
    as_float,
    fahrenheit_to_celsius,
    first_number,
    inhg_to_hpa,
    kph_to_mps,
    metres_to_km,
    miles_to_km,
    mph_to_mps,
)


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _code(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    return str(value)


def _celsius(c_value: Any, f_value: Any = None) -> Optional[float]:
    celsius = as_float(c_value)
    if celsius is not None:
        return celsius
    fahrenheit = as_float(f_value)
    return fahrenheit_to_celsius(fahrenheit) if fahrenheit is not None else None


def _wind(kph: Any, mph: Any = None) -> Optional[float]:
    value = as_float(kph)
    if value is not None:
        return kph_to_mps(value)
    value = as_float(mph)
    return mph_to_mps(value) if value is not None else None


def _pressure(mb: Any, inches: Any = None) -> Optional[float]:
    value = as_float(mb)
    if value is not None:
        return value
    value = as_float(inches)
    return inhg_to_hpa(value) if value is not None else None


def _visibility(km: Any, miles: Any = None) -> Optional[float]:
    value = as_float(km)
    if value is not None:
        return value
    value = as_float(miles)
    return miles_to_km(value) if value is not None else None


def _require_temperature(value: Optional[float], dialect: str) -> float:
    if value is None:
        raise MalformedResponseError(f"{dialect} current weather has no temperature")
    return value


def split_location(text: str) -> Tuple[str, Optional[str]]:
    """Split ``"London, UK"`` into ``("London", "UK")``."""
    name, sep, country = text.rpartition(",")
    if not sep:
        return text.strip(), None
    return name.strip() or country.strip(), country.strip() or None


def _location(raw: Mapping[str, Any], descriptor: OperationDescriptor, **keys: str) -> Location:
    name = _text(raw.get(keys.get("name", "name")))
    country = _text(raw.get(keys.get("country", "country")))
    if name is None:
        name, fallback_country = split_location(descriptor.args["location"])
        country = country or fallback_country
    return Location(
        name=name,
        country=country,
        lat=as_float(raw.get(keys.get("lat", "lat"))),
        lon=as_float(raw.get(keys.get("lon", "lon"))),
    )


# --------------------------------------------------------------- WeatherAPI


def weatherapi_current(body: Dict[str, Any], descriptor: OperationDescriptor, now: datetime) -> CurrentWeather:
    current = body.get("current")
    if not isinstance(current, dict):
        raise MalformedResponseError("weatherapi response has no 'current' object")
    raw_location = _dict(body.get("location"))
    condition = _dict(current.get("condition"))
    observed_at = (
        from_epoch_seconds(current.get("last_updated_epoch"))
        or parse_local(current.get("last_updated"), raw_location.get("tz_id"))
        or now
    )
    return CurrentWeather(
        location=_location(raw_location, descriptor),
        observed=Observation(
            temperature_c=_require_temperature(_celsius(current.get("temp_c"), current.get("temp_f")), "weatherapi"),
            feels_like_c=_celsius(current.get("feelslike_c"), current.get("feelslike_f")),
            humidity_pct=as_float(current.get("humidity")),
            pressure_hpa=_pressure(current.get("pressure_mb"), current.get("pressure_in")),
            wind_mps=_wind(current.get("wind_kph"), current.get("wind_mph")),
            wind_deg=as_float(current.get("wind_degree")),
            visibility_km=_visibility(current.get("vis_km"), current.get("vis_miles")),
            condition_code=_code(condition.get("code")),
            condition_text=_text(condition.get("text")),
            observed_at=observed_at,
        ),
    )


def weatherapi_forecast(body: Dict[str, Any], descriptor: OperationDescriptor) -> Tuple[Location, List[ForecastDay]]:
    forecast = body.get("forecast")
    if not isinstance(forecast, dict) or not isinstance(forecast.get("forecastday"), list):
        raise MalformedResponseError("weatherapi response has no 'forecast.forecastday' list")
    days: List[ForecastDay] = []
    for entry in forecast["forecastday"]:
        entry = _dict(entry)
        day = parse_date(entry.get("date"))
        if day is None:
            continue
        stats = _dict(entry.get("day"))
        condition = _dict(stats.get("condition"))
        precip = as_float(stats.get("totalprecip_mm"))
        if precip is None and as_float(stats.get("totalprecip_in")) is not None:
            precip = as_float(stats.get("totalprecip_in")) * 25.4
        days.append(
            ForecastDay(
                day=day,
                temp_min_c=_celsius(stats.get("mintemp_c"), stats.get("mintemp_f")),
                temp_max_c=_celsius(stats.get("maxtemp_c"), stats.get("maxtemp_f")),
                humidity_pct=as_float(stats.get("avghumidity")),
                wind_max_mps=_wind(stats.get("maxwind_kph"), stats.get("maxwind_mph")),
                precipitation_mm=precip,
                chance_of_rain_pct=as_float(stats.get("daily_chance_of_rain")),
                condition_code=_code(condition.get("code")),
                condition_text=_text(condition.get("text")),
            )
        )
    return _location(_dict(body.get("location")), descriptor), days


# ----------------------------------------------------------- OpenWeatherMap


def _owm_condition(entry: Mapping[str, Any]) -> Dict[str, Any]:
    weather = entry.get("weather")
    if isinstance(weather, list) and weather and isinstance(weather[0], dict):
        return weather[0]
    return {}


def openweathermap_current(body: Dict[str, Any], descriptor: OperationDescriptor, now: datetime) -> CurrentWeather:
    main = _dict(body.get("main"))
    wind = _dict(body.get("wind"))
    coord = _dict(body.get("coord"))
    condition = _owm_condition(body)
    visibility_m = as_float(body.get("visibility"))
    location = _location(
        {
            "name": body.get("name"),
            "country": _dict(body.get("sys")).get("country"),
            "lat": coord.get("lat"),
            "lon": coord.get("lon"),
        },
        descriptor,
    )
    return CurrentWeather(
        location=location,
        observed=Observation(
            temperature_c=_require_temperature(as_float(main.get("temp")), "openweathermap"),
            feels_like_c=as_float(main.get("feels_like")),
            humidity_pct=as_float(main.get("humidity")),
            pressure_hpa=as_float(main.get("pressure")),
            wind_mps=as_float(wind.get("speed")),
            wind_deg=as_float(wind.get("deg")),
            visibility_km=metres_to_km(visibility_m) if visibility_m is not None else None,
            condition_code=_code(condition.get("id")),
            condition_text=_text(condition.get("description")) or _text(condition.get("main")),
            observed_at=from_epoch_seconds(body.get("dt")) or now,
        ),
    )


def openweathermap_forecast(body: Dict[str, Any], descriptor: OperationDescriptor) -> Tuple[Location, List[ForecastDay]]:
    """Fold OpenWeatherMap's 3-hourly slots into calendar days (city local time)."""
    slots = body.get("list")
    if not isinstance(slots, list):
        raise MalformedResponseError("openweathermap response has no 'list' array")
    city = _dict(body.get("city"))
    offset = city.get("timezone", 0)
    grouped: Dict[Any, List[Dict[str, Any]]] = {}
    for slot in slots:
        slot = _dict(slot)
        day = local_date(slot.get("dt"), offset)
        if day is not None:
            grouped.setdefault(day, []).append(slot)

    days: List[ForecastDay] = []
    for day in sorted(grouped):
        entries = grouped[day]
        mains = [_dict(e.get("main")) for e in entries]
        lows = [v for v in (as_float(m.get("temp_min", m.get("temp"))) for m in mains) if v is not None]
        highs = [v for v in (as_float(m.get("temp_max", m.get("temp"))) for m in mains) if v is not None]
        humidity = [v for v in (as_float(m.get("humidity")) for m in mains) if v is not None]
        winds = [v for v in (as_float(_dict(e.get("wind")).get("speed")) for e in entries) if v is not None]
        pops = [v for v in (as_float(e.get("pop")) for e in entries) if v is not None]
        precip = [
            v
            for e in entries
            for v in (as_float(_dict(e.get("rain")).get("3h")), as_float(_dict(e.get("snow")).get("3h")))
            if v is not None
        ]
        midday = min(entries, key=lambda e: abs(((as_float(e.get("dt")) or 0) + (as_float(offset) or 0)) % 86400 - 43200))
        condition = _owm_condition(midday)
        days.append(
            ForecastDay(
                day=day,
                temp_min_c=min(lows) if lows else None,
                temp_max_c=max(highs) if highs else None,
                humidity_pct=sum(humidity) / len(humidity) if humidity else None,
                wind_max_mps=max(winds) if winds else None,
                precipitation_mm=sum(precip) if precip else None,
                chance_of_rain_pct=max(pops) * 100 if pops else None,
                condition_code=_code(condition.get("id")),
                condition_text=_text(condition.get("description")) or _text(condition.get("main")),
            )
        )
    coord = _dict(city.get("coord"))
    location = _location(
        {"name": city.get("name"), "country": city.get("country"), "lat": coord.get("lat"), "lon": coord.get("lon")},
        descriptor,
    )
    return location, days


# --------------------------------------------------------------------- proxy


def _proxy_location(body: Dict[str, Any], descriptor: OperationDescriptor) -> Location:
    raw = body.get("location")
    if isinstance(raw, str) and raw.strip():
        name, country = split_location(raw)
        return Location(name=name, country=country, lat=as_float(body.get("lat")), lon=as_float(body.get("lon")))
    return _location(_dict(raw), descriptor)


def proxy_current(body: Dict[str, Any], descriptor: OperationDescriptor, now: datetime) -> CurrentWeather:
    """Accept both the flat proxy shape and the nested ``{location, current}`` one."""
    current = body.get("current") if isinstance(body.get("current"), dict) else body
    condition = current.get("condition")
    if isinstance(condition, dict):
        condition_text, condition_code = _text(condition.get("text")), _code(condition.get("code"))
    else:
        condition_text, condition_code = _text(condition), None
    temperature = _celsius(first_number(current.get("temp_c"), current.get("temperature")), current.get("temp_f"))
    observed_at = (
        from_epoch_seconds(first_number(current.get("last_updated_epoch"), current.get("observed_at_epoch")))
        or parse_local(current.get("observed_at") or body.get("timestamp"))
        or now
    )
    return CurrentWeather(
        location=_proxy_location(body, descriptor),
        observed=Observation(
            temperature_c=_require_temperature(temperature, "proxy"),
            feels_like_c=_celsius(first_number(current.get("feelslike_c"), current.get("feels_like")), current.get("feelslike_f")),
            humidity_pct=as_float(current.get("humidity")),
            pressure_hpa=_pressure(first_number(current.get("pressure_mb"), current.get("pressure")), current.get("pressure_in")),
            wind_mps=_wind(first_number(current.get("wind_kph"), current.get("wind")), current.get("wind_mph")),
            wind_deg=first_number(current.get("wind_degree"), current.get("wind_deg")),
            visibility_km=_visibility(first_number(current.get("vis_km"), current.get("visibility")), current.get("vis_miles")),
            condition_code=condition_code,
            condition_text=condition_text,
            observed_at=observed_at,
        ),
    )


def proxy_forecast(body: Dict[str, Any], descriptor: OperationDescriptor) -> Tuple[Location, List[ForecastDay]]:
    entries = body.get("forecast")
    if not isinstance(entries, list):
        raise MalformedResponseError("proxy response has no 'forecast' list")
    days: List[ForecastDay] = []
    for entry in entries:
        entry = _dict(entry)
        day = parse_date(entry.get("date"))
        if day is None:
            continue
        condition = entry.get("condition")
        days.append(
            ForecastDay(
                day=day,
                temp_min_c=as_float(entry.get("min_temp")),
                temp_max_c=as_float(entry.get("max_temp")),
                humidity_pct=as_float(entry.get("humidity")),
                chance_of_rain_pct=as_float(entry.get("chance_of_rain")),
                condition_text=_text(condition.get("text") if isinstance(condition, dict) else condition),
            )
        )
    return _proxy_location(body, descriptor), days


CURRENT_MAPPERS = {
    "weatherapi": weatherapi_current,
    "openweathermap": openweathermap_current,
    "proxy": proxy_current,
}

FORECAST_MAPPERS = {
    "weatherapi": weatherapi_forecast,
    "openweathermap": openweathermap_forecast,
    "proxy": proxy_forecast,
}

__all__ = ["CURRENT_MAPPERS", "FORECAST_MAPPERS", "split_location"]
