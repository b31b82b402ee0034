"""Unit conversions into the canonical metric units."""

from __future__ import annotations

from typing import Any, Optional

KPH_PER_MPS = 3.6
MPH_PER_MPS = 2.2369362920544
HPA_PER_INHG = 33.8638866667
KM_PER_MILE = 1.609344


def as_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings to ``float``; anything else is ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def fahrenheit_to_celsius(value: float) -> float:
    return (value - 32.0) * 5.0 / 9.0


def kph_to_mps(value: float) -> float:
    return value / KPH_PER_MPS


def mph_to_mps(value: float) -> float:
    return value / MPH_PER_MPS


def inhg_to_hpa(value: float) -> float:
    return value * HPA_PER_INHG


def miles_to_km(value: float) -> float:
    return value * KM_PER_MILE


def metres_to_km(value: float) -> float:
    return value / 1000.0


def first_number(*candidates: Any) -> Optional[float]:
    """Return the first candidate that coerces to a number."""
    for candidate in candidates:
        number = as_float(candidate)
        if number is not None:
            return number
    return None


__all__ = [
    "as_float",
    "first_number",
    "fahrenheit_to_celsius",
    "kph_to_mps",
    "mph_to_mps",
    "inhg_to_hpa",
    "miles_to_km",
    "metres_to_km",
]
