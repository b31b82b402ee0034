"""Compiled-in tables usable without network access.

Currency
--------
:class:`StaticRateTable` holds directed pairs (``one FROM buys rate TO``).
A lookup tries, in order, the direct pair, the inverse of the reverse pair,
and a pivot through USD where each leg may itself be direct or inverse.
Anything else is unknown; the table never guesses.

Units
-----
Factor tables for length (metres), mass (grams), volume (litres) and area
(square metres), plus formula-based temperature conversion between Celsius,
Fahrenheit, Kelvin and Rankine. Unit names are case-insensitive and accept
common spellings (``km``, ``kilometre``, ``KILOMETERS``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..errors import CallerError

PIVOT_CURRENCY = "USD"

# One USD buys this much of each currency.
DEFAULT_USD_RATES: Dict[str, float] = {
    "EUR": 0.85,
    "GBP": 0.76,
    "JPY": 149.8,
    "CAD": 1.36,
    "AUD": 1.52,
    "CHF": 0.88,
    "CNY": 7.24,
    "INR": 83.2,
}


def _pair_key(text: str) -> Tuple[str, str]:
    parts = re.split(r"[_\-/:>]+", text.strip().upper())
    if len(parts) != 2 or not all(len(p) == 3 and p.isalpha() for p in parts):
        raise ValueError(f"invalid currency pair {text!r}; expected e.g. 'USD_EUR'")
    return parts[0], parts[1]


@dataclass(frozen=True)
class RateLookup:
    rate: float
    path: str  # "identity" | "direct" | "inverse" | "pivot"


class StaticRateTable:
    """Directed currency pairs with inverse and USD-pivot resolution.

    Parameters
    ----------
    pairs: Mapping[str | tuple, float]
        ``{"USD_EUR": 0.85}`` or ``{("USD", "EUR"): 0.85}``. Non-positive
        rates are rejected.
    as_of_ms: Optional[int]
        Instant the table was compiled, reported as ``as_of`` on static
        results. ``None`` lets the caller stamp the serving time instead.
    """

    def __init__(self, pairs: Mapping[object, float], as_of_ms: Optional[int] = None) -> None:
        self._pairs: Dict[Tuple[str, str], float] = {}
        for key, rate in pairs.items():
            base, quote = _pair_key(key) if isinstance(key, str) else (str(key[0]).upper(), str(key[1]).upper())
            if float(rate) <= 0:
                raise ValueError(f"rate for {base}_{quote} must be positive")
            self._pairs[(base, quote)] = float(rate)
        self.as_of_ms = as_of_ms

    @classmethod
    def from_usd_rates(cls, rates: Mapping[str, float], as_of_ms: Optional[int] = None) -> "StaticRateTable":
        return cls({(PIVOT_CURRENCY, code.upper()): rate for code, rate in rates.items()}, as_of_ms)

    @classmethod
    def default(cls) -> "StaticRateTable":
        return cls.from_usd_rates(DEFAULT_USD_RATES)

    def currencies(self) -> List[str]:
        codes = {code for pair in self._pairs for code in pair}
        return sorted(codes)

    def _leg(self, base: str, quote: str) -> Optional[RateLookup]:
        if base == quote:
            return RateLookup(1.0, "identity")
        direct = self._pairs.get((base, quote))
        if direct is not None:
            return RateLookup(direct, "direct")
        reverse = self._pairs.get((quote, base))
        if reverse is not None:
            return RateLookup(1.0 / reverse, "inverse")
        return None

    def lookup(self, base: str, quote: str) -> Optional[RateLookup]:
        """Return the rate for ``base -> quote`` or ``None`` when it cannot be derived."""
        base, quote = base.upper(), quote.upper()
        found = self._leg(base, quote)
        if found is not None:
            return found
        if PIVOT_CURRENCY in (base, quote):
            return None
        to_pivot = self._leg(base, PIVOT_CURRENCY)
        from_pivot = self._leg(PIVOT_CURRENCY, quote)
        if to_pivot is None or from_pivot is None:
            return None
        return RateLookup(to_pivot.rate * from_pivot.rate, "pivot")

    def quotes(self, base: str, symbols: Optional[Iterable[str]] = None) -> Dict[str, float]:
        """Rates from ``base`` to each of ``symbols`` (default: every known code) that can be derived."""
        wanted = [s.upper() for s in symbols] if symbols else [c for c in self.currencies() if c != base.upper()]
        out: Dict[str, float] = {}
        for code in wanted:
            found = self.lookup(base, code)
            if found is not None:
                out[code] = found.rate
        return out

    def __len__(self) -> int:
        return len(self._pairs)


# ---------------------------------------------------------------- units

LENGTH_METRES: Dict[str, float] = {
    "MM": 0.001, "MILLIMETER": 0.001, "MILLIMETRE": 0.001,
    "CM": 0.01, "CENTIMETER": 0.01, "CENTIMETRE": 0.01,
    "M": 1.0, "METER": 1.0, "METRE": 1.0,
    "KM": 1000.0, "KILOMETER": 1000.0, "KILOMETRE": 1000.0,
    "IN": 0.0254, "INCH": 0.0254, "INCHES": 0.0254,
    "FT": 0.3048, "FOOT": 0.3048, "FEET": 0.3048,
    "YD": 0.9144, "YARD": 0.9144,
    "MI": 1609.344, "MILE": 1609.344,
    "NMI": 1852.0, "NAUTICAL_MILE": 1852.0,
}

MASS_GRAMS: Dict[str, float] = {
    "MG": 0.001, "MILLIGRAM": 0.001,
    "G": 1.0, "GRAM": 1.0,
    "KG": 1000.0, "KILOGRAM": 1000.0,
    "T": 1_000_000.0, "TONNE": 1_000_000.0,
    "OZ": 28.349523125, "OUNCE": 28.349523125,
    "LB": 453.59237, "LBS": 453.59237, "POUND": 453.59237,
    "ST": 6350.29318, "STONE": 6350.29318,
}

VOLUME_LITRES: Dict[str, float] = {
    "ML": 0.001, "MILLILITER": 0.001, "MILLILITRE": 0.001,
    "L": 1.0, "LITER": 1.0, "LITRE": 1.0,
    "FL_OZ": 0.0295735, "FLUID_OUNCE": 0.0295735,
    "CUP": 0.236588,
    "PT": 0.473176, "PINT": 0.473176,
    "QT": 0.946353, "QUART": 0.946353,
    "GAL": 3.78541, "GALLON": 3.78541,
    "IMP_PINT": 0.568261, "IMP_GALLON": 4.54609,
}

AREA_SQUARE_METRES: Dict[str, float] = {
    "SQ_MM": 0.000001, "SQ_CM": 0.0001, "SQ_M": 1.0, "SQ_KM": 1_000_000.0,
    "HA": 10_000.0, "HECTARE": 10_000.0,
    "SQ_IN": 0.00064516, "SQ_FT": 0.09290304, "SQ_YD": 0.83612736,
    "ACRE": 4046.8564224, "SQ_MI": 2_589_988.110336,
}

FACTOR_TABLES: Dict[str, Dict[str, float]] = {
    "length": LENGTH_METRES,
    "mass": MASS_GRAMS,
    "volume": VOLUME_LITRES,
    "area": AREA_SQUARE_METRES,
}

TEMPERATURE_UNITS: Dict[str, str] = {
    "C": "C", "CELSIUS": "C",
    "F": "F", "FAHRENHEIT": "F",
    "K": "K", "KELVIN": "K",
    "R": "R", "RANKINE": "R",
}


def normalize_unit(name: str) -> str:
    """Canonical lookup form: upper case, ``_`` separators, no degree sign or plural ``S``."""
    text = re.sub(r"[\s\-]+", "_", name.strip().upper()).replace("°", "")
    for table in (*FACTOR_TABLES.values(), TEMPERATURE_UNITS):
        if text in table:
            return text
    if text.endswith("ES") and text[:-2] in LENGTH_METRES:
        return text[:-2]
    if text.endswith("S") and any(text[:-1] in table for table in (*FACTOR_TABLES.values(), TEMPERATURE_UNITS)):
        return text[:-1]
    return text


def unit_category(name: str) -> Optional[str]:
    unit = normalize_unit(name)
    if unit in TEMPERATURE_UNITS:
        return "temperature"
    for category, table in FACTOR_TABLES.items():
        if unit in table:
            return category
    return None


def _to_kelvin(value: float, scale: str) -> float:
    if scale == "C":
        return value + 273.15
    if scale == "F":
        return (value - 32.0) * 5.0 / 9.0 + 273.15
    if scale == "R":
        return value * 5.0 / 9.0
    return value


def _from_kelvin(value: float, scale: str) -> float:
    if scale == "C":
        return value - 273.15
    if scale == "F":
        return (value - 273.15) * 9.0 / 5.0 + 32.0
    if scale == "R":
        return value * 9.0 / 5.0
    return value


def convert_units(amount: float, from_unit: str, to_unit: str) -> Tuple[str, float, Optional[float]]:
    """Convert ``amount`` between two units of the same category.

    Returns ``(category, value, factor)`` where ``factor`` is ``None`` for
    temperature (an affine conversion has no single factor).

    Raises:
        CallerError: Unknown unit, or units from different categories.
    """
    source, target = unit_category(from_unit), unit_category(to_unit)
    if source is None:
        raise CallerError(f"unknown unit: {from_unit!r}")
    if target is None:
        raise CallerError(f"unknown unit: {to_unit!r}")
    if source != target:
        raise CallerError(f"cannot convert {source} ({from_unit}) to {target} ({to_unit})")
    if source == "temperature":
        kelvin = _to_kelvin(float(amount), TEMPERATURE_UNITS[normalize_unit(from_unit)])
        if kelvin < 0:
            raise CallerError("temperature below absolute zero")
        return source, _from_kelvin(kelvin, TEMPERATURE_UNITS[normalize_unit(to_unit)]), None
    table = FACTOR_TABLES[source]
    factor = table[normalize_unit(from_unit)] / table[normalize_unit(to_unit)]
    return source, float(amount) * factor, factor


__all__ = [
    "StaticRateTable",
    "RateLookup",
    "DEFAULT_USD_RATES",
    "PIVOT_CURRENCY",
    "FACTOR_TABLES",
    "TEMPERATURE_UNITS",
    "normalize_unit",
    "unit_category",
    "convert_units",
]
