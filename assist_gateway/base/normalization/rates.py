"""Exchange-rate response mappers into :class:`RatesResult`."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import CallerError, MalformedResponseError
from ..models import OperationDescriptor, RatesResult
from .timestamps import date_to_utc, from_epoch_seconds, parse_date
from .units import as_float


def _quotes(raw: Any, dialect: str) -> Dict[str, float]:
    if not isinstance(raw, dict) or not raw:
        raise MalformedResponseError(f"{dialect} response has no rate table")
    quotes: Dict[str, float] = {}
    for code, value in raw.items():
        factor = as_float(value)
        if factor is not None and factor > 0 and isinstance(code, str):
            quotes[code.upper()] = factor
    if not quotes:
        raise MalformedResponseError(f"{dialect} rate table has no usable entries")
    return quotes


def _select(quotes: Dict[str, float], descriptor: OperationDescriptor) -> Dict[str, float]:
    """Restrict ``quotes`` to what the caller asked for."""
    if descriptor.operation == "pair":
        wanted = [descriptor.args["quote"]]
    else:
        wanted = descriptor.args.get("symbols") or []
    if not wanted:
        return quotes
    base = descriptor.args["base"]
    missing = [code for code in wanted if code not in quotes and code != base]
    if missing:
        raise CallerError(f"unsupported currency code(s): {', '.join(missing)}")
    return {code: (1.0 if code == base else quotes[code]) for code in wanted}


def _rebase(quotes: Dict[str, float], source: str, target: str) -> Dict[str, float]:
    """Re-express a table quoted against ``source`` as one quoted against ``target``."""
    if source == target:
        return quotes
    pivot = quotes.get(target)
    if pivot is None:
        raise CallerError(f"unsupported currency code: {target}")
    rebased = {code: value / pivot for code, value in quotes.items()}
    rebased[source] = 1.0 / pivot
    rebased[target] = 1.0
    return rebased


def _as_of(body: Dict[str, Any], now: datetime, *epoch_keys: str) -> datetime:
    for key in epoch_keys:
        moment = from_epoch_seconds(body.get(key))
        if moment is not None:
            return moment
    day = parse_date(body.get("date"))
    return date_to_utc(day) if day is not None else now


def _base(body: Dict[str, Any], descriptor: OperationDescriptor, *keys: str) -> str:
    for key in keys:
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip().upper()
    return descriptor.args["base"]


def exchangerate(body: Dict[str, Any], descriptor: OperationDescriptor, now: datetime) -> RatesResult:
    """ExchangeRate-API v6 (``conversion_rates``), v4 and open.er-api (``rates``)."""
    table: Optional[Any] = body.get("conversion_rates")
    if table is None:
        table = body.get("rates")
    target = descriptor.args["base"]
    quotes = _rebase(_quotes(table, "exchangerate"), _base(body, descriptor, "base_code", "base"), target)
    return RatesResult(
        base=target,
        as_of=_as_of(body, now, "time_last_update_unix", "time_last_updated"),
        quotes=_select(quotes, descriptor),
    )


def fixer(body: Dict[str, Any], descriptor: OperationDescriptor, now: datetime) -> RatesResult:
    """Fixer quotes against EUR on the free plan; tables are rebased to the requested base."""
    target = descriptor.args["base"]
    quotes = _rebase(_quotes(body.get("rates"), "fixer"), _base(body, descriptor, "base"), target)
    return RatesResult(
        base=target,
        as_of=_as_of(body, now, "timestamp"),
        quotes=_select(quotes, descriptor),
    )


RATES_MAPPERS = {
    "exchangerate": exchangerate,
    "fixer": fixer,
}

__all__ = ["RATES_MAPPERS"]
