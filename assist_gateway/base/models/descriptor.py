"""
Canonical operation descriptors and request fingerprints.

``build_descriptor`` validates caller arguments for one operation and
canonicalises them (trimmed strings, upper-case currency codes, integer day
counts). The resulting :class:`OperationDescriptor` is what the executor sends
upstream and what :func:`fingerprint` summarises for the cache and the
single-flight table.

Fingerprint format
------------------
``<service>:<operation>:<units>:<language>:<urlencoded sorted args>``

Non-chat string values are case-folded so ``London`` and ``london`` share a
cache entry. Chat prompts are kept verbatim because case changes the answer.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from ..errors import CallerError
from .provider import SERVICE_OPERATIONS, Service, coerce_service

MAX_FORECAST_DAYS = 10
DEFAULT_FORECAST_DAYS = 3

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class OperationDescriptor:
    """A validated, canonical request for one ``service.operation``."""

    service: Service
    operation: str
    args: Dict[str, Any] = field(default_factory=dict, hash=False)
    units: str = "metric"
    language: str = "en"

    @property
    def name(self) -> str:
        return f"{self.service.value}.{self.operation}"

    @property
    def fingerprint(self) -> str:
        return fingerprint(self)


def _require_text(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise CallerError(f"'{key}' is required and must be a non-empty string")
    return _WHITESPACE_RE.sub(" ", value.strip())


def _optional_text(args: Mapping[str, Any], key: str) -> Optional[str]:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise CallerError(f"'{key}' must be a string")
    return value.strip() or None


def _currency(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    code = value.strip().upper() if isinstance(value, str) else ""
    if not _CURRENCY_RE.match(code):
        raise CallerError(f"'{key}' must be a three-letter currency code, got {value!r}")
    return code


def _chat_args(args: Mapping[str, Any]) -> Dict[str, Any]:
    prompt = args.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise CallerError("'prompt' is required and must be a non-empty string")
    out: Dict[str, Any] = {"prompt": prompt}
    for key in ("model", "system"):
        value = _optional_text(args, key)
        if value is not None:
            out[key] = value
    temperature = args.get("temperature")
    if temperature is not None:
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)) or not 0 <= temperature <= 2:
            raise CallerError("'temperature' must be a number in [0, 2]")
        out["temperature"] = float(temperature)
    max_tokens = args.get("max_tokens")
    if max_tokens is not None:
        if isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0:
            raise CallerError("'max_tokens' must be a positive integer")
        out["max_tokens"] = max_tokens
    return out


def _weather_args(operation: str, args: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {"location": _require_text(args, "location")}
    if operation == "forecast":
        days = args.get("days", DEFAULT_FORECAST_DAYS)
        if isinstance(days, str) and days.strip().isdigit():
            days = int(days)
        if isinstance(days, bool) or not isinstance(days, int) or not 1 <= days <= MAX_FORECAST_DAYS:
            raise CallerError(f"'days' must be an integer between 1 and {MAX_FORECAST_DAYS}")
        out["days"] = days
    return out


def _rates_args(operation: str, args: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {"base": _currency(args, "base")}
    if operation == "pair":
        out["quote"] = _currency(args, "quote")
        return out
    symbols = args.get("symbols")
    if symbols:
        if isinstance(symbols, str):
            symbols = [s for s in symbols.split(",") if s.strip()]
        elif not isinstance(symbols, (list, tuple)):
            raise CallerError("'symbols' must be a comma-separated string or a list of currency codes")
        out["symbols"] = sorted({_currency({"s": s}, "s") for s in symbols})
    return out


def build_descriptor(
    service: "Service | str",
    operation: str,
    args: Optional[Mapping[str, Any]] = None,
    *,
    units: str = "metric",
    language: str = "en",
) -> OperationDescriptor:
    """Validate ``args`` for ``service.operation`` and return a descriptor.

    Raises:
        CallerError: Unknown service or operation, or invalid arguments.
    """
    try:
        svc = coerce_service(service)
    except ValueError as exc:
        raise CallerError(f"unknown service: {service!r}") from exc
    op = (operation or "").strip().lower()
    if op not in SERVICE_OPERATIONS[svc]:
        raise CallerError(f"unsupported operation: {svc.value}.{operation}")
    args = dict(args or {})
    if svc is Service.CHAT:
        canonical = _chat_args(args)
    elif svc is Service.WEATHER:
        canonical = _weather_args(op, args)
    else:
        canonical = _rates_args(op, args)
    return OperationDescriptor(
        service=svc,
        operation=op,
        args=canonical,
        units=(units or "metric").strip().lower(),
        language=(language or "en").strip().lower(),
    )


def _fingerprint_value(value: Any, fold: bool) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(_fingerprint_value(v, fold) for v in value)
    if isinstance(value, str):
        return value.casefold() if fold else value
    return str(value)


def fingerprint(descriptor: OperationDescriptor) -> str:
    """Deterministic cache key for ``descriptor``."""
    fold = descriptor.service is not Service.CHAT
    pairs = sorted((k, _fingerprint_value(v, fold)) for k, v in descriptor.args.items())
    return ":".join(
        (
            descriptor.service.value,
            descriptor.operation,
            descriptor.units,
            descriptor.language,
            urlencode(pairs),
        )
    )


__all__ = [
    "OperationDescriptor",
    "build_descriptor",
    "fingerprint",
    "MAX_FORECAST_DAYS",
    "DEFAULT_FORECAST_DAYS",
]
