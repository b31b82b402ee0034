"""Exchange-rate wire dialects: ExchangeRate-API (v4/v6, open.er-api) and Fixer."""

from __future__ import annotations

from typing import Any

from ...errors import Classification
from ...models import OperationDescriptor, Provider, Service
from .base import RequestSpec, WireDialect, drop_none, join_url

# Fixer reports failures inside HTTP 200 bodies as {"success": false, "error": {"code": N}}
_FIXER_AUTH_CODES = frozenset({101, 102, 103, 105})
_FIXER_RATE_LIMIT_CODES = frozenset({104, 106})
_FIXER_CALLER_CODES = frozenset({201, 202, 301, 302})


def build_exchangerate(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    """``{base}/{key}/latest/{CODE}`` with a key, ``{base}/latest/{CODE}`` without."""
    path = f"latest/{descriptor.args['base']}"
    if provider.credential:
        path = f"{provider.credential}/{path}"
    return RequestSpec("GET", join_url(provider.base_endpoint, path))


def refine_exchangerate(status: int, body: Any, classification: Classification) -> Classification:
    if classification is not Classification.SUCCESS or not isinstance(body, dict):
        return classification
    if body.get("result") != "error":
        return classification
    error_type = str(body.get("error-type", ""))
    if error_type in {"invalid-key", "inactive-account"}:
        return Classification.PROVIDER_AUTH_FAILURE
    if error_type == "quota-reached":
        return Classification.PROVIDER_RATE_LIMITED
    if error_type in {"unsupported-code", "malformed-request"}:
        return Classification.CALLER_ERROR
    return Classification.PROVIDER_SERVER_ERROR


def build_fixer(provider: Provider, descriptor: OperationDescriptor) -> RequestSpec:
    symbols = list(descriptor.args.get("symbols") or [])
    if descriptor.operation == "pair":
        symbols = [descriptor.args["quote"]]
    if symbols:
        # keep the base in the table so EUR-based responses can be rebased
        symbols = sorted({*symbols, descriptor.args["base"]})
    params = drop_none(
        {
            "access_key": provider.credential,
            "base": descriptor.args["base"],
            "symbols": ",".join(symbols) if symbols else None,
        }
    )
    return RequestSpec("GET", join_url(provider.base_endpoint, "latest"), params=params)


def refine_fixer(status: int, body: Any, classification: Classification) -> Classification:
    if classification is not Classification.SUCCESS or not isinstance(body, dict):
        return classification
    if body.get("success", True):
        return classification
    code = (body.get("error") or {}).get("code")
    if code in _FIXER_AUTH_CODES:
        return Classification.PROVIDER_AUTH_FAILURE
    if code in _FIXER_RATE_LIMIT_CODES:
        return Classification.PROVIDER_RATE_LIMITED
    if code in _FIXER_CALLER_CODES:
        return Classification.CALLER_ERROR
    return Classification.PROVIDER_SERVER_ERROR


RATES_DIALECTS = (
    WireDialect(Service.RATES, "exchangerate", build_exchangerate, refine_exchangerate),
    WireDialect(Service.RATES, "fixer", build_fixer, refine_fixer),
)

__all__ = ["RATES_DIALECTS", "refine_fixer", "refine_exchangerate"]
