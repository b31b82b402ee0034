"""Errors parts package public surface.

Re-exports individual error taxonomy components for optional direct imports.
Prefer importing from `assist_gateway.base.errors` for the stable surface.
"""

from .attempt_record import AttemptRecord, SkipRecord
from .classification import Classification, classify_exception, classify_status, parse_retry_after
from .gateway_errors import (
    AllProvidersExhaustedError,
    CallerError,
    CancelledError,
    ConfigError,
    DuplicateProviderError,
    GatewayError,
    InvalidProviderError,
    MalformedResponseError,
)

__all__ = [
    "AttemptRecord",
    "SkipRecord",
    "Classification",
    "classify_exception",
    "classify_status",
    "parse_retry_after",
    "GatewayError",
    "CallerError",
    "AllProvidersExhaustedError",
    "CancelledError",
    "DuplicateProviderError",
    "InvalidProviderError",
    "MalformedResponseError",
    "ConfigError",
]
