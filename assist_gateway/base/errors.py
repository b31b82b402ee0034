"""Unified gateway error taxonomy public surface.

This module re-exports the implementations under
``assist_gateway.base.errors_parts`` to maintain a stable import path.
"""

from .errors_parts.attempt_record import AttemptRecord, SkipRecord
from .errors_parts.classification import (
    Classification,
    classify_exception,
    classify_status,
    header_value,
    parse_retry_after,
)
from .errors_parts.gateway_errors import (
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
    "header_value",
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
