"""Executor layer: one timeout-bounded exchange per call, no retries."""

from .dialects import DialectRegistry, RequestSpec, WireDialect, default_dialects
from .http_executor import HttpExecutor
from .outcome import ExecutionOutcome, Executor

__all__ = [
    "DialectRegistry",
    "RequestSpec",
    "WireDialect",
    "default_dialects",
    "HttpExecutor",
    "ExecutionOutcome",
    "Executor",
]
