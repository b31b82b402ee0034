"""
Caller-facing exception taxonomy.

Executor classifications are recovered inside the dispatcher and never leak
to callers. What does reach the caller boundary is one of the types below:

* :class:`CallerError` for bad arguments, unknown locations and unsupported
  operations. Never retried.
* :class:`AllProvidersExhaustedError` when every candidate failed and the
  fallback chain produced no payload. Carries the ordered attempt log.
* :class:`CancelledError` when the caller's token fired.

Registry and configuration problems raise :class:`DuplicateProviderError`,
:class:`InvalidProviderError` and :class:`ConfigError` at setup time.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from .attempt_record import AttemptRecord, SkipRecord


class GatewayError(Exception):
    """Base class for every exception raised by the gateway."""


class CallerError(GatewayError):
    """The request itself is invalid; no provider can satisfy it."""

    def __init__(self, detail: str, *, provider: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.provider = provider


class AllProvidersExhaustedError(GatewayError):
    """Every candidate failed or was skipped and no fallback applied."""

    def __init__(
        self,
        service: str,
        operation: str,
        attempts: Sequence[AttemptRecord] = (),
        skipped: Sequence[SkipRecord] = (),
        detail: Optional[str] = None,
    ) -> None:
        self.service = service
        self.operation = operation
        self.attempts: List[AttemptRecord] = list(attempts)
        self.skipped: List[SkipRecord] = list(skipped)
        self.detail = detail
        super().__init__(self._summary())

    def _summary(self) -> str:
        if self.attempts:
            tried = ", ".join(f"{a.provider}={a.classification.value}" for a in self.attempts)
        else:
            tried = "no provider attempted"
        message = f"{self.service}.{self.operation}: all providers exhausted ({tried})"
        if self.detail:
            message = f"{message}; {self.detail}"
        return message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service,
            "operation": self.operation,
            "attempts": [a.to_dict() for a in self.attempts],
            "skipped": [s.to_dict() for s in self.skipped],
            "detail": self.detail,
        }


class CancelledError(GatewayError):
    """Raised when a caller-supplied cancellation token fires."""


class DuplicateProviderError(GatewayError):
    """A record with the same ``(service, name)`` is already registered."""


class InvalidProviderError(GatewayError):
    """A provider record failed validation."""


class MalformedResponseError(GatewayError):
    """An upstream 2xx body could not be mapped to the canonical result.

    Raised by the normalizer and converted back into a classification by the
    dispatcher, so callers never see it directly.
    """


class ConfigError(GatewayError):
    """Configuration could not be loaded or validated."""


__all__ = [
    "GatewayError",
    "CallerError",
    "AllProvidersExhaustedError",
    "CancelledError",
    "DuplicateProviderError",
    "InvalidProviderError",
    "MalformedResponseError",
    "ConfigError",
]
