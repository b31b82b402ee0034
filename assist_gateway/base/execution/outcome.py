"""Executor outcome record and the executor protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from ..cancellation import CancellationToken
from ..errors import Classification
from ..models import OperationDescriptor, Provider


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of exactly one upstream exchange.

    Attributes:
        classification: Normalized outcome class.
        status: HTTP status when a response was received.
        body: Parsed JSON body (``None`` when absent or unparseable).
        detail: Short diagnostic text, scrubbed of credentials.
        retry_at_ms: Absolute instant from ``Retry-After`` for rate-limited
            outcomes.
        latency_ms: Time spent in the exchange.
    """

    classification: Classification
    status: Optional[int] = None
    body: Any = None
    detail: Optional[str] = None
    retry_at_ms: Optional[int] = None
    latency_ms: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.classification is Classification.SUCCESS


@runtime_checkable
class Executor(Protocol):
    """Performs one timeout-bounded exchange with a provider.

    Implementations never retry. They raise ``CancelledError`` when ``token``
    fires before or during the exchange and report every other failure as an
    :class:`ExecutionOutcome`.
    """

    def execute(
        self,
        provider: Provider,
        descriptor: OperationDescriptor,
        *,
        timeout_ms: int,
        token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome: ...


__all__ = ["ExecutionOutcome", "Executor"]
