"""
Ordered attempt log entries carried by ``AllProvidersExhaustedError``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .classification import Classification


@dataclass(frozen=True)
class AttemptRecord:
    """One executor attempt made during a single ``request``.

    Attributes:
        provider: Provider name that was invoked.
        classification: Outcome classification for the exchange.
        detail: Short human-readable detail (status line, exception text).
        latency_ms: Wall time spent in the executor, when measured.
    """

    provider: str
    classification: Classification
    detail: Optional[str] = None
    latency_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "classification": self.classification.value,
            "detail": self.detail,
            "latency_ms": self.latency_ms,
        }


@dataclass(frozen=True)
class SkipRecord:
    """A candidate that was passed over without an executor call."""

    provider: str
    reason: str  # "rate_limited" | "breaker_open" | "disabled"

    def to_dict(self) -> Dict[str, Any]:
        return {"provider": self.provider, "reason": self.reason}


__all__ = ["AttemptRecord", "SkipRecord"]
