"""
Caller-boundary request options and responses.

``GatewayResponse`` wraps a canonical result with provenance: which provider
produced it, whether it came from the cache, and, when only the fallback path
succeeded, a :class:`Degradation` describing why.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel

from ..cancellation import CancellationToken
from .results import result_to_payload

DegradedReason = Literal["stale", "static"]


@dataclass(frozen=True)
class Degradation:
    """Annotation on results served from stale cache or a static table."""

    reason: DegradedReason
    cached_at_ms: Optional[int] = None


@dataclass(frozen=True)
class GatewayResponse:
    """Result of ``Gateway.request``.

    Attributes:
        result: Canonical normalized result.
        provider: Provider that produced the payload (``None`` for static data).
        cached: Whether the payload came from the cache (fresh or stale).
        degraded: Set only when the fallback chain produced the result.
        fingerprint: Request fingerprint used for the cache lookup.
    """

    result: BaseModel
    provider: Optional[str]
    cached: bool
    fingerprint: str
    degraded: Optional[Degradation] = None

    @property
    def is_degraded(self) -> bool:
        return self.degraded is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": result_to_payload(self.result),
            "provider": self.provider,
            "cached": self.cached,
            "fingerprint": self.fingerprint,
            "degraded": (
                {"reason": self.degraded.reason, "cached_at_ms": self.degraded.cached_at_ms}
                if self.degraded
                else None
            ),
        }


@dataclass
class RequestOptions:
    """Per-request knobs recognised by ``Gateway.request``.

    Attributes:
        preferred_provider: Moved to the head of the candidate list when it is
            enabled and both the limiter and breaker would admit it.
        force_offline: Skip live providers and go straight to the fallback chain.
        ttl_override_ms: Cache TTL for this request's result (0 disables caching).
        cancel: Cooperative cancellation token.
        units: Unit preference folded into the fingerprint and sent upstream.
        language: Language code folded into the fingerprint and sent upstream.
    """

    preferred_provider: Optional[str] = None
    force_offline: bool = False
    ttl_override_ms: Optional[int] = None
    cancel: Optional[CancellationToken] = None
    units: str = "metric"
    language: str = "en"


__all__ = ["Degradation", "DegradedReason", "GatewayResponse", "RequestOptions"]
