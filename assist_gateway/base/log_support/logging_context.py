"""Structured logging context object for gateway events.

:class:`LogContext` carries the fields shared by every event emitted during a
single ``request``: service, operation, provider and fingerprint. ``to_dict``
merges the ``extra`` mapping and prunes ``None`` values.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional


@dataclass
class LogContext:
    """Structured context for gateway logging events."""

    service: Optional[str] = None
    operation: Optional[str] = None
    provider: Optional[str] = None
    fingerprint: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def with_provider(self, provider: str) -> "LogContext":
        return replace(self, provider=provider, extra=dict(self.extra))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        extra = data.pop("extra", {}) or {}
        data.update({k: v for k, v in extra.items() if v is not None})
        return {k: v for k, v in data.items() if v is not None}


__all__ = ["LogContext"]
