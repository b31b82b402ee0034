"""Shared wire-dialect plumbing.

A dialect turns an :class:`OperationDescriptor` into an HTTP request for one
upstream API family and, optionally, refines the executor's classification
by looking at the body (some APIs report failures inside 2xx bodies or use
400 for bad keys).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from ...errors import Classification
from ...models import OperationDescriptor, Provider, Service


@dataclass(frozen=True)
class RequestSpec:
    """Concrete HTTP request produced by a dialect."""

    method: str
    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)


RequestBuilder = Callable[[Provider, OperationDescriptor], RequestSpec]
BodyRefiner = Callable[[int, Any, Classification], Classification]


@dataclass(frozen=True)
class WireDialect:
    """Request builder plus optional classification refiner for one API family."""

    service: Service
    name: str
    build_request: RequestBuilder
    refine: Optional[BodyRefiner] = None

    def classify(self, status: int, body: Any, classification: Classification) -> Classification:
        if self.refine is None:
            return classification
        return self.refine(status, body, classification)


def join_url(base: str, path: str) -> str:
    """Join ``base`` and ``path`` with exactly one slash."""
    if not path:
        return base
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


def drop_none(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in mapping.items() if v is not None}


class DialectRegistry:
    """Lookup table of dialects keyed by ``(service, dialect name)``."""

    def __init__(self) -> None:
        self._dialects: Dict[Tuple[Service, str], WireDialect] = {}

    def add(self, dialect: WireDialect) -> WireDialect:
        self._dialects[(dialect.service, dialect.name)] = dialect
        return dialect

    def get(self, service: Service, name: str) -> Optional[WireDialect]:
        return self._dialects.get((service, name))

    def names(self, service: Service) -> list[str]:
        return sorted(name for (svc, name) in self._dialects if svc is service)


__all__ = ["RequestSpec", "RequestBuilder", "BodyRefiner", "WireDialect", "DialectRegistry", "join_url", "drop_none"]
