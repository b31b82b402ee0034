"""
Gateway Base Package

Provider-agnostic building blocks of the gateway, each usable on its own:

- Clock and cancellation: injectable time source, cooperative cancel tokens
- Models: provider records, operation descriptors, canonical results
- Admission: provider registry, sliding-window limiter, circuit breakers
- Execution: HTTP executor and wire dialects, result normalization
- Caching: TTL response cache, disk/memory stores, single-flight table
- Fallback: stale-cache and static-table degradation, connectivity signal
- Routing: the failover dispatcher tying the pieces together
"""

from .cancellation import CancellationToken, CancelledError
from .clock import Clock, ManualClock, SystemClock
from .errors import (
    AllProvidersExhaustedError,
    AttemptRecord,
    CallerError,
    Classification,
    ConfigError,
    GatewayError,
    SkipRecord,
)
from .models import (
    OperationDescriptor,
    Provider,
    RequestOptions,
    Service,
    build_descriptor,
    make_provider,
)
from .routing import Dispatcher, HealthEntry

__all__ = [
    "CancellationToken",
    "CancelledError",
    "Clock",
    "ManualClock",
    "SystemClock",
    "AllProvidersExhaustedError",
    "AttemptRecord",
    "CallerError",
    "Classification",
    "ConfigError",
    "GatewayError",
    "SkipRecord",
    "OperationDescriptor",
    "Provider",
    "RequestOptions",
    "Service",
    "build_descriptor",
    "make_provider",
    "Dispatcher",
    "HealthEntry",
]
