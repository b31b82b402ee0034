"""Request routing: the failover dispatcher."""

from .dispatcher import DEFAULT_TTL_MS, Dispatcher, HealthEntry

__all__ = ["Dispatcher", "HealthEntry", "DEFAULT_TTL_MS"]
