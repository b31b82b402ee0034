"""Response cache: entries, storage backends, TTL index and single-flight."""

from .entry import CacheEntry
from .keys import sanitize, sanitize_namespace
from .response_cache import (
    DEFAULT_MAX_BYTES,
    DEFAULT_SWEEP_INTERVAL_MS,
    CacheLookup,
    CacheStats,
    CacheStatus,
    ResponseCache,
    SweepReport,
)
from .single_flight import SingleFlight
from .stores import CacheStore, DiskCacheStore, MemoryCacheStore, StoredItem

__all__ = [
    "CacheEntry",
    "CacheLookup",
    "CacheStats",
    "CacheStatus",
    "CacheStore",
    "DiskCacheStore",
    "MemoryCacheStore",
    "StoredItem",
    "ResponseCache",
    "SingleFlight",
    "SweepReport",
    "sanitize",
    "sanitize_namespace",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_SWEEP_INTERVAL_MS",
]
