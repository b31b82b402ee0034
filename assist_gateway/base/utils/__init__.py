"""Small filesystem helpers shared by the cache and breaker snapshot."""

from .atomic_file import atomic_write_text

__all__ = ["atomic_write_text"]
