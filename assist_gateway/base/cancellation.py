"""Cooperative cancellation primitives (public API facade).

``CancellationToken`` carries the caller's cancel signal into a ``request``;
``CancelledError`` is raised at the caller boundary when it fires.
"""

from .cancellation_parts.cancellation_token import CancellationToken
from .errors import CancelledError

__all__ = ["CancellationToken", "CancelledError"]
