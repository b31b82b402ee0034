"""Rate limiting package (sliding-window admission per provider)."""

from .sliding_window import LimiterSnapshot, SlidingWindowRateLimiter

__all__ = ["SlidingWindowRateLimiter", "LimiterSnapshot"]
