"""Per-provider sliding-window rate limiter.

Semantics
---------
``admit(provider, now_ms)`` succeeds iff fewer than ``limit.max_requests``
admissions fall inside ``[now_ms - window_ms, now_ms]``. On refusal the
provider is blocked until the oldest admission leaves the window
(``oldest + window_ms``). The window slides; it is never aligned to wall-clock
boundaries.

Two additions over the bare window:

* Tickets. An admission may carry a ticket (any hashable). Re-admitting with a
  ticket that is already in the window returns ``True`` without consuming a
  second slot, and ``release(name, ticket)`` hands the slot back when the
  request was cancelled before reaching the upstream.
* Back-off. ``back_off(name, until_ms)`` blocks the provider until an absolute
  instant, used when an upstream answers 429 or 503 with ``Retry-After``.

``admit`` never blocks. Concurrent admissions of the same provider are
serialised by a per-provider mutex.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Deque, Dict, Hashable, Optional, Tuple

from ..logging import get_logger, log_event
from ..models import Provider


@dataclass(frozen=True)
class LimiterSnapshot:
    """Read-only view of one provider's limiter state."""

    provider: str
    in_window: int
    blocked_until_ms: int
    backoff_until_ms: int


@dataclass
class _WindowState:
    lock: Lock = field(default_factory=Lock)
    admissions: Deque[Tuple[int, Optional[Hashable]]] = field(default_factory=deque)
    window_blocked_until: int = 0
    backoff_until: int = 0

    def prune(self, now_ms: int, window_ms: int) -> None:
        horizon = now_ms - window_ms
        while self.admissions and self.admissions[0][0] < horizon:
            self.admissions.popleft()

    def blocked_until(self) -> int:
        return max(self.window_blocked_until, self.backoff_until)


class SlidingWindowRateLimiter:
    """Sliding-window admission control keyed by provider name."""

    def __init__(self) -> None:
        self._states: Dict[str, _WindowState] = {}
        self._states_lock = Lock()
        self._logger = get_logger("assist_gateway.ratelimit")

    def _state(self, name: str) -> _WindowState:
        state = self._states.get(name)
        if state is not None:
            return state
        with self._states_lock:
            return self._states.setdefault(name, _WindowState())

    def admit(self, provider: Provider, now_ms: int, ticket: Optional[Hashable] = None) -> bool:
        """Try to consume one admission slot for ``provider`` at ``now_ms``."""
        limit = provider.limit
        state = self._state(provider.name)
        with state.lock:
            state.prune(now_ms, limit.window_ms)
            if ticket is not None and any(t == ticket for _, t in state.admissions):
                return True
            blocked_until = state.blocked_until()
            if now_ms < blocked_until:
                refused_until = blocked_until
            elif len(state.admissions) >= limit.max_requests:
                state.window_blocked_until = state.admissions[0][0] + limit.window_ms
                refused_until = state.window_blocked_until
            else:
                state.admissions.append((now_ms, ticket))
                return True
        log_event(
            self._logger,
            "limiter.refused",
            provider=provider.name,
            blocked_until_ms=refused_until,
        )
        return False

    def would_admit(self, provider: Provider, now_ms: int) -> bool:
        """Answer whether ``admit`` would succeed now, without consuming a slot."""
        state = self._state(provider.name)
        with state.lock:
            horizon = now_ms - provider.limit.window_ms
            in_window = sum(1 for ts, _ in state.admissions if ts >= horizon)
            return now_ms >= state.blocked_until() and in_window < provider.limit.max_requests

    def release(self, name: str, ticket: Hashable) -> bool:
        """Return the slot held by ``ticket`` to the window."""
        state = self._state(name)
        with state.lock:
            for entry in state.admissions:
                if entry[1] == ticket:
                    state.admissions.remove(entry)
                    state.window_blocked_until = 0
                    return True
        return False

    def back_off(self, name: str, until_ms: int) -> None:
        """Refuse every admission for ``name`` until ``until_ms``."""
        state = self._state(name)
        with state.lock:
            state.backoff_until = max(state.backoff_until, int(until_ms))
        log_event(self._logger, "limiter.back_off", provider=name, until_ms=until_ms)

    def state(self, name: str, now_ms: Optional[int] = None, window_ms: Optional[int] = None) -> LimiterSnapshot:
        state = self._state(name)
        with state.lock:
            if now_ms is not None and window_ms is not None:
                horizon = now_ms - window_ms
                in_window = sum(1 for ts, _ in state.admissions if ts >= horizon)
            else:
                in_window = len(state.admissions)
            return LimiterSnapshot(
                provider=name,
                in_window=in_window,
                blocked_until_ms=state.blocked_until(),
                backoff_until_ms=state.backoff_until,
            )

    def admissions(self, name: str) -> Tuple[int, ...]:
        """Timestamps currently held in ``name``'s window (oldest first)."""
        state = self._state(name)
        with state.lock:
            return tuple(ts for ts, _ in state.admissions)

    def reset(self, name: Optional[str] = None) -> None:
        with self._states_lock:
            if name is None:
                self._states.clear()
            else:
                self._states.pop(name, None)


__all__ = ["SlidingWindowRateLimiter", "LimiterSnapshot"]
