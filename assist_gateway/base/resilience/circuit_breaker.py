"""Per-provider circuit breakers.

State machine
-------------
``CLOSED``
    ``admit`` always succeeds. A success resets ``consecutive_failures``; a
    failure increments it and, on reaching ``open_threshold``, opens the
    breaker with ``next_attempt_at = now + open_cooldown_ms``.
``OPEN``
    ``admit`` refuses until ``now >= next_attempt_at``, at which point the
    breaker moves to ``HALF_OPEN``. Successes reported by calls admitted
    before the breaker opened do not close it.
``HALF_OPEN``
    Exactly one probe is admitted. Its success closes the breaker; its
    failure re-opens it for another cooldown. ``release`` (cancellation)
    frees the probe slot without a verdict.

All transitions for one provider happen under that provider's lock, so at
most one concurrent caller wins the ``HALF_OPEN`` probe.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Mapping, Optional

from ..logging import get_logger, log_event

DEFAULT_OPEN_THRESHOLD = 5
DEFAULT_OPEN_COOLDOWN_MS = 60_000


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Read-only view of one provider's breaker."""

    provider: str
    state: BreakerState
    consecutive_failures: int
    next_attempt_at_ms: int
    probe_in_flight: bool
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "next_attempt_at_ms": self.next_attempt_at_ms,
            "probe_in_flight": self.probe_in_flight,
            "last_error": self.last_error,
        }


@dataclass
class _Breaker:
    lock: Lock = field(default_factory=Lock)
    state: BreakerState = BreakerState.CLOSED
    consecutive_failures: int = 0
    next_attempt_at: int = 0
    probe_in_flight: bool = False
    last_error: Optional[str] = None


TransitionListener = Callable[[str, BreakerState, BreakerState], None]


class CircuitBreakerRegistry:
    """Breakers keyed by provider name, created lazily on first reference."""

    def __init__(
        self,
        open_threshold: int = DEFAULT_OPEN_THRESHOLD,
        open_cooldown_ms: int = DEFAULT_OPEN_COOLDOWN_MS,
        on_transition: Optional[TransitionListener] = None,
    ) -> None:
        if open_threshold < 1:
            raise ValueError("open_threshold must be >= 1")
        if open_cooldown_ms <= 0:
            raise ValueError("open_cooldown_ms must be > 0")
        self.open_threshold = open_threshold
        self.open_cooldown_ms = open_cooldown_ms
        self._on_transition = on_transition
        self._breakers: Dict[str, _Breaker] = {}
        self._breakers_lock = Lock()
        self._logger = get_logger("assist_gateway.breaker")

    def _breaker(self, name: str) -> _Breaker:
        breaker = self._breakers.get(name)
        if breaker is not None:
            return breaker
        with self._breakers_lock:
            return self._breakers.setdefault(name, _Breaker())

    def _transition(self, name: str, breaker: _Breaker, new_state: BreakerState) -> Optional[tuple]:
        """Set ``new_state`` (caller holds the lock); return the change for notification."""
        old_state = breaker.state
        if old_state is new_state:
            return None
        breaker.state = new_state
        return (name, old_state, new_state, breaker.consecutive_failures, breaker.next_attempt_at)

    def _notify(self, change: Optional[tuple]) -> None:
        if change is None:
            return
        name, old_state, new_state, failures, next_attempt_at = change
        log_event(
            self._logger,
            "breaker.transition",
            provider=name,
            from_state=old_state.value,
            to_state=new_state.value,
            consecutive_failures=failures,
            next_attempt_at_ms=next_attempt_at if new_state is BreakerState.OPEN else None,
        )
        if self._on_transition is not None:
            self._on_transition(name, old_state, new_state)

    def _refresh(self, name: str, breaker: _Breaker, now_ms: int) -> Optional[tuple]:
        if breaker.state is BreakerState.OPEN and now_ms >= breaker.next_attempt_at:
            breaker.probe_in_flight = False
            return self._transition(name, breaker, BreakerState.HALF_OPEN)
        return None

    def admit(self, name: str, now_ms: int) -> bool:
        """Ask to call ``name``; claims the probe slot when ``HALF_OPEN``."""
        breaker = self._breaker(name)
        with breaker.lock:
            change = self._refresh(name, breaker, now_ms)
            if breaker.state is BreakerState.CLOSED:
                allowed = True
            elif breaker.state is BreakerState.OPEN or breaker.probe_in_flight:
                allowed = False
            else:
                breaker.probe_in_flight = True
                allowed = True
        self._notify(change)
        return allowed

    def peek(self, name: str, now_ms: int) -> bool:
        """Answer whether ``admit`` would succeed, without claiming anything."""
        breaker = self._breaker(name)
        with breaker.lock:
            if breaker.state is BreakerState.CLOSED:
                return True
            if breaker.state is BreakerState.OPEN:
                return now_ms >= breaker.next_attempt_at
            return not breaker.probe_in_flight

    def record_success(self, name: str) -> None:
        """Close the breaker; a late success landing while ``OPEN`` is ignored."""
        breaker = self._breaker(name)
        with breaker.lock:
            if breaker.state is BreakerState.OPEN:
                return
            breaker.consecutive_failures = 0
            breaker.probe_in_flight = False
            breaker.last_error = None
            change = self._transition(name, breaker, BreakerState.CLOSED)
        self._notify(change)

    def record_failure(self, name: str, now_ms: int, detail: Optional[str] = None) -> None:
        """Count a provider-fault failure observed at ``now_ms``."""
        breaker = self._breaker(name)
        with breaker.lock:
            breaker.consecutive_failures += 1
            breaker.last_error = detail
            change = None
            if breaker.state is BreakerState.HALF_OPEN:
                breaker.probe_in_flight = False
                breaker.next_attempt_at = now_ms + self.open_cooldown_ms
                change = self._transition(name, breaker, BreakerState.OPEN)
            elif breaker.state is BreakerState.CLOSED and breaker.consecutive_failures >= self.open_threshold:
                breaker.next_attempt_at = now_ms + self.open_cooldown_ms
                change = self._transition(name, breaker, BreakerState.OPEN)
        self._notify(change)

    def release(self, name: str) -> None:
        """Give back a claimed probe slot without recording an outcome."""
        breaker = self._breaker(name)
        with breaker.lock:
            breaker.probe_in_flight = False

    def reset(self, name: str) -> None:
        """Operator override: force ``name`` back to ``CLOSED``."""
        breaker = self._breaker(name)
        with breaker.lock:
            breaker.consecutive_failures = 0
            breaker.probe_in_flight = False
            breaker.next_attempt_at = 0
            breaker.last_error = None
            change = self._transition(name, breaker, BreakerState.CLOSED)
        self._notify(change)

    def consecutive_failures(self, name: str) -> int:
        breaker = self._breakers.get(name)
        return breaker.consecutive_failures if breaker is not None else 0

    def state(self, name: str, now_ms: Optional[int] = None) -> BreakerSnapshot:
        """Snapshot ``name``; with ``now_ms`` an expired ``OPEN`` reads as ``HALF_OPEN``."""
        breaker = self._breaker(name)
        with breaker.lock:
            change = self._refresh(name, breaker, now_ms) if now_ms is not None else None
            snapshot = BreakerSnapshot(
                provider=name,
                state=breaker.state,
                consecutive_failures=breaker.consecutive_failures,
                next_attempt_at_ms=breaker.next_attempt_at,
                probe_in_flight=breaker.probe_in_flight,
                last_error=breaker.last_error,
            )
        self._notify(change)
        return snapshot

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """JSON-compatible state of every breaker that has left the initial state."""
        with self._breakers_lock:
            names = list(self._breakers)
        out: Dict[str, Dict[str, Any]] = {}
        for name in names:
            breaker = self._breakers[name]
            with breaker.lock:
                if breaker.state is BreakerState.CLOSED and breaker.consecutive_failures == 0:
                    continue
                out[name] = {
                    "state": breaker.state.value,
                    "consecutive_failures": breaker.consecutive_failures,
                    "next_attempt_at_ms": breaker.next_attempt_at,
                }
        return out

    def restore(self, entries: Mapping[str, Mapping[str, Any]]) -> int:
        """Load entries produced by :meth:`snapshot`; returns how many applied.

        A restored ``HALF_OPEN`` breaker never has a probe in flight, since the
        process that claimed it is gone.
        """
        applied = 0
        for name, entry in entries.items():
            try:
                state = BreakerState(entry["state"])
                failures = int(entry.get("consecutive_failures", 0))
                next_attempt_at = int(entry.get("next_attempt_at_ms", 0))
            except (KeyError, TypeError, ValueError):
                continue
            if state is BreakerState.CLOSED:
                failures = min(failures, self.open_threshold - 1)
            breaker = self._breaker(name)
            with breaker.lock:
                breaker.state = state
                breaker.consecutive_failures = failures
                breaker.next_attempt_at = next_attempt_at
                breaker.probe_in_flight = False
            applied += 1
        return applied


__all__ = [
    "BreakerState",
    "BreakerSnapshot",
    "CircuitBreakerRegistry",
    "TransitionListener",
    "DEFAULT_OPEN_THRESHOLD",
    "DEFAULT_OPEN_COOLDOWN_MS",
]
