"""Time and jitter capability for the gateway core.

Purpose
-------
Every timestamp the gateway stores (limiter windows, breaker deadlines, cache
entry ages, fallback ``as_of`` values) is read through a :class:`Clock`. The
core never calls the wall clock directly, which lets tests drive time with
:class:`ManualClock` and keeps limiter/breaker behaviour deterministic.

Units
-----
Instants are integer milliseconds since the Unix epoch (UTC). Durations passed
to ``jitter`` are milliseconds; ``sleep`` takes seconds to match ``time.sleep``.
"""
from __future__ import annotations

import random
import threading
import time
from datetime import datetime, timezone
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Structural contract for time sources used by the gateway."""

    def now_ms(self) -> int: ...

    def sleep(self, seconds: float) -> None: ...

    def jitter(self, max_ms: int) -> int: ...


class SystemClock:
    """Wall-clock implementation backed by :mod:`time` and :mod:`random`."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def jitter(self, max_ms: int) -> int:
        """Return a uniformly distributed duration in ``[0, max_ms]``."""
        if max_ms <= 0:
            return 0
        return self._rng.randint(0, max_ms)


class ManualClock:
    """Driven clock for tests and simulations.

    ``sleep`` advances the clock instead of blocking, and ``jitter`` returns a
    fixed fraction of the requested bound so scenarios stay reproducible.
    """

    def __init__(self, start_ms: int = 0, jitter_fraction: float = 0.0) -> None:
        self._now = int(start_ms)
        self._jitter_fraction = min(max(jitter_fraction, 0.0), 1.0)
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            return self._now

    def advance(self, ms: int) -> int:
        """Move time forward by ``ms`` and return the new instant."""
        if ms < 0:
            raise ValueError("ManualClock cannot move backwards")
        with self._lock:
            self._now += int(ms)
            return self._now

    def set(self, instant_ms: int) -> None:
        with self._lock:
            if instant_ms < self._now:
                raise ValueError("ManualClock cannot move backwards")
            self._now = int(instant_ms)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.advance(int(seconds * 1000))

    def jitter(self, max_ms: int) -> int:
        if max_ms <= 0:
            return 0
        return int(max_ms * self._jitter_fraction)


def to_datetime(instant_ms: int) -> datetime:
    """Convert an epoch-millisecond instant into an aware UTC ``datetime``."""
    return datetime.fromtimestamp(instant_ms / 1000, tz=timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    """Convert an aware ``datetime`` to epoch milliseconds (naive is treated as UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


__all__ = ["Clock", "SystemClock", "ManualClock", "to_datetime", "to_epoch_ms"]
