"""Per-key in-flight builder table.

The first caller for a key becomes the leader and runs the build; callers
arriving while it runs wait on the leader's future instead of issuing their
own upstream call. The table lock is held only to look up or publish the
future, never while the build runs.

If the leader's build ends in :class:`CancelledError` (the leader's own token
fired), waiters do not inherit that cancellation: they loop and one of them
becomes the next leader. Each waiter still honours its own token.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Dict, Hashable, Optional, Tuple, TypeVar

from ..cancellation import CancellationToken, CancelledError

T = TypeVar("T")


class SingleFlight:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, Future] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._calls)

    def run(
        self,
        key: Hashable,
        build: Callable[[], T],
        token: Optional[CancellationToken] = None,
    ) -> Tuple[T, bool]:
        """Return ``(value, shared)`` for ``key``; see module docstring."""
        while True:
            if token is not None:
                token.raise_if_cancelled()
            with self._lock:
                future = self._calls.get(key)
                leader = future is None
                if leader:
                    future = Future()
                    self._calls[key] = future
            if leader:
                return self._lead(key, future, build), False
            try:
                return self._wait(future, token), True
            except _LeaderCancelled:
                continue

    def _lead(self, key: Hashable, future: Future, build: Callable[[], T]) -> T:
        try:
            value = build()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(value)
            return value
        finally:
            with self._lock:
                if self._calls.get(key) is future:
                    del self._calls[key]

    @staticmethod
    def _wait(future: Future, token: Optional[CancellationToken]) -> T:
        done = threading.Event()
        future.add_done_callback(lambda _f: done.set())
        unregister = token.add_callback(lambda _reason: done.set()) if token is not None else None
        try:
            done.wait()
        finally:
            if unregister is not None:
                unregister()
        if not future.done():
            raise CancelledError(token.reason if token is not None and token.reason else "request cancelled")
        exc = future.exception()
        if isinstance(exc, CancelledError):
            raise _LeaderCancelled()
        if exc is not None:
            raise exc
        return future.result()


class _LeaderCancelled(Exception):
    pass


__all__ = ["SingleFlight"]
