"""Cooperative cancellation token used by ``request`` callers.

A caller hands a :class:`CancellationToken` to the gateway through
``RequestOptions.cancel``. The dispatcher checks it between candidates and the
HTTP executor registers an abort callback so a pending upstream exchange is
closed as soon as ``cancel`` is called from another thread.
"""

from __future__ import annotations

from contextlib import suppress
from threading import Lock
from typing import Callable, List, Optional

from .state import State
from ..errors import CancelledError


class CancellationToken:
    """A thread-safe cancellation signal with child cascading and callbacks."""

    def __init__(self, *, parent: "CancellationToken | None" = None) -> None:
        self._state = State()
        self._lock = Lock()
        self._children: List[CancellationToken] = []
        if parent is not None:
            parent.link_child(self)

    @property
    def cancelled(self) -> bool:  # noqa: D401 - short form
        """Whether cancellation has been requested."""
        return self._state.cancelled

    @property
    def reason(self) -> str | None:  # noqa: D401 - short form
        """Reason string supplied at cancel time (if any)."""
        return self._state.reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation, fire registered callbacks, cascade to children."""
        with self._lock:
            if self._state.cancelled:
                return
            self._state.cancelled = True
            self._state.reason = reason
            callbacks = list(self._state.callbacks)
            self._state.callbacks.clear()
            children = list(self._children)
        for callback in callbacks:
            # abort hooks close sockets; a failing hook must not stop the others
            with suppress(Exception):
                callback(reason)
        for child in children:
            child.cancel(reason)

    def add_callback(self, callback: Callable[[Optional[str]], None]) -> Callable[[], None]:
        """Register ``callback`` to run on cancellation.

        Runs immediately when the token is already cancelled. Returns a
        function that unregisters the callback; call it once the guarded work
        has finished.
        """
        with self._lock:
            if not self._state.cancelled:
                self._state.callbacks.append(callback)

                def _remove() -> None:
                    with self._lock:
                        with suppress(ValueError):
                            self._state.callbacks.remove(callback)

                return _remove
            reason = self._state.reason
        callback(reason)
        return lambda: None

    def link_child(self, token: "CancellationToken") -> "CancellationToken":
        """Link a child token so parent cancellation cascades (returns child)."""
        with self._lock:
            self._children.append(token)
            should_cancel = self._state.cancelled
            reason = self._state.reason
        if should_cancel:
            token.cancel(reason)
        return token

    def raise_if_cancelled(self) -> None:
        """Raise ``CancelledError`` if token is cancelled."""
        if self._state.cancelled:
            raise CancelledError(self._state.reason or "request cancelled")

    def child(self) -> "CancellationToken":
        """Create and link a child token (shortcut)."""
        return CancellationToken(parent=self)

    def __repr__(self) -> str:  # pragma: no cover - introspection aid
        return (
            f"CancellationToken(cancelled={self._state.cancelled}, "
            f"reason={self._state.reason!r}, children={len(self._children)})"
        )


__all__ = ["CancellationToken"]
