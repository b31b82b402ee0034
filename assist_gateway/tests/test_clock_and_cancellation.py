"""Unit tests for the clock capability and cooperative cancellation.

Covers:
- ManualClock advances, refuses to move backwards, turns sleep into advance.
- Jitter stays inside its bound and is reproducible on the manual clock.
- Cancel is idempotent, cascades to children, and fires callbacks once.
- Callbacks registered after cancel run immediately; unregistered ones never run.
"""
from __future__ import annotations

from datetime import timezone

import pytest

from assist_gateway.base.cancellation import CancellationToken, CancelledError
from assist_gateway.base.clock import Clock, ManualClock, SystemClock, to_datetime, to_epoch_ms


def test_manual_clock_advance_and_set():
    clock = ManualClock(1_000)
    assert clock.now_ms() == 1_000
    assert clock.advance(250) == 1_250
    clock.set(2_000)
    assert clock.now_ms() == 2_000


def test_manual_clock_never_moves_backwards():
    clock = ManualClock(5_000)
    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        clock.set(4_999)


def test_manual_clock_sleep_advances_instead_of_blocking():
    clock = ManualClock(0)
    clock.sleep(1.5)
    assert clock.now_ms() == 1_500
    clock.sleep(0)
    assert clock.now_ms() == 1_500


def test_jitter_bounds():
    assert ManualClock(0).jitter(1_000) == 0
    assert ManualClock(0, jitter_fraction=0.5).jitter(1_000) == 500
    assert ManualClock(0, jitter_fraction=7.0).jitter(100) == 100
    system = SystemClock()
    for _ in range(50):
        value = system.jitter(10)
        assert 0 <= value <= 10  # nosec B101 - pytest assert in tests
    assert system.jitter(0) == 0


def test_both_clocks_satisfy_protocol():
    assert isinstance(ManualClock(), Clock)
    assert isinstance(SystemClock(), Clock)


def test_epoch_conversions_are_utc():
    moment = to_datetime(1_700_000_000_000)
    assert moment.tzinfo is timezone.utc
    assert moment.year == 2023 and moment.month == 11 and moment.day == 14
    assert to_epoch_ms(moment) == 1_700_000_000_000
    assert to_epoch_ms(moment.replace(tzinfo=None)) == 1_700_000_000_000


def test_cancel_cascades_and_is_idempotent():
    parent = CancellationToken()
    child = parent.child()
    parent.cancel("stop")
    parent.cancel("ignored")
    assert parent.cancelled and parent.reason == "stop"
    assert child.cancelled and child.reason == "stop"


def test_callbacks_fire_once_and_can_be_removed():
    token = CancellationToken()
    seen = []
    token.add_callback(seen.append)
    remove = token.add_callback(lambda reason: seen.append(("removed", reason)))
    remove()
    token.cancel("bye")
    token.cancel("again")
    assert seen == ["bye"]


def test_callback_after_cancel_runs_immediately():
    token = CancellationToken()
    token.cancel("late")
    seen = []
    token.add_callback(seen.append)
    assert seen == ["late"]


def test_failing_callback_does_not_block_others():
    token = CancellationToken()
    seen = []

    def boom(_reason):
        raise RuntimeError("socket already closed")

    token.add_callback(boom)
    token.add_callback(seen.append)
    token.cancel("x")
    assert seen == ["x"]


def test_raise_if_cancelled_uses_reason():
    token = CancellationToken()
    token.raise_if_cancelled()
    token.cancel("user aborted")
    with pytest.raises(CancelledError, match="user aborted"):
        token.raise_if_cancelled()
