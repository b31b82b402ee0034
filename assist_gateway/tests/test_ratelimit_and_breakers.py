"""Unit tests for the sliding-window limiter, circuit breakers and breaker snapshots.

Covers:
- Window admission, refusal until the oldest admission slides out.
- Tickets: idempotent re-admission and release of a cancelled slot.
- Back-off from Retry-After blocks until the given instant.
- Breaker CLOSED -> OPEN -> HALF_OPEN -> CLOSED/OPEN with a single probe.
- Snapshot persistence, discard on threshold or schema mismatch.
"""
from __future__ import annotations

import json
import threading

import pytest

from assist_gateway.base.models import make_provider
from assist_gateway.base.ratelimit import SlidingWindowRateLimiter
from assist_gateway.base.resilience import (
    BreakerSnapshotStore,
    BreakerState,
    CircuitBreakerRegistry,
)


def _provider(max_requests: int = 2, window_ms: int = 1_000):
    return make_provider(
        "rates", "fx", "https://fx.test", capabilities=["pair"], max_requests=max_requests, window_ms=window_ms
    )


# ---------------------------------------------------------------- limiter


def test_window_admits_up_to_limit_then_refuses_until_slide():
    limiter = SlidingWindowRateLimiter()
    provider = _provider()
    assert limiter.admit(provider, 0)
    assert limiter.admit(provider, 100)
    assert not limiter.admit(provider, 200)
    assert limiter.state("fx").blocked_until_ms == 1_000
    assert not limiter.admit(provider, 999)
    # the window is inclusive of its lower edge: t=0 leaves only after 1000
    assert not limiter.admit(provider, 1_000)
    assert limiter.admit(provider, 1_001)
    assert limiter.admissions("fx") == (100, 1_001)


def test_would_admit_does_not_consume():
    limiter = SlidingWindowRateLimiter()
    provider = _provider(max_requests=1)
    assert limiter.would_admit(provider, 0)
    assert limiter.would_admit(provider, 0)
    assert limiter.admit(provider, 0)
    assert not limiter.would_admit(provider, 10)


def test_ticket_readmission_and_release():
    limiter = SlidingWindowRateLimiter()
    provider = _provider(max_requests=1)
    ticket = object()
    assert limiter.admit(provider, 0, ticket)
    assert limiter.admit(provider, 5, ticket)
    assert limiter.admissions("fx") == (0,)
    assert not limiter.admit(provider, 10)
    assert limiter.release("fx", ticket)
    assert not limiter.release("fx", ticket)
    assert limiter.admit(provider, 20)


def test_back_off_blocks_until_instant():
    limiter = SlidingWindowRateLimiter()
    provider = _provider(max_requests=10)
    limiter.back_off("fx", 5_000)
    assert not limiter.admit(provider, 4_999)
    assert not limiter.would_admit(provider, 4_999)
    assert limiter.admit(provider, 5_000)
    assert limiter.state("fx").backoff_until_ms == 5_000


def test_concurrent_admissions_never_exceed_limit():
    limiter = SlidingWindowRateLimiter()
    provider = _provider(max_requests=5, window_ms=60_000)
    results = []
    lock = threading.Lock()

    def worker():
        admitted = limiter.admit(provider, 1_000)
        with lock:
            results.append(admitted)

    threads = [threading.Thread(target=worker) for _ in range(40)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 5
    assert len(limiter.admissions("fx")) == 5


# ---------------------------------------------------------------- breakers


def test_breaker_opens_at_threshold_and_half_opens_after_cooldown():
    breakers = CircuitBreakerRegistry(open_threshold=3, open_cooldown_ms=1_000)
    for t in (0, 1, 2):
        assert breakers.admit("w", t)
        breakers.record_failure("w", t, "boom")
    snap = breakers.state("w")
    assert snap.state is BreakerState.OPEN
    assert snap.next_attempt_at_ms == 1_002
    assert snap.last_error == "boom"
    assert not breakers.admit("w", 1_001)
    assert breakers.peek("w", 1_002)
    assert breakers.admit("w", 1_002)
    assert breakers.state("w").state is BreakerState.HALF_OPEN
    # only one probe at a time
    assert not breakers.admit("w", 1_003)
    breakers.record_success("w")
    assert breakers.state("w").state is BreakerState.CLOSED
    assert breakers.consecutive_failures("w") == 0


def test_half_open_probe_failure_reopens():
    breakers = CircuitBreakerRegistry(open_threshold=1, open_cooldown_ms=500)
    breakers.record_failure("w", 0)
    assert breakers.admit("w", 500)
    breakers.record_failure("w", 600, "still down")
    snap = breakers.state("w")
    assert snap.state is BreakerState.OPEN
    assert snap.next_attempt_at_ms == 1_100


def test_release_frees_probe_without_verdict():
    breakers = CircuitBreakerRegistry(open_threshold=1, open_cooldown_ms=500)
    breakers.record_failure("w", 0)
    assert breakers.admit("w", 500)
    breakers.release("w")
    assert breakers.state("w").state is BreakerState.HALF_OPEN
    assert breakers.admit("w", 501)


def test_success_resets_failure_count_while_closed():
    breakers = CircuitBreakerRegistry(open_threshold=3)
    breakers.record_failure("w", 0)
    breakers.record_failure("w", 1)
    breakers.record_success("w")
    breakers.record_failure("w", 2)
    assert breakers.state("w").state is BreakerState.CLOSED
    assert breakers.consecutive_failures("w") == 1


def test_late_success_does_not_close_an_open_breaker():
    breakers = CircuitBreakerRegistry(open_threshold=2, open_cooldown_ms=1_000)
    assert breakers.admit("w", 0)
    breakers.record_failure("w", 0, "boom")
    breakers.record_failure("w", 0, "boom")
    # a call admitted while closed finishes after the breaker opened
    breakers.record_success("w")
    snap = breakers.state("w", 1)
    assert snap.state is BreakerState.OPEN
    assert snap.consecutive_failures == 2
    assert snap.last_error == "boom"
    assert not breakers.admit("w", 999)
    assert breakers.admit("w", 1_000)
    breakers.record_success("w")
    assert breakers.state("w").state is BreakerState.CLOSED


def test_concurrent_half_open_admits_exactly_one():
    breakers = CircuitBreakerRegistry(open_threshold=1, open_cooldown_ms=10)
    breakers.record_failure("w", 0)
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(16)

    def worker():
        barrier.wait()
        allowed = breakers.admit("w", 10)
        with lock:
            results.append(allowed)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results.count(True) == 1


def test_transition_listener_and_reset():
    seen = []
    breakers = CircuitBreakerRegistry(open_threshold=1, on_transition=lambda n, a, b: seen.append((n, a, b)))
    breakers.record_failure("w", 0)
    breakers.reset("w")
    assert seen == [
        ("w", BreakerState.CLOSED, BreakerState.OPEN),
        ("w", BreakerState.OPEN, BreakerState.CLOSED),
    ]


def test_invalid_breaker_settings():
    with pytest.raises(ValueError):
        CircuitBreakerRegistry(open_threshold=0)
    with pytest.raises(ValueError):
        CircuitBreakerRegistry(open_cooldown_ms=0)


# ---------------------------------------------------------------- snapshots


def test_snapshot_round_trip(tmp_path):
    path = tmp_path / "breakers.json"
    breakers = CircuitBreakerRegistry(open_threshold=2, open_cooldown_ms=1_000)
    breakers.record_failure("down", 100)
    breakers.record_failure("down", 200)
    breakers.record_failure("flaky", 300)
    breakers.state("healthy")
    assert BreakerSnapshotStore(path).save(breakers)
    document = json.loads(path.read_text())
    assert set(document["breakers"]) == {"down", "flaky"}

    restored = CircuitBreakerRegistry(open_threshold=2, open_cooldown_ms=1_000)
    assert BreakerSnapshotStore(path).load(restored) == 2
    snap = restored.state("down")
    assert snap.state is BreakerState.OPEN
    assert snap.next_attempt_at_ms == 1_200
    assert not snap.probe_in_flight
    assert restored.consecutive_failures("flaky") == 1


def test_snapshot_discarded_on_threshold_mismatch(tmp_path):
    path = tmp_path / "breakers.json"
    breakers = CircuitBreakerRegistry(open_threshold=2)
    breakers.record_failure("down", 0)
    breakers.record_failure("down", 0)
    BreakerSnapshotStore(path).save(breakers)
    other = CircuitBreakerRegistry(open_threshold=5)
    assert BreakerSnapshotStore(path).load(other) == 0
    assert not path.exists()
    assert other.state("down").state is BreakerState.CLOSED


def test_snapshot_discarded_on_schema_mismatch_or_garbage(tmp_path):
    path = tmp_path / "breakers.json"
    path.write_text(json.dumps({"schema_version": 99, "open_threshold": 5, "breakers": {}}))
    assert BreakerSnapshotStore(path).load(CircuitBreakerRegistry()) == 0
    assert not path.exists()
    path.write_text("{not json")
    assert BreakerSnapshotStore(path).load(CircuitBreakerRegistry()) == 0
    assert BreakerSnapshotStore(tmp_path / "missing.json").load(CircuitBreakerRegistry()) == 0


def test_restore_caps_closed_failures_below_threshold():
    breakers = CircuitBreakerRegistry(open_threshold=3)
    applied = breakers.restore(
        {
            "w": {"state": "closed", "consecutive_failures": 10, "next_attempt_at_ms": 0},
            "bad": {"state": "sideways"},
        }
    )
    assert applied == 1
    assert breakers.consecutive_failures("w") == 2
