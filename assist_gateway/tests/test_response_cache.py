"""Unit tests for the TTL response cache, its stores and the single-flight table.

Covers:
- Hit / miss / expired lookups against the manual clock.
- Zero TTL stores nothing; write failures degrade to a logged miss.
- Size-bounded eviction down to 80% of the cap, oldest first.
- Startup and scheduled sweeps remove expired and corrupted entries.
- Disk store layout, atomic writes and fingerprint mismatch rejection.
- Filename sanitisation caps names at 200 bytes with a digest suffix.
- Single-flight coalescing across threads and leader-cancellation hand-off.
"""
from __future__ import annotations

import threading
import time

import pytest

from assist_gateway.base.cancellation import CancellationToken, CancelledError
from assist_gateway.base.caching import (
    CacheEntry,
    DiskCacheStore,
    MemoryCacheStore,
    ResponseCache,
    SingleFlight,
    sanitize,
)
from assist_gateway.base.clock import ManualClock

PAYLOAD = {"kind": "chat", "text": "hi", "model_used": "m", "tokens_in": None, "tokens_out": None, "finish_reason": "stop"}


def _cache(clock, store=None, **kwargs) -> ResponseCache:
    cache = ResponseCache(store if store is not None else MemoryCacheStore(), clock, **kwargs)
    cache.open()
    return cache


def test_hit_miss_and_expiry(clock):
    cache = _cache(clock)
    assert cache.get("weather", "fp").status.value == "miss"
    entry = cache.store_result("weather", "fp", PAYLOAD, 1_000, source_provider="w1")
    assert entry is not None and entry.expires_at_ms == clock.now_ms() + 1_000
    lookup = cache.get("weather", "fp")
    assert lookup.hit and lookup.entry.source_provider == "w1"
    clock.advance(1_000)
    assert cache.get("weather", "fp").hit
    clock.advance(1)
    lookup = cache.get("weather", "fp")
    assert lookup.expired and lookup.entry.payload == PAYLOAD


def test_zero_ttl_stores_nothing(clock, memory_store):
    cache = _cache(clock, memory_store)
    assert cache.store_result("chat", "fp", PAYLOAD, 0) is None
    assert len(memory_store) == 0


def test_namespace_mismatch_is_rejected(clock):
    cache = _cache(clock)
    entry = CacheEntry("fp", "weather", PAYLOAD, 0, 10)
    with pytest.raises(ValueError):
        cache.put("rates", entry)


class _FailingStore(MemoryCacheStore):
    def write(self, entry):
        raise OSError("disk full")


def test_write_failure_is_counted_not_raised(clock):
    cache = _cache(clock, _FailingStore())
    assert cache.store_result("weather", "fp", PAYLOAD, 1_000) is None
    assert cache.get("weather", "fp").status.value == "miss"
    assert cache.stats().put_failures == 1


def test_eviction_removes_oldest_down_to_target(clock, memory_store):
    now = clock.now_ms()
    size = CacheEntry("fp-00", "weather", PAYLOAD, now, now + 60_000).with_size().size_bytes
    cache = _cache(clock, memory_store, max_bytes=size * 5)
    for i in range(5):
        cache.store_result("weather", f"fp-{i:02d}", PAYLOAD, 60_000)
        clock.advance(10)
    assert cache.stats().entries == 5
    cache.store_result("weather", "fp-05", PAYLOAD, 60_000)
    stats = cache.stats()
    assert stats.bytes <= int(size * 5 * 0.8)
    assert stats.evictions >= 2
    assert not cache.get("weather", "fp-00").hit
    assert not cache.get("weather", "fp-01").hit
    assert cache.get("weather", "fp-05").hit


def test_sweep_removes_expired_and_corrupted(clock, memory_store):
    cache = _cache(clock, memory_store)
    cache.store_result("weather", "old", PAYLOAD, 100)
    cache.store_result("weather", "fresh", PAYLOAD, 10_000)
    memory_store.write_raw("weather", "garbage", "{this is not json")
    clock.advance(500)
    report = cache.sweep()
    assert report.expired_removed == 1
    assert report.corrupted_removed == 1
    assert report.bytes_freed > 0
    assert cache.get("weather", "fresh").hit
    assert len(memory_store) == 1


def test_sweep_if_due_respects_interval(clock):
    cache = _cache(clock, sweep_interval_ms=1_000)
    assert cache.sweep_if_due() is None
    clock.advance(1_000)
    assert cache.sweep_if_due() is not None


def test_invalidate_one_and_namespace(clock):
    cache = _cache(clock)
    for fp in ("a", "b"):
        cache.store_result("weather", fp, PAYLOAD, 1_000)
    cache.store_result("rates", "c", PAYLOAD, 1_000)
    assert cache.invalidate("weather", "a") == 1
    assert cache.invalidate("weather") == 1
    assert cache.stats().namespaces == {"rates": 1}


def test_disk_store_layout_and_persistence(tmp_path):
    clock = ManualClock(1_000)
    cache = _cache(clock, DiskCacheStore(tmp_path))
    cache.store_result("weather", "weather:current:metric:en:location=paris", PAYLOAD, 10_000, source_provider="w")
    files = list((tmp_path / "weather").glob("*.json"))
    assert len(files) == 1
    assert not list((tmp_path / "weather").glob(".*.tmp"))

    reopened = _cache(clock, DiskCacheStore(tmp_path))
    lookup = reopened.get("weather", "weather:current:metric:en:location=paris")
    assert lookup.hit and lookup.entry.source_provider == "w"
    assert reopened.stats().entries == 1


def test_stored_entries_record_their_size(tmp_path):
    clock = ManualClock(1_000)
    cache = _cache(clock, DiskCacheStore(tmp_path))
    entry = cache.store_result("weather", "fp", PAYLOAD, 10_000)
    assert entry.size_bytes > 0
    assert entry.size_bytes == len(entry.to_json().encode("utf-8"))
    assert cache.get("weather", "fp").entry.size_bytes == entry.size_bytes
    assert cache.stats().bytes == entry.size_bytes
    assert (tmp_path / "weather" / "fp.json").stat().st_size == entry.size_bytes


def test_open_removes_temp_files_from_interrupted_writes(tmp_path):
    clock = ManualClock(1_000)
    _cache(clock, DiskCacheStore(tmp_path)).store_result("weather", "fp", PAYLOAD, 10_000)
    leftover = tmp_path / "weather" / ".fp.json.abc123.tmp"
    leftover.write_text('{"half', encoding="utf-8")
    reopened = _cache(clock, DiskCacheStore(tmp_path))
    assert not leftover.exists()
    assert reopened.get("weather", "fp").hit
    assert reopened.stats().entries == 1


def test_disk_store_rejects_fingerprint_collision(tmp_path):
    store = DiskCacheStore(tmp_path)
    # both fingerprints sanitise to the same file name
    store.write(CacheEntry("a/b", "weather", PAYLOAD, 0, 10))
    assert store.read("weather", "a_b") is None
    assert store.read("weather", "a/b") is not None


def test_disk_store_sweeps_corrupted_file(tmp_path):
    (tmp_path / "weather").mkdir()
    (tmp_path / "weather" / "broken.json").write_text("{", encoding="utf-8")
    cache = ResponseCache(DiskCacheStore(tmp_path), ManualClock(0))
    assert cache.open().corrupted_removed == 1
    assert not (tmp_path / "weather" / "broken.json").exists()


def test_sanitize_caps_length_and_replaces_reserved():
    assert sanitize('a:b/c"d') == "a_b_c_d"
    assert sanitize(".hidden").startswith("_")
    long_a = "x" * 300 + "a"
    long_b = "x" * 300 + "b"
    assert len(sanitize(long_a).encode("utf-8")) <= 200
    assert sanitize(long_a) != sanitize(long_b)
    multibyte = "é" * 150
    assert len(sanitize(multibyte).encode("utf-8")) <= 200


def test_cache_entry_rejects_unknown_format():
    with pytest.raises(ValueError):
        CacheEntry.from_json('{"format": 2}')
    with pytest.raises(ValueError):
        CacheEntry.from_json('{"format": 1, "fingerprint": "x"}')
    with pytest.raises(ValueError):
        CacheEntry("fp", "ns", {}, 10, 5)


# ---------------------------------------------------------------- single flight


def test_single_flight_coalesces_concurrent_builders():
    flights = SingleFlight()
    release = threading.Event()
    calls = []
    results = []
    lock = threading.Lock()

    def build():
        calls.append(1)
        release.wait(5)
        return "value"

    def caller():
        value, shared = flights.run("k", build)
        with lock:
            results.append((value, shared))

    threads = [threading.Thread(target=caller) for _ in range(8)]
    for t in threads:
        t.start()
    deadline = time.monotonic() + 5
    while len(flights) == 0 and time.monotonic() < deadline:
        time.sleep(0.005)
    time.sleep(0.2)
    release.set()
    for t in threads:
        t.join(5)
    assert len(calls) == 1
    assert sorted(shared for _, shared in results) == [False] + [True] * 7
    assert all(value == "value" for value, _ in results)
    assert len(flights) == 0


def test_single_flight_propagates_leader_error_to_waiters():
    flights = SingleFlight()
    started = threading.Event()
    release = threading.Event()
    errors = []

    def build():
        started.set()
        release.wait(5)
        raise RuntimeError("upstream broke")

    def leader():
        with pytest.raises(RuntimeError):
            flights.run("k", build)

    def waiter():
        try:
            flights.run("k", lambda: "should not run")
        except RuntimeError as exc:
            errors.append(str(exc))

    lead = threading.Thread(target=leader)
    lead.start()
    started.wait(5)
    follower = threading.Thread(target=waiter)
    follower.start()
    time.sleep(0.05)
    release.set()
    lead.join(5)
    follower.join(5)
    assert errors == ["upstream broke"]


def test_waiter_takes_over_when_leader_is_cancelled():
    flights = SingleFlight()
    started = threading.Event()
    release = threading.Event()
    outcome = {}

    def cancelled_build():
        started.set()
        release.wait(5)
        raise CancelledError("leader went away")

    def leader():
        try:
            flights.run("k", cancelled_build)
        except CancelledError:
            outcome["leader"] = "cancelled"

    def waiter():
        outcome["waiter"] = flights.run("k", lambda: "rebuilt")

    lead = threading.Thread(target=leader)
    lead.start()
    started.wait(5)
    follower = threading.Thread(target=waiter)
    follower.start()
    time.sleep(0.05)
    release.set()
    lead.join(5)
    follower.join(5)
    assert outcome == {"leader": "cancelled", "waiter": ("rebuilt", False)}


def test_waiter_honours_its_own_token():
    flights = SingleFlight()
    started = threading.Event()
    release = threading.Event()
    token = CancellationToken()
    raised = []

    def build():
        started.set()
        release.wait(5)
        return "late"

    lead = threading.Thread(target=lambda: flights.run("k", build))
    lead.start()
    started.wait(5)

    def waiter():
        try:
            flights.run("k", build, token)
        except CancelledError:
            raised.append(True)

    follower = threading.Thread(target=waiter)
    follower.start()
    time.sleep(0.05)
    token.cancel("caller gave up")
    follower.join(5)
    release.set()
    lead.join(5)
    assert raised == [True]
