"""
test_band_cache.py — Tests for the per-day TTL band cache.

Validates:
  - Fresh entries are served, expired ones are not
  - get_or_compute computes once per expiry
  - Concurrent misses for one day compute once
  - Errors propagate and nothing is cached
"""

import threading
import time

import pytest

from wssi_bands.cache.band_cache import (
    BandCache,
    CacheEntry,
    get_default_cache,
    reset_default_cache,
)


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _entry(timestamp, marker="a"):
    return CacheEntry(
        tiers={"overview": {"marker": marker}, "detail": {"marker": marker}},
        last_modified="Mon, 19 Jan 2026 12:00:00 GMT",
        timestamp=timestamp,
    )


class TestBandCache:
    """TTL behaviour with an injected clock."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = BandCache(ttl_seconds=900, clock=self.clock)

    def test_miss_on_empty(self):
        assert self.cache.get(1) is None

    def test_hit_within_ttl(self):
        entry = _entry(self.clock())
        self.cache.put(1, entry)
        self.clock.advance(899)
        assert self.cache.get(1) is entry

    def test_expired_at_ttl(self):
        self.cache.put(1, _entry(self.clock()))
        self.clock.advance(900)
        assert self.cache.get(1) is None

    def test_days_independent(self):
        self.cache.put(1, _entry(self.clock()))
        assert self.cache.get(2) is None

    def test_entry_result_by_tier(self):
        entry = _entry(self.clock(), marker="x")
        assert entry.result("detail") == {"marker": "x"}

    def test_clear(self):
        self.cache.put(1, _entry(self.clock()))
        self.cache.clear()
        assert self.cache.get(1) is None


class TestGetOrCompute:
    """Single computation per expiry."""

    def setup_method(self):
        self.clock = FakeClock()
        self.cache = BandCache(ttl_seconds=900, clock=self.clock)
        self.calls = 0

    def _compute(self):
        self.calls += 1
        return _entry(self.clock(), marker=str(self.calls))

    def test_first_call_computes(self):
        entry, cached = self.cache.get_or_compute(1, self._compute)
        assert not cached
        assert self.calls == 1
        assert entry.result("overview") == {"marker": "1"}

    def test_second_call_cached(self):
        self.cache.get_or_compute(1, self._compute)
        entry, cached = self.cache.get_or_compute(1, self._compute)
        assert cached
        assert self.calls == 1

    def test_recomputes_after_expiry(self):
        self.cache.get_or_compute(1, self._compute)
        self.clock.advance(901)
        entry, cached = self.cache.get_or_compute(1, self._compute)
        assert not cached
        assert self.calls == 2
        assert entry.result("overview") == {"marker": "2"}

    def test_error_not_cached(self):
        def failing():
            raise RuntimeError("upstream down")

        with pytest.raises(RuntimeError):
            self.cache.get_or_compute(1, failing)
        assert self.cache.get(1) is None

        _, cached = self.cache.get_or_compute(1, self._compute)
        assert not cached

    def test_concurrent_misses_compute_once(self):
        """Parallel callers for the same day share one computation."""
        cache = BandCache(ttl_seconds=900)
        calls = []
        lock = threading.Lock()

        def slow_compute():
            with lock:
                calls.append(1)
            time.sleep(0.1)
            return _entry(time.time())

        results = []

        def worker():
            results.append(cache.get_or_compute(1, slow_compute))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(calls) == 1
        assert len(results) == 5
        assert sum(1 for _, cached in results if not cached) == 1
        assert len({id(entry) for entry, _ in results}) == 1


class TestDefaultCache:
    """Shared process-wide instance."""

    def setup_method(self):
        reset_default_cache()

    def teardown_method(self):
        reset_default_cache()

    def test_singleton(self):
        assert get_default_cache() is get_default_cache()

    def test_ttl_from_env(self, monkeypatch):
        monkeypatch.setenv("WSSI_CACHE_TTL", "60")
        assert get_default_cache().ttl_seconds == 60.0

    def test_default_ttl(self, monkeypatch):
        monkeypatch.delenv("WSSI_CACHE_TTL", raising=False)
        assert get_default_cache().ttl_seconds == 900
