"""Unit tests for the keyed TTL cache."""

from fulbito.utils.cache import TTLCache


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTTLCache:

    def test_miss_then_hit(self):
        cache = TTLCache(ttl=10, clock=FakeClock())
        assert cache.get("k") == (False, None)
        cache.set("k", {"a": 1})
        assert cache.get("k") == (True, {"a": 1})

    def test_cached_none_is_a_hit(self):
        cache = TTLCache(ttl=10, clock=FakeClock())
        cache.set("k", None)
        assert cache.get("k") == (True, None)

    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl=10, clock=clock)
        cache.set("k", 1)
        clock.now = 9.9
        assert cache.get("k") == (True, 1)
        clock.now = 10
        assert cache.get("k") == (False, None)
        assert len(cache) == 0

    def test_set_refreshes_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl=10, clock=clock)
        cache.set("k", 1)
        clock.now = 8
        cache.set("k", 2)
        clock.now = 15
        assert cache.get("k") == (True, 2)

    def test_oldest_evicted_at_capacity(self):
        cache = TTLCache(ttl=10, max_entries=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert cache.get("a") == (False, None)
        assert cache.get("b") == (True, 2)
        assert cache.get("c") == (True, 3)

    def test_expired_entries_dropped_on_write(self):
        clock = FakeClock()
        cache = TTLCache(ttl=5, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.now = 6
        cache.set("c", 3)
        assert len(cache) == 1

    def test_invalidate_and_clear(self):
        cache = TTLCache(ttl=10, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        cache.invalidate("missing")
        assert cache.get("a") == (False, None)
        cache.clear()
        assert len(cache) == 0
