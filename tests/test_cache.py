"""Tests for the read-through cache."""

from storefront.cache import ReadThroughCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestReadThroughCache:
    def test_loads_once_within_ttl(self):
        clock = FakeClock()
        cache = ReadThroughCache(10, clock=clock)
        loads = []

        def loader():
            loads.append(1)
            return "value"

        assert cache.get_or_load("k", loader) == "value"
        clock.now = 9.9
        assert cache.get_or_load("k", loader) == "value"
        assert len(loads) == 1

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = ReadThroughCache(10, clock=clock)
        cache.set("k", "old")
        clock.now = 10
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_invalidate_single_key(self):
        cache = ReadThroughCache(10, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_invalidate_all(self):
        cache = ReadThroughCache(10, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.invalidate()
        assert len(cache) == 0

    def test_instances_do_not_share_entries(self):
        first = ReadThroughCache(10, clock=FakeClock())
        second = ReadThroughCache(10, clock=FakeClock())
        first.set("k", 1)
        assert second.get("k") is None
