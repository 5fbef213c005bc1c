# tests/test_cache.py
"""Tests for the TTL + LRU cache."""

import pytest

from unitable.cache import TTLCache


class TestBasics:
    def test_set_and_get(self, clock):
        cache = TTLCache(max_size=10, ttl_seconds=60, clock=clock)
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert "a" in cache
        assert len(cache) == 1

    def test_miss_returns_default(self, clock):
        cache = TTLCache(clock=clock)
        assert cache.get("nope") is None
        assert cache.get("nope", "fallback") == "fallback"
        assert cache.stats.misses == 2

    def test_cached_none_is_a_hit(self, clock):
        """A cached None is distinguishable from a miss."""
        cache = TTLCache(clock=clock)
        cache.set("gone", None)
        assert cache.contains("gone")
        assert cache.get("gone", "fallback") is None
        assert cache.stats.hits == 1

    def test_delete(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("a", 1)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert "a" not in cache

    def test_delete_where(self, clock):
        cache = TTLCache(clock=clock)
        for key in ("users:1", "users:2", "orders:1"):
            cache.set(key, key)
        assert cache.delete_where(lambda k: k.startswith("users:")) == 2
        assert len(cache) == 1
        assert "orders:1" in cache

    def test_clear(self, clock):
        cache = TTLCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("max_size,ttl", [(0, 10), (10, 0), (10, -1)])
    def test_invalid_limits(self, max_size, ttl):
        with pytest.raises(ValueError):
            TTLCache(max_size=max_size, ttl_seconds=ttl)


class TestExpiry:
    def test_entry_expires_after_ttl(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.advance(9.9)
        assert cache.get("a") == 1
        clock.advance(0.1)
        assert cache.get("a") is None
        assert cache.stats.expirations == 1
        assert len(cache) == 0

    def test_set_refreshes_ttl(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.advance(8)
        cache.set("a", 2)
        clock.advance(8)
        assert cache.get("a") == 2

    def test_purge_expired(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("old", 1)
        clock.advance(5)
        cache.set("new", 2)
        clock.advance(6)
        assert cache.purge_expired() == 1
        assert "new" in cache
        assert "old" not in cache


class TestEviction:
    def test_least_recently_used_is_evicted(self, clock):
        cache = TTLCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")  # touch a, so b is now oldest
        cache.set("c", 3)
        assert "b" not in cache
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.stats.evictions == 1

    def test_overwrite_does_not_evict(self, clock):
        cache = TTLCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert len(cache) == 2
        assert cache.stats.evictions == 0
