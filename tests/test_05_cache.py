"""
Tests for the fast cache tier.

Tests cover:
- MemoryFastCache get/set, expiry, LRU eviction, stats
- NullFastCache always missing
- RedisFastCache key layout, TTL and error wrapping (mocked client)
- make_fast_cache() backend selection
"""
from unittest.mock import MagicMock

import pytest
import redis

from tts_relay.core.config import FastCacheConfig
from tts_relay.tts.cache import (
    FastCacheError,
    MemoryFastCache,
    NullFastCache,
    RedisFastCache,
    fast_key,
    make_fast_cache,
)


class TestMemoryFastCache:

    def test_set_get(self, clock):
        cache = MemoryFastCache(max_items=4, clock=clock)
        cache.set("k1", "/audio/k1.mp3", ttl_seconds=60)
        assert cache.get("k1") == "/audio/k1.mp3"
        assert cache.get("other") is None

    def test_expiry(self, clock):
        cache = MemoryFastCache(max_items=4, clock=clock)
        cache.set("k1", "/audio/k1.mp3", ttl_seconds=60)

        clock.now += 59
        assert cache.get("k1") == "/audio/k1.mp3"

        clock.now += 1
        assert cache.get("k1") is None
        assert len(cache) == 0
        assert cache.stats()["expirations"] == 1

    def test_lru_eviction(self, clock):
        cache = MemoryFastCache(max_items=2, clock=clock)
        cache.set("a", "/a", 60)
        cache.set("b", "/b", 60)
        cache.get("a")
        cache.set("c", "/c", 60)

        assert cache.get("b") is None
        assert cache.get("a") == "/a"
        assert cache.get("c") == "/c"

    def test_set_refreshes_entry(self, clock):
        cache = MemoryFastCache(max_items=2, clock=clock)
        cache.set("a", "/old", 10)
        clock.now += 5
        cache.set("a", "/new", 10)
        clock.now += 8
        assert cache.get("a") == "/new"
        assert len(cache) == 1

    def test_delete(self, clock):
        cache = MemoryFastCache(clock=clock)
        cache.set("a", "/a", 60)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.get("a") is None

    def test_stats(self, clock):
        cache = MemoryFastCache(max_items=8, clock=clock)
        cache.set("a", "/a", 60)
        cache.get("a")
        cache.get("b")
        stats = cache.stats()
        assert stats["backend"] == "memory"
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1


class TestNullFastCache:

    def test_always_misses(self):
        cache = NullFastCache()
        cache.set("a", "/a", 60)
        assert cache.get("a") is None
        assert cache.delete("a") is False
        assert cache.stats() == {"backend": "none"}


class TestRedisFastCache:

    def test_key_prefix(self):
        assert fast_key("abc") == "tts:abc"

    def test_set_uses_ttl(self):
        client = MagicMock()
        RedisFastCache(client).set("abc", "/audio/abc.mp3", ttl_seconds=3600)
        client.set.assert_called_once_with("tts:abc", "/audio/abc.mp3", ex=3600)

    def test_get(self):
        client = MagicMock()
        client.get.return_value = b"/audio/abc.mp3"
        assert RedisFastCache(client).get("abc") == "/audio/abc.mp3"
        client.get.assert_called_once_with("tts:abc")

    def test_get_missing(self):
        client = MagicMock()
        client.get.return_value = None
        assert RedisFastCache(client).get("abc") is None

    def test_delete(self):
        client = MagicMock()
        client.delete.return_value = 1
        assert RedisFastCache(client).delete("abc") is True
        client.delete.assert_called_once_with("tts:abc")

    @pytest.mark.parametrize("method,args", [
        ("get", ("abc",)),
        ("set", ("abc", "/a", 60)),
        ("delete", ("abc",)),
    ])
    def test_errors_wrapped(self, method, args):
        client = MagicMock()
        getattr(client, method).side_effect = redis.ConnectionError("connection refused")
        with pytest.raises(FastCacheError):
            getattr(RedisFastCache(client), method)(*args)

    def test_stats_unreachable(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")
        assert RedisFastCache(client).stats() == {"backend": "redis", "reachable": False}


class TestMakeFastCache:

    def test_memory(self):
        cache = make_fast_cache(FastCacheConfig(backend="memory", max_items=3))
        assert isinstance(cache, MemoryFastCache)
        assert cache.max_items == 3

    def test_none(self):
        assert isinstance(make_fast_cache(FastCacheConfig(backend="none")), NullFastCache)

    def test_redis(self):
        cache = make_fast_cache(FastCacheConfig(backend="redis", redis_url="redis://localhost:6379/0"))
        assert isinstance(cache, RedisFastCache)
