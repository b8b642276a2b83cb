"""
Fast cache tier: content key -> audio file path, with expiry.

The coordinator only talks to the FastCache interface. Three backends:

    NullFastCache    - disabled tier; every lookup misses
    MemoryFastCache  - in-process LRU with per-entry TTL
    RedisFastCache   - shared Redis, keys "tts:<content key>" set with EX

Backend failures surface as FastCacheError so callers can log and carry on
without knowing which backend is configured.

Example:
    >>> cache = MemoryFastCache(max_items=100)
    >>> cache.set("5d41402a...", "/data/audio/5d41402a....mp3", ttl_seconds=3600)
    >>> cache.get("5d41402a...")
    '/data/audio/5d41402a....mp3'
"""
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol

import redis

from tts_relay.core.config import Defaults, FastCacheConfig
from tts_relay.core.logging import debug, get_logger, info, verbose

_LOG = get_logger("tts-relay.cache")

KEY_PREFIX = "tts:"


def fast_key(content_key: str) -> str:
    return f"{KEY_PREFIX}{content_key}"


class FastCacheError(Exception):
    """The fast cache backend could not serve a read or write."""
    pass


class FastCache(Protocol):
    name: str

    def get(self, content_key: str) -> Optional[str]: ...

    def set(self, content_key: str, audio_path: str, ttl_seconds: int) -> None: ...

    def delete(self, content_key: str) -> bool: ...

    def stats(self) -> Dict[str, Any]: ...


class NullFastCache:
    """Fast tier switched off."""

    name = "none"

    def get(self, content_key: str) -> Optional[str]:
        return None

    def set(self, content_key: str, audio_path: str, ttl_seconds: int) -> None:
        return None

    def delete(self, content_key: str) -> bool:
        return False

    def stats(self) -> Dict[str, Any]:
        return {"backend": self.name}


@dataclass
class FastCacheRecord:
    key: str
    audio_path: str
    expires_at: float


class MemoryFastCache:
    """
    Thread-safe LRU with per-record expiry.

    Expired records are dropped on access. When capacity is exceeded the
    least recently used record is evicted.
    """

    name = "memory"

    def __init__(
        self,
        max_items: int = Defaults.FAST_CACHE_MAX_ITEMS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_items = int(max_items)
        self._clock = clock
        self._d: "OrderedDict[str, FastCacheRecord]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._expirations = 0

    def get(self, content_key: str) -> Optional[str]:
        key = fast_key(content_key)
        with self._lock:
            record = self._d.get(key)
            if record is None:
                self._misses += 1
                return None
            if record.expires_at <= self._clock():
                del self._d[key]
                self._expirations += 1
                self._misses += 1
                verbose(_LOG, "expired", key=content_key[:8])
                return None
            self._d.move_to_end(key)
            self._hits += 1
            return record.audio_path

    def set(self, content_key: str, audio_path: str, ttl_seconds: int) -> None:
        key = fast_key(content_key)
        with self._lock:
            self._d[key] = FastCacheRecord(key, audio_path, self._clock() + ttl_seconds)
            self._d.move_to_end(key)
            while len(self._d) > self.max_items:
                self._d.popitem(last=False)
        debug(_LOG, "set", key=content_key[:8], ttl=ttl_seconds)

    def delete(self, content_key: str) -> bool:
        with self._lock:
            return self._d.pop(fast_key(content_key), None) is not None

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "backend": self.name,
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._d),
                "max_items": self.max_items,
                "expirations": self._expirations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._d)


class RedisFastCache:
    """Redis-backed fast tier. Expiry is left to Redis (SET ... EX)."""

    name = "redis"

    def __init__(self, client: "redis.Redis"):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisFastCache":
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_timeout=2.0))

    def get(self, content_key: str) -> Optional[str]:
        try:
            value = self._client.get(fast_key(content_key))
        except redis.RedisError as e:
            raise FastCacheError(f"redis get failed: {e}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, content_key: str, audio_path: str, ttl_seconds: int) -> None:
        try:
            self._client.set(fast_key(content_key), audio_path, ex=ttl_seconds)
        except redis.RedisError as e:
            raise FastCacheError(f"redis set failed: {e}") from e

    def delete(self, content_key: str) -> bool:
        try:
            return bool(self._client.delete(fast_key(content_key)))
        except redis.RedisError as e:
            raise FastCacheError(f"redis delete failed: {e}") from e

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def stats(self) -> Dict[str, Any]:
        return {"backend": self.name, "reachable": self.ping()}


def make_fast_cache(config: FastCacheConfig) -> FastCache:
    """Build the fast tier selected by fast_cache.backend."""
    if config.backend == "redis":
        cache: FastCache = RedisFastCache.from_url(config.redis_url)
    elif config.backend == "memory":
        cache = MemoryFastCache(max_items=config.max_items)
    else:
        cache = NullFastCache()
    info(_LOG, "fast_cache", backend=cache.name)
    return cache
