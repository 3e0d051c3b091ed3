"""
Caching utilities: a bounded in-process TTL cache with an optional Redis tier
"""
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional, Tuple

import redis

from config.settings import settings

logger = logging.getLogger(__name__)

_MISSING = object()


class BoundedTTLCache:
    """
    Thread-safe key -> (value, expiry) map.

    Entries expire ttl_seconds after they are written. When the cache holds
    max_entries items, the least recently used entry is evicted.
    """

    def __init__(self, max_entries: int = 1024, ttl_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Process-local fallback tier
local_cache = BoundedTTLCache(
    max_entries=settings.profile_cache_max_entries,
    ttl_seconds=settings.profile_cache_ttl_seconds,
)

# Redis client for caching
_redis_cache_client = None
_redis_cache_available = False

if settings.redis_url:
    try:
        _redis_cache_client = redis.from_url(settings.redis_url, decode_responses=True)
        _redis_cache_client.ping()
        _redis_cache_available = True
        logger.info("Redis connected successfully for caching")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Caching will use the in-process cache.")
        _redis_cache_client = None
        _redis_cache_available = False
else:
    logger.info("REDIS_URL not set. Caching will use the in-process cache.")


async def get_cached(key: str, fallback_func: Callable[[], Awaitable[Any]], ttl_seconds: int) -> Any:
    """
    Read-through cache.

    Tries Redis when it is configured, otherwise the bounded in-process cache.
    On a miss, awaits fallback_func and stores its result with the given TTL.
    Values must be JSON-serializable.

    Args:
        key: Cache key (e.g., "profile:<user_id>")
        fallback_func: Async callable that returns the data to cache
        ttl_seconds: Time-to-live in seconds for the cached value

    Returns:
        The cached value or the result from fallback_func
    """
    if _redis_cache_available and _redis_cache_client:
        try:
            cached_value = _redis_cache_client.get(key)
            if cached_value is not None:
                return json.loads(cached_value)
        except (redis.RedisError, json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Redis cache get failed for key '{key}': {e}. Executing fallback.")
    else:
        cached_value = local_cache.get(key, _MISSING)
        if cached_value is not _MISSING:
            return cached_value

    result = await fallback_func()

    if _redis_cache_available and _redis_cache_client:
        try:
            _redis_cache_client.setex(key, ttl_seconds, json.dumps(result))
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Redis cache set failed for key '{key}': {e}. Result not cached.")
    else:
        local_cache.set(key, result, ttl_seconds)

    return result


def invalidate_cached(key: str) -> None:
    """Drop a key from every cache tier."""
    local_cache.delete(key)
    if _redis_cache_available and _redis_cache_client:
        try:
            _redis_cache_client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis cache delete failed for key '{key}': {e}")


def profile_cache_key(user_id: str) -> str:
    return f"profile:{user_id}"
