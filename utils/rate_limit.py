import json
import threading
from time import time
from typing import Dict, Optional, Tuple
import logging

import redis

from config.settings import settings

logger = logging.getLogger(__name__)

_redis_client = None
_redis_available = False

if settings.redis_url:
    try:
        _redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        _redis_client.ping()
        _redis_available = True
        logger.info("Redis connected successfully for rate limiting")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        _redis_client = None
        _redis_available = False
else:
    logger.info("REDIS_URL not set. Using in-memory rate limiting.")


class TokenBucketLimiter:
    """
    Distributed rate limiter using Redis (with fallback to in-memory).
    Uses Token Bucket Algorithm.

    capacity requests are allowed per window_seconds for each key; tokens
    refill continuously over the window.
    """

    def __init__(self, name: str, capacity: int, window_seconds: float, use_redis: Optional[bool] = None):
        self.name = name
        self.capacity = capacity
        self.refill_time_window = float(window_seconds)
        # Fallback: in-memory storage (key -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._lock = threading.Lock()
        if use_redis is None:
            use_redis = _redis_available and _redis_client is not None
        self._use_redis = use_redis

    def _get_redis_key(self, key: str) -> str:
        return f"rate_limit:{self.name}:{key}"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        return min(self.capacity, tokens + refill)

    def _check_redis(self, key: str) -> Optional[bool]:
        """
        Returns True if allowed, False if limited, None if Redis failed.
        """
        try:
            redis_key = self._get_redis_key(key)
            now = time()

            bucket_data = _redis_client.get(redis_key)
            if bucket_data:
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                tokens = float(self.capacity)
                last_refill = now

            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                return False

            tokens -= 1.0
            bucket_data = json.dumps({"tokens": tokens, "last_refill": now})
            _redis_client.setex(redis_key, int(self.refill_time_window) + 10, bucket_data)
            return True
        except (redis.RedisError, json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _check_memory(self, key: str) -> bool:
        now = time()
        with self._lock:
            tokens, last_refill = self._buckets.get(key, (float(self.capacity), now))
            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                self._buckets[key] = (tokens, now)
                return False
            self._buckets[key] = (tokens - 1.0, now)
            return True

    def allow(self, key: str) -> bool:
        """Consume one token for key. Returns False when the bucket is empty."""
        if self._use_redis:
            allowed = self._check_redis(key)
            if allowed is not None:
                return allowed
        return self._check_memory(key)

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


# Trial activation is limited per user
trial_rate_limiter = TokenBucketLimiter(
    name="start_trial",
    capacity=settings.trial_attempts_per_hour,
    window_seconds=3600,
)
