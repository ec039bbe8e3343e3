"""
Rate limiting for HeartLens
Redis fixed-window and sliding-window limiters (fail open) plus an
in-process limiter for the single-screenshot endpoint
"""

import math
import time
import uuid
import logging
import threading
from typing import Optional, Dict, Any, Tuple, Callable

from redis.exceptions import RedisError

from . import config
from .utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def _result(success: bool, remaining: int, reset: int, limit: int) -> Dict[str, Any]:
    return {"success": success, "remaining": max(0, remaining), "reset": reset, "limit": limit}


def check_rate_limit(
    identifier: str,
    max_requests: int,
    window_seconds: int,
    prefix: Optional[str] = None,
    client=None,
) -> Dict[str, Any]:
    """
    Fixed-window counter.

    Returns:
        {"success", "remaining", "reset" (seconds), "limit"}. Allows the
        request when Redis is unavailable.
    """
    key = f"{prefix or config.RATE_LIMIT_PREFIX}{identifier}"
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        return _result(True, max_requests - 1, window_seconds, max_requests)

    try:
        current = int(client.get(key) or 0)

        if current >= max_requests:
            ttl = client.ttl(key)
            logger.debug(f"Rate limit exceeded for {identifier}: {current}/{max_requests}")
            return _result(False, 0, ttl if ttl > 0 else window_seconds, max_requests)

        client.incr(key)
        if current == 0:
            client.expire(key, window_seconds)

        ttl = client.ttl(key)
        return _result(True, max_requests - (current + 1), ttl if ttl > 0 else window_seconds, max_requests)
    except RedisError as e:
        logger.error(f"Rate limit check error for {identifier}: {e}")
        return _result(True, max_requests - 1, window_seconds, max_requests)


def sliding_window_rate_limit(
    identifier: str,
    max_requests: int,
    window_seconds: int,
    prefix: Optional[str] = None,
    client=None,
) -> Dict[str, Any]:
    """Sliding-window limiter over a sorted set of request timestamps (ms)."""
    key = f"{prefix or config.SLIDING_WINDOW_PREFIX}{identifier}"
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        return _result(True, max_requests - 1, window_seconds, max_requests)

    now = int(time.time() * 1000)
    window_start = now - window_seconds * 1000

    try:
        pipe = client.pipeline()
        pipe.zadd(key, {f"{now}-{uuid.uuid4().hex[:8]}": now})
        pipe.zremrangebyscore(key, 0, window_start)
        pipe.expire(key, window_seconds)
        pipe.zcard(key)
        count = int(pipe.execute()[-1])

        if count > max_requests:
            oldest = client.zrange(key, 0, 0, withscores=True)
            reset = (
                math.ceil((float(oldest[0][1]) + window_seconds * 1000 - now) / 1000)
                if oldest else window_seconds
            )
            logger.debug(f"Sliding window rate limit exceeded for {identifier}: {count}/{max_requests}")
            return _result(False, 0, reset if reset > 0 else 1, max_requests)

        return _result(True, max_requests - count, window_seconds, max_requests)
    except RedisError as e:
        logger.error(f"Sliding window rate limit error for {identifier}: {e}")
        return _result(True, max_requests - 1, window_seconds, max_requests)


def reset_rate_limit(identifier: str, prefix: Optional[str] = None, client=None) -> bool:
    key = f"{prefix or config.RATE_LIMIT_PREFIX}{identifier}"
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        return False
    try:
        client.delete(key)
    except RedisError as e:
        logger.error(f"Rate limit reset error for {identifier}: {e}")
        return False
    logger.debug(f"Rate limit reset for {identifier}")
    return True


def get_rate_limit_status(identifier: str, prefix: Optional[str] = None, client=None) -> Optional[Dict[str, int]]:
    """Current count and TTL, or None if there is no counter."""
    key = f"{prefix or config.RATE_LIMIT_PREFIX}{identifier}"
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        return None
    try:
        current = client.get(key)
        if current is None:
            return None
        ttl = client.ttl(key)
    except RedisError as e:
        logger.error(f"Rate limit status error for {identifier}: {e}")
        return None
    return {"current": int(current), "ttl": ttl if ttl > 0 else 0}


class MemoryRateLimiter:
    """
    In-process limiter: `points` requests per `duration` seconds per key.
    Exceeding the limit blocks the key for `block_duration` seconds.
    """

    def __init__(
        self,
        points: Optional[int] = None,
        duration: Optional[int] = None,
        block_duration: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.points = points or config.ANALYZE_CHAT_RATE_POINTS
        self.duration = duration or config.ANALYZE_CHAT_RATE_DURATION
        self.block_duration = config.ANALYZE_CHAT_BLOCK_DURATION if block_duration is None else block_duration
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: Dict[str, Dict[str, float]] = {}
        self._next_prune = 0.0

    def consume(self, key: str) -> Tuple[bool, int]:
        """
        Consume one point for key.

        Returns:
            (allowed, retry_after_seconds); retry_after is 0 when allowed
        """
        now = self._clock()
        with self._lock:
            if now >= self._next_prune:
                self._prune(now)

            bucket = self._buckets.get(key)
            if bucket is None or (now >= bucket["reset_at"] and now >= bucket["blocked_until"]):
                bucket = {"count": 0, "reset_at": now + self.duration, "blocked_until": 0.0}
                self._buckets[key] = bucket

            if now < bucket["blocked_until"]:
                return False, math.ceil(bucket["blocked_until"] - now)

            bucket["count"] += 1
            if bucket["count"] <= self.points:
                return True, 0

            if self.block_duration > 0:
                bucket["blocked_until"] = now + self.block_duration
                return False, math.ceil(self.block_duration)
            return False, math.ceil(bucket["reset_at"] - now)

    def _prune(self, now: float):
        """Drop buckets whose window and block have both run out. Caller holds the lock."""
        expired = [
            key for key, bucket in self._buckets.items()
            if now >= bucket["reset_at"] and now >= bucket["blocked_until"]
        ]
        for key in expired:
            del self._buckets[key]
        self._next_prune = now + self.duration
        if expired:
            logger.debug(f"Pruned {len(expired)} expired rate-limit buckets")

    def reset(self, key: Optional[str] = None):
        with self._lock:
            if key is None:
                self._buckets.clear()
            else:
                self._buckets.pop(key, None)
