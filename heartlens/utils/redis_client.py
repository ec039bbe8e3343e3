"""
Redis client wrapper for HeartLens.
Provides connection handling, retries and a strict accessor for callers
that cannot work without Redis.
"""

import time
import logging
import threading
from typing import Optional, Dict, Any
import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError

from heartlens import config

logger = logging.getLogger(__name__)


class RedisUnavailable(Exception):
    """Raised when Redis is not available after retries."""
    pass


class RedisClientWrapper:
    _instance = None
    _lock = threading.Lock()
    _redis_client: Optional[redis.Redis] = None
    _is_connected = False

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls):
        """Drop the singleton (used when the URL changes and in tests)."""
        with cls._lock:
            cls._instance = None

    def __init__(self, url: Optional[str] = None):
        self.url = url or config.REDIS_URL
        self._connect()

    def _connect(self):
        """Attempt to connect to Redis."""
        try:
            self._redis_client = redis.Redis.from_url(
                self.url,
                socket_connect_timeout=config.REDIS_SOCKET_TIMEOUT,
                socket_timeout=config.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                decode_responses=True
            )
            self._redis_client.ping()
            self._is_connected = True
            logger.info(f"Successfully connected to Redis at {self.url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            self._is_connected = False
            logger.warning(f"Failed to connect to Redis: {e}")
            self._redis_client = None

    def get_client(self) -> Optional[redis.Redis]:
        """
        Get the Redis client.

        Returns:
            redis.Redis client if connected, None otherwise.
        """
        if not self._is_connected:
            # One quick reconnect attempt
            self._connect()

        return self._redis_client

    def is_available(self) -> bool:
        """Check if Redis is currently available."""
        if not self._is_connected:
            return False
        try:
            self._redis_client.ping()
            return True
        except (ConnectionError, TimeoutError, RedisError):
            self._is_connected = False
            return False


def get_redis_client(max_retries: int = 3) -> Optional[redis.Redis]:
    """
    Get a Redis client with exponential backoff on initial connect.

    Args:
        max_retries: Number of retries for initial connection.

    Returns:
        redis.Redis client or None if unavailable.
    """
    wrapper = RedisClientWrapper.get_instance()
    client = wrapper.get_client()

    if client:
        return client

    for attempt in range(max_retries):
        wait_time = 0.5 * (2 ** attempt)
        time.sleep(wait_time)
        client = wrapper.get_client()
        if client:
            return client

    logger.warning("Redis unavailable after retries. Continuing without key-value store.")
    return None


def require_redis_client(max_retries: int = 0) -> redis.Redis:
    """
    Like get_redis_client but raises RedisUnavailable instead of returning None.
    """
    client = get_redis_client(max_retries=max_retries)
    if client is None:
        raise RedisUnavailable(f"Redis not reachable at {config.REDIS_URL}")
    return client


def check_redis_health(client: Optional[redis.Redis] = None) -> Dict[str, Any]:
    """
    Ping Redis and report latency.

    Returns:
        {"status": "ok", "latency_ms": float} or {"status": "error", "error": str}
    """
    try:
        client = client or require_redis_client()
        start = time.perf_counter()
        client.ping()
        latency = (time.perf_counter() - start) * 1000
        return {"status": "ok", "latency_ms": round(latency, 2)}
    except (RedisUnavailable, RedisError) as e:
        logger.error(f"Redis health check failed: {e}")
        return {"status": "error", "error": str(e)}
