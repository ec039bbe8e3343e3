"""
Cache module for HeartLens
Redis-backed cache for analysis results keyed by content hash
"""

import json
import hashlib
import logging
from typing import Optional, Dict, Any, List, Tuple, Union

from redis.exceptions import RedisError

from . import config
from .utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def compute_content_hash(
    files: List[Union[bytes, Tuple[str, bytes]]],
    names: Optional[Dict[str, str]] = None,
) -> str:
    """
    SHA256 over participant names and the raw bytes of every file, in order.

    Args:
        files: Raw bytes or (filename, bytes) pairs; filenames are not hashed
        names: {"user_a": ..., "user_b": ...}
    """
    names = names or {}
    digest = hashlib.sha256()
    digest.update(f"{names.get('user_a', '')}\x00{names.get('user_b', '')}\x00".encode("utf-8"))
    for item in files:
        data = item[1] if isinstance(item, tuple) else item
        digest.update(len(data).to_bytes(8, "big"))
        digest.update(data)
    return digest.hexdigest()


def serialize_result(result: Dict[str, Any]) -> str:
    """Stable JSON encoding so equal results give equal payloads."""
    return json.dumps(result, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class AnalysisCache:
    """Redis cache for analysis results with TTL."""

    def __init__(self, client=None, ttl_seconds: Optional[int] = None, prefix: Optional[str] = None):
        """
        Initialize cache.

        Args:
            client: Redis client (default: shared client, resolved lazily)
            ttl_seconds: TTL in seconds (default from config)
            prefix: Key prefix (default from config)
        """
        self._client = client
        self.ttl_seconds = ttl_seconds or config.RESULT_CACHE_TTL_SECONDS
        self.prefix = prefix if prefix is not None else config.RESULT_CACHE_PREFIX

    @property
    def client(self):
        if self._client is None:
            self._client = get_redis_client(max_retries=0)
        return self._client

    def _make_key(self, key: str) -> str:
        return key if key.startswith(self.prefix) else f"{self.prefix}{key}"

    def get_raw(self, key: str) -> Optional[str]:
        """
        Get the stored JSON payload exactly as written.

        Returns None if not found or Redis is unavailable.
        """
        client = self.client
        if client is None:
            return None
        try:
            payload = client.get(self._make_key(key))
        except RedisError as e:
            logger.error(f"Redis get error for key {key}: {e}")
            return None

        if payload is None:
            logger.debug(f"Cache miss for {key[:16]}...")
            return None
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        logger.debug(f"Cache hit for {key[:16]}...")
        return payload

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        payload = self.get_raw(key)
        if payload is None:
            return None
        try:
            return json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding corrupt cache entry {key}: {e}")
            self.delete(key)
            return None

    def set(self, key: str, result: Dict[str, Any], ttl: Optional[int] = None) -> Optional[str]:
        """
        Store result. Returns the payload written, or None on failure.
        """
        client = self.client
        if client is None:
            return None
        payload = serialize_result(result)
        try:
            client.set(self._make_key(key), payload, ex=ttl or self.ttl_seconds)
        except RedisError as e:
            logger.error(f"Redis set error for key {key}: {e}")
            return None
        logger.debug(f"Cached result for {key[:16]}... (TTL {ttl or self.ttl_seconds}s)")
        return payload

    def delete(self, key: str) -> bool:
        client = self.client
        if client is None:
            return False
        try:
            return bool(client.delete(self._make_key(key)))
        except RedisError as e:
            logger.error(f"Redis delete error for key {key}: {e}")
            return False

    def exists(self, key: str) -> bool:
        client = self.client
        if client is None:
            return False
        try:
            return client.exists(self._make_key(key)) == 1
        except RedisError as e:
            logger.error(f"Redis exists error for key {key}: {e}")
            return False

    def ttl(self, key: str) -> int:
        """TTL in seconds, or -1 / -2 for no expiry / missing (as Redis reports)."""
        client = self.client
        if client is None:
            return -1
        try:
            return int(client.ttl(self._make_key(key)))
        except RedisError as e:
            logger.error(f"Redis TTL error for key {key}: {e}")
            return -1

    def extend_ttl(self, key: str, seconds: int) -> bool:
        client = self.client
        if client is None:
            return False
        try:
            return bool(client.expire(self._make_key(key), seconds))
        except RedisError as e:
            logger.error(f"Redis expire error for key {key}: {e}")
            return False

    def clear_pattern(self, pattern: str = "*") -> int:
        """Delete every key under the prefix matching pattern. Returns count deleted."""
        client = self.client
        if client is None:
            return 0
        deleted = 0
        try:
            for key in client.scan_iter(match=f"{self.prefix}{pattern}", count=100):
                deleted += client.delete(key)
        except RedisError as e:
            logger.error(f"Redis clear error for pattern {pattern}: {e}")
        logger.info(f"Cleared {deleted} cache entries matching {pattern}")
        return deleted
