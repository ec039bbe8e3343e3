"""
Utility modules for HeartLens
"""

from .redis_client import (
    RedisUnavailable,
    RedisClientWrapper,
    get_redis_client,
    require_redis_client,
    check_redis_health,
)

__all__ = [
    'RedisUnavailable',
    'RedisClientWrapper',
    'get_redis_client',
    'require_redis_client',
    'check_redis_health',
]
