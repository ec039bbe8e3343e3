"""
Redis inspection for the admin dashboard
Key listing, typed value lookup, deletion and server statistics
"""

import time
import logging
from typing import Optional, Dict, Any, List

from .utils.redis_client import require_redis_client

logger = logging.getLogger(__name__)

MAX_KEYS = 1000


def _client(client):
    return client if client is not None else require_redis_client()


def list_keys(pattern: str = "*", limit: int = MAX_KEYS, client=None) -> List[Dict[str, Any]]:
    """
    List keys matching a glob pattern, sorted by name.

    Returns:
        List of {"key", "type", "ttl"}; ttl is None for keys without expiry
    """
    client = _client(client)
    keys = []
    for key in client.scan_iter(match=pattern, count=100):
        keys.append(key)
        if len(keys) >= limit:
            logger.info(f"Key listing for {pattern!r} truncated at {limit}")
            break

    listing = []
    for key in sorted(keys):
        ttl = client.ttl(key)
        listing.append({"key": key, "type": client.type(key), "ttl": ttl if ttl >= 0 else None})
    return listing


def get_key(key: str, client=None) -> Optional[Dict[str, Any]]:
    """
    Read a key with the command matching its type.

    Returns:
        {"key", "type", "ttl", "value"} or None if the key does not exist
    """
    client = _client(client)
    key_type = client.type(key)

    if key_type == "none":
        return None
    if key_type == "string":
        value = client.get(key)
    elif key_type == "list":
        value = client.lrange(key, 0, -1)
    elif key_type == "hash":
        value = client.hgetall(key)
    elif key_type == "set":
        value = sorted(client.smembers(key))
    elif key_type == "zset":
        value = [{"member": m, "score": s} for m, s in client.zrange(key, 0, -1, withscores=True)]
    else:
        value = None

    ttl = client.ttl(key)
    return {"key": key, "type": key_type, "ttl": ttl if ttl >= 0 else None, "value": value}


def delete_key(key: str, client=None) -> bool:
    client = _client(client)
    deleted = bool(client.delete(key))
    if deleted:
        logger.info(f"Deleted Redis key {key}")
    return deleted


def redis_stats(client=None) -> Dict[str, Any]:
    """
    Server statistics from PING, DBSIZE and INFO.

    Returns:
        Dict with responseTime (ms), memoryUsage, keyStats, clientStats, commandStats and uptime
    """
    client = _client(client)

    start = time.perf_counter()
    client.ping()
    response_time = round((time.perf_counter() - start) * 1000, 2)

    info = client.info()
    total_keys = client.dbsize()
    db_index = client.connection_pool.connection_kwargs.get("db", 0)
    keyspace = info.get(f"db{db_index}") or {}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    lookups = hits + misses

    return {
        "status": "ok",
        "message": "Redis is reachable",
        "responseTime": response_time,
        "memoryUsage": {
            "used": info.get("used_memory", 0),
            "peak": info.get("used_memory_peak", 0),
            "total": info.get("maxmemory") or info.get("total_system_memory", 0),
            "fragmentationRatio": info.get("mem_fragmentation_ratio", 0.0),
        },
        "keyStats": {
            "total": total_keys,
            "expiringCount": keyspace.get("expires", 0),
            "avgTtl": keyspace.get("avg_ttl", 0),
        },
        "commandStats": {
            "totalCommands": info.get("total_commands_processed", 0),
            "commandsPerSecond": info.get("instantaneous_ops_per_sec", 0),
            "hitRate": round(hits / lookups, 4) if lookups else None,
        },
        "clientStats": {
            "connected": info.get("connected_clients", 0),
            "blocked": info.get("blocked_clients", 0),
            "maxClients": info.get("maxclients"),
        },
        "uptime": info.get("uptime_in_seconds"),
        "timestamp": int(time.time() * 1000),
    }
