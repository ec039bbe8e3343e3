"""
Feature flags for HeartLens
Redis hashes with on/off switch, user allowlist and percentage rollout
"""

import json
import random
import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List

from redis.exceptions import RedisError

from . import config
from .utils.redis_client import get_redis_client, require_redis_client

logger = logging.getLogger(__name__)


def _key(name: str) -> str:
    return f"{config.FEATURE_PREFIX}{name}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def decode_flag(raw: Dict[str, str]) -> Dict[str, Any]:
    """Convert a stored hash (all strings) back into a flag dict."""
    flag: Dict[str, Any] = {
        "name": raw.get("name", ""),
        "enabled": _to_bool(raw.get("enabled", "false")),
        "description": raw.get("description", ""),
        "created_at": raw.get("created_at"),
        "updated_at": raw.get("updated_at"),
    }

    percentage = raw.get("percentage")
    flag["percentage"] = int(float(percentage)) if percentage not in (None, "") else None

    allowlist = raw.get("allowlist")
    try:
        flag["allowlist"] = json.loads(allowlist) if allowlist else []
    except json.JSONDecodeError:
        flag["allowlist"] = []
    return flag


def encode_flag(flag: Dict[str, Any], existing: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Prepare a flag for HSET, stamping timestamps."""
    name = flag.get("name")
    if not name:
        raise ValueError("Feature flag name is required")

    percentage = flag.get("percentage")
    if percentage is not None:
        percentage = int(percentage)
        if not 0 <= percentage <= 100:
            raise ValueError(f"percentage must be within 0..100, got {percentage}")

    allowlist = flag.get("allowlist") or []
    if isinstance(allowlist, str):
        allowlist = json.loads(allowlist)

    now = _now()
    created_at = flag.get("created_at") or (existing or {}).get("created_at") or now

    mapping = {
        "name": name,
        "enabled": "true" if _to_bool(flag.get("enabled", False)) else "false",
        "description": flag.get("description") or "",
        "allowlist": json.dumps(list(allowlist)),
        "created_at": created_at,
        "updated_at": now,
    }
    if percentage is not None:
        mapping["percentage"] = str(percentage)
    return mapping


def rollout_bucket(user_id: str) -> int:
    """Stable 0..99 bucket from the first byte of sha256(user_id)."""
    digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()
    return int(digest[:2], 16) % 100


def get_feature_flag(name: str, client=None) -> Optional[Dict[str, Any]]:
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        return None
    try:
        raw = client.hgetall(_key(name))
    except RedisError as e:
        logger.error(f"Error getting feature flag {name}: {e}")
        return None
    return decode_flag(raw) if raw else None


def is_feature_enabled(name: str, user_id: Optional[str] = None, client=None) -> bool:
    """
    Resolve a flag for a user.

    Disabled or missing flags are off. Allowlisted users are on. With a
    percentage, known users are bucketed by hash and anonymous users get a
    random draw. Otherwise the flag is on.
    """
    flag = get_feature_flag(name, client=client)
    if not flag or not flag["enabled"]:
        return False

    if user_id and user_id in flag["allowlist"]:
        return True

    if flag["percentage"] is not None:
        if not user_id:
            return random.random() * 100 < flag["percentage"]
        return rollout_bucket(user_id) < flag["percentage"]

    return True


def set_feature_flag(flag: Dict[str, Any], client=None) -> Dict[str, Any]:
    """
    Create or replace a flag.

    Raises:
        ValueError: invalid flag
        RedisUnavailable: no Redis connection
    """
    client = client if client is not None else require_redis_client()
    key = _key(flag.get("name", ""))
    existing = client.hgetall(key) if flag.get("name") else None
    mapping = encode_flag(flag, existing)

    pipe = client.pipeline()
    pipe.delete(key)
    pipe.hset(key, mapping=mapping)
    pipe.execute()

    logger.info(f"Feature flag {mapping['name']} set/updated")
    return decode_flag(mapping)


def update_feature_flag(name: str, changes: Dict[str, Any], client=None) -> Optional[Dict[str, Any]]:
    """Apply a partial update. Returns None if the flag does not exist."""
    client = client if client is not None else require_redis_client()
    current = get_feature_flag(name, client=client)
    if current is None:
        return None
    merged = {**current, **{k: v for k, v in changes.items() if k != "name"}, "name": name}
    return set_feature_flag(merged, client=client)


def delete_feature_flag(name: str, client=None) -> bool:
    client = client if client is not None else require_redis_client()
    deleted = bool(client.delete(_key(name)))
    logger.info(f"Feature flag {name} deleted" if deleted else f"Feature flag {name} not found")
    return deleted


def get_all_feature_flags(client=None) -> List[Dict[str, Any]]:
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        return []
    try:
        flags = []
        for key in client.scan_iter(match=f"{config.FEATURE_PREFIX}*", count=100):
            raw = client.hgetall(key)
            if raw:
                flags.append(decode_flag(raw))
    except RedisError as e:
        logger.error(f"Error getting all feature flags: {e}")
        return []
    return sorted(flags, key=lambda f: f["name"])


def bulk_update_feature_flags(flags: List[Dict[str, Any]], client=None) -> int:
    """Write several flags in one pipeline. Returns the number written."""
    client = client if client is not None else require_redis_client()
    mappings = [encode_flag(flag) for flag in flags]

    pipe = client.pipeline()
    for mapping in mappings:
        pipe.hset(_key(mapping["name"]), mapping=mapping)
    pipe.execute()

    logger.info(f"Bulk updated {len(mappings)} feature flags")
    return len(mappings)
