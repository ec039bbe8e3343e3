"""
Analysis history for HeartLens
Stores completed analyses in Redis with a bounded, newest-first id list
"""

import json
import logging
from typing import Optional, Dict, Any, List

from redis.exceptions import RedisError

from . import config
from .cache import serialize_result
from .utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def _key(analysis_id: str) -> str:
    return f"{config.ANALYSIS_PREFIX}{analysis_id}"


def _decode(analysis_id: str, payload: str) -> Optional[Dict[str, Any]]:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        logger.warning(f"Skipping corrupt analysis {analysis_id}: {e}")
        return None


def _client(client):
    client = client if client is not None else get_redis_client(max_retries=0)
    if client is None:
        logger.warning("Redis unavailable; analysis history disabled")
    return client


def save_analysis(analysis_id: str, result: Dict[str, Any], client=None) -> bool:
    """
    Save an analysis and push its id onto the history list (trimmed to MAX_HISTORY_SIZE).

    Returns:
        True if saved
    """
    if not analysis_id:
        raise ValueError("analysis_id is required")

    client = _client(client)
    if client is None:
        return False

    try:
        pipe = client.pipeline()
        pipe.set(_key(analysis_id), serialize_result(result))
        pipe.lrem(config.ANALYSIS_HISTORY_KEY, 0, analysis_id)
        pipe.lpush(config.ANALYSIS_HISTORY_KEY, analysis_id)
        pipe.ltrim(config.ANALYSIS_HISTORY_KEY, 0, config.MAX_HISTORY_SIZE - 1)
        pipe.execute()
    except RedisError as e:
        logger.error(f"Error saving analysis {analysis_id} to Redis: {e}")
        return False

    logger.info(f"Saved analysis {analysis_id} to Redis")
    return True


def get_analysis(analysis_id: str, client=None) -> Optional[Dict[str, Any]]:
    client = _client(client)
    if client is None:
        return None

    try:
        payload = client.get(_key(analysis_id))
    except RedisError as e:
        logger.error(f"Error getting analysis {analysis_id} from Redis: {e}")
        return None

    if not payload:
        return None
    return _decode(analysis_id, payload)


def get_analysis_ids(start: int = 0, end: int = -1, client=None) -> List[str]:
    client = _client(client)
    if client is None:
        return []

    try:
        return list(client.lrange(config.ANALYSIS_HISTORY_KEY, start, end))
    except RedisError as e:
        logger.error(f"Error getting analysis IDs from Redis: {e}")
        return []


def get_analyses(start: int = 0, end: int = -1, client=None) -> List[Dict[str, Any]]:
    """
    Get analyses newest first.

    Returns:
        List of {"id": ..., "result": ...}; ids whose payload has expired are skipped
    """
    client = _client(client)
    if client is None:
        return []

    try:
        ids = client.lrange(config.ANALYSIS_HISTORY_KEY, start, end)
        if not ids:
            return []
        payloads = client.mget([_key(i) for i in ids])
    except RedisError as e:
        logger.error(f"Error getting analyses from Redis: {e}")
        return []

    analyses = []
    for analysis_id, payload in zip(ids, payloads):
        result = _decode(analysis_id, payload) if payload else None
        if result is not None:
            analyses.append({"id": analysis_id, "result": result})
    return analyses


def delete_analysis(analysis_id: str, client=None) -> bool:
    client = _client(client)
    if client is None:
        return False

    try:
        pipe = client.pipeline()
        pipe.delete(_key(analysis_id))
        pipe.lrem(config.ANALYSIS_HISTORY_KEY, 0, analysis_id)
        pipe.execute()
    except RedisError as e:
        logger.error(f"Error deleting analysis {analysis_id} from Redis: {e}")
        return False

    logger.info(f"Deleted analysis {analysis_id} from Redis")
    return True


def clear_analyses(client=None) -> bool:
    client = _client(client)
    if client is None:
        return False

    try:
        ids = client.lrange(config.ANALYSIS_HISTORY_KEY, 0, -1)
        if ids:
            client.delete(*[_key(i) for i in ids])
        client.delete(config.ANALYSIS_HISTORY_KEY)
    except RedisError as e:
        logger.error(f"Error clearing analyses from Redis: {e}")
        return False

    logger.info(f"Cleared {len(ids)} analyses from Redis")
    return True
