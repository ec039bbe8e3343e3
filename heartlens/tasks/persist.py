"""
Background persistence for HeartLens
Writes completed analyses to the relational store, via Celery when enabled
"""

import logging
import sqlite3
from typing import Dict, Any, Optional

from .. import config
from ..storage import AnalysisStore
from .celery_app import celery as app

logger = logging.getLogger(__name__)


def persist_analysis_result_sync(request_id: int, result: Dict[str, Any], db_path: Optional[str] = None) -> bool:
    """
    Mark the request row completed with its result.

    Returns:
        True if a row was updated
    """
    store = AnalysisStore(db_path)
    updated = store.complete_analysis_request(request_id, result)
    logger.debug(f"Persisted analysis request {request_id} (updated={updated})")
    return updated


@app.task(bind=True, name='heartlens.tasks.persist.persist_analysis_result')
def persist_analysis_result(self, request_id: int, result: Dict[str, Any], db_path: Optional[str] = None):
    """
    Async task to persist a completed analysis.

    Args:
        request_id: analysis_requests row id
        result: AnalysisResult dict
        db_path: SQLite path override
    """
    try:
        updated = persist_analysis_result_sync(request_id, result, db_path)
        return {'status': 'success', 'request_id': request_id, 'updated': updated}
    except sqlite3.OperationalError as e:
        logger.warning(f"Database busy while persisting request {request_id}: {e} - retrying")
        raise self.retry(exc=e, countdown=10, max_retries=3)


def enqueue_persist(request_id: int, result: Dict[str, Any], db_path: Optional[str] = None) -> str:
    """
    Persist a completed analysis (async if enabled, sync otherwise).

    Returns:
        "async" or "sync", the path taken
    """
    if config.ASYNC_PERSIST:
        try:
            persist_analysis_result.delay(request_id, result, db_path)
            logger.debug(f"Persist of request {request_id} enqueued (async)")
            return "async"
        except Exception as e:
            logger.warning(f"Failed to enqueue persist task: {e} - falling back to sync")

    persist_analysis_result_sync(request_id, result, db_path)
    return "sync"
