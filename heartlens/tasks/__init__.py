"""
Background tasks for HeartLens
"""

from .persist import (
    enqueue_persist,
    persist_analysis_result,
    persist_analysis_result_sync,
)

__all__ = [
    'enqueue_persist',
    'persist_analysis_result',
    'persist_analysis_result_sync',
]
