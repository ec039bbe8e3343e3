"""
Emotional trend tracking for HeartLens
Compares the emotional balance of earlier and later analyses
"""

import logging
from typing import Dict, Any, List

import pandas as pd

from . import config
from .text_analysis import find_dominant_trait

logger = logging.getLogger(__name__)

TREND_BAND = 0.1
DEFAULT_CONFIDENCE = 0.5


def combined_emotions(result: Dict[str, Any]) -> Dict[str, float]:
    """Mean of both participants' emotion scores."""
    a = result["user_a"]["emotions"]
    b = result["user_b"]["emotions"]
    return {emotion: (a.get(emotion, 0.0) + b.get(emotion, 0.0)) / 2 for emotion in a}


def _dominant_with_confidence(emotions: Dict[str, float]) -> Dict[str, Any]:
    dominant = find_dominant_trait(emotions) or "joy"
    total = sum(emotions.values())
    confidence = emotions.get(dominant, 0.0) / total if total > 0 else DEFAULT_CONFIDENCE
    return {"dominant_emotion": dominant, "confidence": float(confidence)}


def emotion_frame(results: List[Dict[str, Any]]) -> pd.DataFrame:
    """One row per analysis in chronological order with a positive-minus-negative balance."""
    rows = []
    for result in results:
        row = combined_emotions(result)
        row["timestamp"] = result.get("timestamp")
        rows.append(row)

    df = pd.DataFrame(rows)
    if len(df) == 0:
        return df

    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)

    positive = [e for e in config.TREND_POSITIVE_EMOTIONS if e in df.columns]
    negative = [e for e in config.TREND_NEGATIVE_EMOTIONS if e in df.columns]
    df["balance"] = df[positive].sum(axis=1) - df[negative].sum(axis=1)
    return df


def track_emotional_trend(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Classify the trend across analyses.

    Returns:
        {"trend": "improving"|"declining"|"stable", "dominant_emotion", "confidence", "points"}
    """
    if len(results) < 2:
        if results:
            latest = _dominant_with_confidence(combined_emotions(results[0]))
        else:
            latest = {"dominant_emotion": "joy", "confidence": DEFAULT_CONFIDENCE}
        return {"trend": "stable", **latest, "points": len(results)}

    df = emotion_frame(results)
    half = len(df) // 2
    first_avg = float(df["balance"].iloc[:half].mean())
    second_avg = float(df["balance"].iloc[half:].mean())

    if second_avg > first_avg + TREND_BAND:
        trend = "improving"
    elif second_avg < first_avg - TREND_BAND:
        trend = "declining"
    else:
        trend = "stable"

    latest_emotions = {
        e: float(df.iloc[-1][e]) for e in combined_emotions(results[0]).keys()
    }
    logger.debug(f"Trend over {len(df)} analyses: {first_avg:.3f} -> {second_avg:.3f} ({trend})")

    return {"trend": trend, **_dominant_with_confidence(latest_emotions), "points": len(df)}
