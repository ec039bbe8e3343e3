"""
Charts for HeartLens
Matplotlib renderings of an analysis as PNG bytes
"""

import io
import base64
import logging
from typing import Dict, Any

import matplotlib
matplotlib.use('Agg')  # Non-GUI backend
import matplotlib.pyplot as plt
import numpy as np

logger = logging.getLogger(__name__)


def _to_png(fig) -> bytes:
    buf = io.BytesIO()
    fig.savefig(buf, format='png', dpi=100)
    plt.close(fig)
    buf.seek(0)
    return buf.read()


def emotion_comparison_chart(result: Dict[str, Any]) -> bytes:
    """Side-by-side bars of both participants' emotion scores."""
    user_a, user_b = result["user_a"], result["user_b"]
    emotions = list(user_a["emotions"].keys())
    x = np.arange(len(emotions))
    width = 0.38

    fig, ax = plt.subplots(figsize=(10, 4))
    ax.bar(x - width / 2, [user_a["emotions"][e] for e in emotions], width, label=user_a["name"])
    ax.bar(x + width / 2, [user_b["emotions"].get(e, 0.0) for e in emotions], width, label=user_b["name"])

    ax.set_xticks(x)
    ax.set_xticklabels([e.capitalize() for e in emotions], rotation=30)
    ax.set_ylabel("Score")
    ax.set_ylim(0, 1.05)
    ax.set_title(f"Emotions (relationship health {result['relationship_health']}/100)")
    ax.legend()
    ax.grid(True, axis='y', alpha=0.3)
    plt.tight_layout()

    return _to_png(fig)


def communication_patterns_chart(result: Dict[str, Any]) -> bytes:
    """Positive vs negative message counts per screenshot."""
    patterns = result.get("communication_patterns", [])

    fig, ax = plt.subplots(figsize=(10, 4))
    if patterns:
        labels = [p["date"] for p in patterns]
        ax.plot(labels, [p["positive"] for p in patterns], marker='o', label="Positive", color='tab:green')
        ax.plot(labels, [p["negative"] for p in patterns], marker='o', label="Negative", color='tab:red')
        ax.legend()
    else:
        ax.text(0.5, 0.5, "No messages", ha='center', va='center', transform=ax.transAxes)

    ax.set_ylabel("Messages")
    ax.set_title("Communication Patterns")
    ax.grid(True, alpha=0.3)
    plt.tight_layout()

    return _to_png(fig)


def to_data_uri(png: bytes) -> str:
    return f"data:image/png;base64,{base64.b64encode(png).decode('utf-8')}"
