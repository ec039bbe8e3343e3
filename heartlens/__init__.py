"""
HeartLens - Chat Screenshot Relationship Analyzer

Reads chat screenshots with OCR, scores the emotions, attachment patterns
and Gottman conflict markers of both participants, and turns them into a
relationship health score with insights and goals.
"""

__version__ = "1.0.0"
__author__ = "HeartLens Team"

from . import config
from . import text_analysis
from . import ocr
from . import screenshot_analysis
from . import insights
from . import validation

__all__ = [
    "config",
    "text_analysis",
    "ocr",
    "screenshot_analysis",
    "insights",
    "validation",
]
