"""
Shared fixtures: an in-memory Redis server and OCR result builder
"""

import fakeredis
import pytest


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def ocr_text():
    """Build an OCR result dict the way OcrService returns it."""
    def _make(text, lines=None, image_width=None, confidence=0.9, source="tesseract"):
        return {
            "text": text,
            "confidence": confidence,
            "source": source,
            "processing_time_ms": 1,
            "error": None,
            "lines": lines or [],
            "image_width": image_width,
        }
    return _make
