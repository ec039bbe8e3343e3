"""
Tests for matplotlib chart rendering
"""

import base64
import pytest

from heartlens.charts import emotion_comparison_chart, communication_patterns_chart, to_data_uri
from heartlens.validation import generate_fallback_result

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def test_emotion_comparison_chart_is_png():
    png = emotion_comparison_chart(generate_fallback_result("Alex", "Sam"))
    assert png.startswith(PNG_MAGIC)


def test_communication_patterns_chart_is_png():
    assert communication_patterns_chart(generate_fallback_result()).startswith(PNG_MAGIC)


def test_communication_patterns_chart_without_data():
    result = generate_fallback_result()
    result["communication_patterns"] = []
    assert communication_patterns_chart(result).startswith(PNG_MAGIC)


def test_to_data_uri():
    uri = to_data_uri(b"abc")
    assert uri == "data:image/png;base64," + base64.b64encode(b"abc").decode("utf-8")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
