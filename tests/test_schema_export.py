"""
Tests for schema.org JSON-LD export
"""

import json
import pytest

from heartlens.schema_export import generate_schema_analysis, export_json_ld
from heartlens.validation import generate_fallback_result


@pytest.fixture
def schema():
    return generate_schema_analysis(generate_fallback_result("Alex", "Sam"))


def test_dataset_header(schema):
    assert schema["@context"] == "https://schema.org"
    assert schema["@type"] == "Dataset"
    assert schema["name"] == "Relationship Analysis: Alex & Sam"
    assert [p["name"] for p in schema["participants"]] == ["Alex", "Sam"]


def test_emotional_analysis(schema):
    alex = schema["emotionalAnalysis"][0]
    assert alex["about"]["name"] == "Alex"
    assert len(alex["emotions"]) == 8
    assert {"@type": "Emotion", "name": "trust", "value": 0.7} in alex["emotions"]
    assert alex["dominantEmotion"] == "trust"
    assert alex["attachmentStyle"] == "secure"


def test_health_rating_and_recommendations(schema):
    assert schema["relationshipHealth"]["value"] == 75
    assert schema["relationshipHealth"]["maxValue"] == 100
    assert len(schema["recommendations"]) == 4


def test_interaction_statistics_guard_zero_negatives():
    result = generate_fallback_result()
    result["communication_patterns"] = [
        {"date": "Screenshot 1", "positive": 4, "negative": 2},
        {"date": "Screenshot 2", "positive": 3, "negative": 0},
    ]
    stats = generate_schema_analysis(result)["communicationPatterns"]["interactionStatistics"]

    assert [s["value"] for s in stats] == [2.0, 3.0]


def test_export_json_ld(schema):
    text = export_json_ld(schema)
    assert json.loads(text) == schema
    assert text.startswith("{\n  ")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
