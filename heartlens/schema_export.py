"""
schema.org export for HeartLens
Describes an analysis as a JSON-LD Dataset
"""

import json
from typing import Dict, Any


def _person_feature(person: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "@type": "PsychologicalFeature",
        "about": {"@type": "Person", "name": person["name"]},
        "emotions": [
            {"@type": "Emotion", "name": emotion, "value": value}
            for emotion, value in person["emotions"].items()
        ],
        "dominantEmotion": person.get("dominant_emotion"),
        "attachmentStyle": person.get("dominant_attachment"),
    }


def generate_schema_analysis(result: Dict[str, Any]) -> Dict[str, Any]:
    """Build the schema.org Dataset for an AnalysisResult."""
    user_a, user_b = result["user_a"], result["user_b"]

    return {
        "@context": "https://schema.org",
        "@type": "Dataset",
        "name": f"Relationship Analysis: {user_a['name']} & {user_b['name']}",
        "description": f"Emotional and communication analysis between {user_a['name']} and {user_b['name']}",
        "dateCreated": result["timestamp"],
        "participants": [
            {"@type": "Person", "name": user_a["name"], "identifier": "user_a"},
            {"@type": "Person", "name": user_b["name"], "identifier": "user_b"},
        ],
        "emotionalAnalysis": [_person_feature(user_a), _person_feature(user_b)],
        "communicationPatterns": {
            "@type": "Conversation",
            # Snapshot: start and end coincide
            "startTime": result["timestamp"],
            "endTime": result["timestamp"],
            "interactionStatistics": [
                {
                    "@type": "InteractionCounter",
                    "name": pattern["date"],
                    "value": pattern["positive"] / (pattern["negative"] or 1),
                }
                for pattern in result.get("communication_patterns", [])
            ],
        },
        "relationshipHealth": {
            "@type": "Rating",
            "name": "Relationship Health",
            "value": result["relationship_health"],
            "minValue": 0,
            "maxValue": 100,
        },
        "recommendations": [
            {"@type": "Recommendation", "text": text}
            for text in result.get("insights", {}).get("recommendations", [])
        ],
    }


def export_json_ld(schema: Dict[str, Any]) -> str:
    return json.dumps(schema, indent=2, ensure_ascii=False)
