"""
Tests for the insight engine and goal selection
"""

import copy
import pytest

from heartlens.insights import (
    GOAL_CATALOGUE,
    MAX_RECOMMENDATIONS,
    generate_insights,
    goal_needs,
    select_goals,
    FALLBACK_CHALLENGE,
)
from heartlens.validation import generate_fallback_result


@pytest.fixture
def people():
    result = generate_fallback_result("Alex", "Sam")
    return result["user_a"], result["user_b"]


def quiet_person(name, expressiveness):
    return {
        "name": name,
        "emotions": {e: 0.0 for e in ["joy", "sadness", "anger", "fear",
                                      "surprise", "disgust", "trust", "anticipation"]},
        "attachment": {"secure": 0.1, "anxious": 0.1, "avoidant": 0.1, "disorganized": 0.1},
        "gottman": {"harsh_startup": 0.0, "four_horsemen": 0.0, "flooding": 0.0,
                    "body_language": 0.0, "failed_repair_attempts": 0.0, "bad_memories": 0.0},
        "communication_style": {"expressiveness": expressiveness, "emotional_regulation": 0.5,
                                "defensiveness": 0.0, "empathy": 0.5},
        "dominant_emotion": "joy",
        "dominant_attachment": "secure",
    }


def test_insights_name_the_right_person(people):
    alex, sam = people
    insights = generate_insights(alex, sam, 75)

    assert insights["strengths"] == [
        "Strong foundation of trust between Alex and Sam",
        "Healthy ratio of positive to negative interactions in your conversations",
        "Good emotional validation patterns, especially from Alex",
    ]
    assert len(insights["challenges"]) == 3
    assert insights["challenges"][0].endswith("particularly from Sam")
    assert insights["recommendations"][0].startswith("Sam should practice soft startups")


def test_insights_are_deterministic(people):
    alex, sam = people
    assert generate_insights(alex, sam, 75) == generate_insights(copy.deepcopy(alex), copy.deepcopy(sam), 75)


def test_insights_fall_back_when_no_rule_fires():
    insights = generate_insights(quiet_person("Alex", 0.1), quiet_person("Sam", 0.9), 40)

    assert insights["strengths"] == ["Both Alex and Sam are engaged in the conversation"]
    assert insights["challenges"] == [FALLBACK_CHALLENGE]
    assert 1 <= len(insights["recommendations"]) <= MAX_RECOMMENDATIONS


def test_goal_needs_cover_catalogue(people):
    needs = goal_needs(*people)
    assert set(needs) == {goal["id"] for goal in GOAL_CATALOGUE}
    assert all(0.0 <= v <= 1.0 for v in needs.values())


def test_select_goals_ranks_by_need(people):
    goals = select_goals(*people)

    assert [g["id"] for g in goals] == ["4", "2", "1", "7", "8"]
    assert goals[0]["title"] == "Schedule quality time"


def test_select_goals_limit(people):
    assert len(select_goals(*people, limit=2)) == 2
    assert len(select_goals(*people, limit=50)) == len(GOAL_CATALOGUE)


def test_select_goals_returns_copies(people):
    goals = select_goals(*people)
    goals[0]["title"] = "changed"
    assert GOAL_CATALOGUE[3]["title"] == "Schedule quality time"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
