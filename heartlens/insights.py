"""
HeartLens Insight Engine
Rule-based strengths, challenges, recommendations and goal selection

Every rule reads the aggregated person profiles, so the same analysis
always yields the same insights.
"""

import logging
from typing import Dict, Any, List, Callable, Tuple

logger = logging.getLogger(__name__)

MAX_STRENGTHS = 3
MAX_CHALLENGES = 3
MAX_RECOMMENDATIONS = 4
DEFAULT_GOAL_LIMIT = 5

GOAL_CATALOGUE: List[Dict[str, str]] = [
    {"id": "1", "title": "Improve active listening",
     "description": "Practice reflecting back what your partner says before responding",
     "category": "communication", "difficulty": "medium"},
    {"id": "2", "title": "Express appreciation daily",
     "description": "Share one thing you appreciate about your partner each day",
     "category": "connection", "difficulty": "easy"},
    {"id": "3", "title": "Manage conflict constructively",
     "description": "Use 'I' statements and avoid criticism during disagreements",
     "category": "conflict", "difficulty": "hard"},
    {"id": "4", "title": "Schedule quality time",
     "description": "Plan and protect dedicated time together each week",
     "category": "connection", "difficulty": "medium"},
    {"id": "5", "title": "Practice vulnerability",
     "description": "Share feelings and needs openly with your partner",
     "category": "intimacy", "difficulty": "hard"},
    {"id": "6", "title": "Implement repair phrases",
     "description": "Develop and use phrases that help de-escalate conflicts",
     "category": "conflict", "difficulty": "medium"},
    {"id": "7", "title": "Create emotional bids",
     "description": "Make small requests for connection throughout the day",
     "category": "connection", "difficulty": "easy"},
    {"id": "8", "title": "Practice mindful communication",
     "description": "Pause and breathe before responding in tense situations",
     "category": "communication", "difficulty": "medium"},
    {"id": "9", "title": "Clarify emoji meanings",
     "description": "Discuss what specific emojis mean to each of you to avoid misunderstandings",
     "category": "communication", "difficulty": "easy"},
    {"id": "10", "title": "Reduce passive-aggressive punctuation",
     "description": "Replace ellipses (...) with clearer statements of feelings",
     "category": "communication", "difficulty": "medium"},
    {"id": "11", "title": "Balance response times",
     "description": "Work on responding within a reasonable timeframe to reduce anxiety",
     "category": "connection", "difficulty": "medium"},
    {"id": "12", "title": "Use emotion words instead of just emojis",
     "description": "Pair emojis with explicit statements about your feelings",
     "category": "intimacy", "difficulty": "easy"},
]


def _avg(a: Dict[str, Any], b: Dict[str, Any], section: str, key: str) -> float:
    return (a[section][key] + b[section][key]) / 2


def _higher(a: Dict[str, Any], b: Dict[str, Any], section: str, key: str) -> Dict[str, Any]:
    """Person with the higher value (user_a on ties)."""
    return b if b[section][key] > a[section][key] else a


def _lower(a: Dict[str, Any], b: Dict[str, Any], section: str, key: str) -> Dict[str, Any]:
    return b if b[section][key] < a[section][key] else a


Rule = Tuple[Callable[[Dict, Dict, int], bool], Callable[[Dict, Dict, int], str]]

STRENGTH_RULES: List[Rule] = [
    (lambda a, b, h: _avg(a, b, "emotions", "trust") >= 0.2,
     lambda a, b, h: f"Strong foundation of trust between {a['name']} and {b['name']}"),
    (lambda a, b, h: _avg(a, b, "gottman", "failed_repair_attempts") < 0.3
        and _avg(a, b, "gottman", "four_horsemen") < 0.3 and h >= 50,
     lambda a, b, h: "Healthy ratio of positive to negative interactions in your conversations"),
    (lambda a, b, h: max(a["communication_style"]["empathy"], b["communication_style"]["empathy"]) > 0.5,
     lambda a, b, h: "Good emotional validation patterns, especially from "
                     f"{_higher(a, b, 'communication_style', 'empathy')['name']}"),
    (lambda a, b, h: _avg(a, b, "emotions", "joy") >= 0.2,
     lambda a, b, h: f"Warm, joyful tone in messages from both {a['name']} and {b['name']}"),
    (lambda a, b, h: abs(a["communication_style"]["expressiveness"]
                         - b["communication_style"]["expressiveness"]) < 0.15,
     lambda a, b, h: f"Balanced emotional expressiveness between {a['name']} and {b['name']}"),
    (lambda a, b, h: _avg(a, b, "communication_style", "emotional_regulation") >= 0.7,
     lambda a, b, h: "Steady emotional regulation that keeps exchanges from escalating"),
    (lambda a, b, h: _avg(a, b, "attachment", "secure") >= 0.4,
     lambda a, b, h: "Secure attachment signals on both sides of the conversation"),
]

CHALLENGE_RULES: List[Rule] = [
    (lambda a, b, h: max(a["gottman"]["harsh_startup"], b["gottman"]["harsh_startup"]) >= 0.3,
     lambda a, b, h: "Tendency toward harsh startups in difficult conversations, particularly from "
                     f"{_higher(a, b, 'gottman', 'harsh_startup')['name']}"),
    (lambda a, b, h: max(a["gottman"]["flooding"], b["gottman"]["flooding"]) >= 0.2,
     lambda a, b, h: "Occasional emotional flooding during conflicts, especially for "
                     f"{_higher(a, b, 'gottman', 'flooding')['name']}"),
    (lambda a, b, h: max(a["communication_style"]["defensiveness"],
                         b["communication_style"]["defensiveness"]) >= 0.3,
     lambda a, b, h: "Some signs of defensive communication patterns from "
                     f"{_higher(a, b, 'communication_style', 'defensiveness')['name']}"),
    (lambda a, b, h: max(a["gottman"]["four_horsemen"], b["gottman"]["four_horsemen"]) >= 0.2,
     lambda a, b, h: "Criticism or contempt shows up in some exchanges, most often from "
                     f"{_higher(a, b, 'gottman', 'four_horsemen')['name']}"),
    (lambda a, b, h: a["dominant_attachment"] != b["dominant_attachment"],
     lambda a, b, h: f"Mismatched attachment needs between {a['name']} and {b['name']} causing tension"),
    (lambda a, b, h: min(a["communication_style"]["emotional_regulation"],
                         b["communication_style"]["emotional_regulation"]) < 0.5,
     lambda a, b, h: "Inconsistent emotional regulation from "
                     f"{_lower(a, b, 'communication_style', 'emotional_regulation')['name']} during disagreements"),
    (lambda a, b, h: max(a["gottman"]["failed_repair_attempts"], b["gottman"]["failed_repair_attempts"]) >= 0.5,
     lambda a, b, h: "Repair attempts are often not picked up by the other person"),
    (lambda a, b, h: max(a["gottman"]["bad_memories"], b["gottman"]["bad_memories"]) >= 0.2,
     lambda a, b, h: "Past grievances resurface during present disagreements"),
]

RECOMMENDATION_RULES: List[Rule] = [
    (lambda a, b, h: max(a["gottman"]["harsh_startup"], b["gottman"]["harsh_startup"]) >= 0.3,
     lambda a, b, h: f"{_higher(a, b, 'gottman', 'harsh_startup')['name']} should practice soft startups "
                     "when bringing up difficult topics"),
    (lambda a, b, h: max(a["gottman"]["flooding"], b["gottman"]["flooding"]) >= 0.2,
     lambda a, b, h: f"Implement a 20-minute break when either {a['name']} or {b['name']} feels flooded"),
    (lambda a, b, h: min(a["emotions"]["trust"], b["emotions"]["trust"]) < 0.2,
     lambda a, b, h: f"{_lower(a, b, 'emotions', 'trust')['name']} could increase daily expressions "
                     "of appreciation and gratitude"),
    (lambda a, b, h: min(a["communication_style"]["empathy"], b["communication_style"]["empathy"]) <= 0.5,
     lambda a, b, h: f"{_lower(a, b, 'communication_style', 'empathy')['name']} should work on active "
                     "listening techniques to improve understanding"),
    (lambda a, b, h: max(a["communication_style"]["defensiveness"],
                         b["communication_style"]["defensiveness"]) >= 0.3,
     lambda a, b, h: f"{_higher(a, b, 'communication_style', 'defensiveness')['name']} could use more "
                     "explicit emotional language instead of relying on punctuation"),
    (lambda a, b, h: h < 60,
     lambda a, b, h: f"Schedule regular check-ins for {a['name']} and {b['name']} to discuss relationship needs"),
]

FALLBACK_STRENGTH = "Both {a} and {b} are engaged in the conversation"
FALLBACK_CHALLENGE = "Not enough conversation history yet to identify clear challenges"
FALLBACK_RECOMMENDATION = "Both {a} and {b} should acknowledge each other's messages more consistently"


def _apply_rules(rules: List[Rule], a: Dict, b: Dict, health: int, limit: int) -> List[str]:
    fired = [describe(a, b, health) for check, describe in rules if check(a, b, health)]
    return fired[:limit]


def generate_insights(user_a: Dict[str, Any], user_b: Dict[str, Any], health: int) -> Dict[str, List[str]]:
    """
    Generate strengths, challenges and recommendations.

    Args:
        user_a: PersonProfile with name and dominant traits
        user_b: PersonProfile with name and dominant traits
        health: relationship health 0..100

    Returns:
        {"strengths": [...], "challenges": [...], "recommendations": [...]}, each non-empty
    """
    strengths = _apply_rules(STRENGTH_RULES, user_a, user_b, health, MAX_STRENGTHS)
    challenges = _apply_rules(CHALLENGE_RULES, user_a, user_b, health, MAX_CHALLENGES)
    recommendations = _apply_rules(RECOMMENDATION_RULES, user_a, user_b, health, MAX_RECOMMENDATIONS)

    names = {"a": user_a["name"], "b": user_b["name"]}
    insights = {
        "strengths": strengths or [FALLBACK_STRENGTH.format(**names)],
        "challenges": challenges or [FALLBACK_CHALLENGE],
        "recommendations": recommendations or [FALLBACK_RECOMMENDATION.format(**names)],
    }
    logger.debug(
        f"Insights: {len(insights['strengths'])} strengths, {len(insights['challenges'])} challenges, "
        f"{len(insights['recommendations'])} recommendations"
    )
    return insights


def goal_needs(user_a: Dict[str, Any], user_b: Dict[str, Any]) -> Dict[str, float]:
    """How much each catalogue goal is needed, in [0, 1], keyed by goal id."""
    a, b = user_a, user_b
    expr_gap = abs(a["communication_style"]["expressiveness"] - b["communication_style"]["expressiveness"])
    return {
        "1": 1 - _avg(a, b, "communication_style", "empathy"),
        "2": 1 - _avg(a, b, "emotions", "joy"),
        "3": (_avg(a, b, "gottman", "four_horsemen") + _avg(a, b, "gottman", "harsh_startup")) / 2,
        "4": 1 - _avg(a, b, "emotions", "anticipation"),
        "5": _avg(a, b, "attachment", "avoidant"),
        "6": max(_avg(a, b, "gottman", "failed_repair_attempts"), _avg(a, b, "gottman", "flooding")),
        "7": 1 - _avg(a, b, "communication_style", "expressiveness"),
        "8": 1 - _avg(a, b, "communication_style", "emotional_regulation"),
        "9": _avg(a, b, "gottman", "body_language"),
        "10": _avg(a, b, "communication_style", "defensiveness"),
        "11": _avg(a, b, "attachment", "anxious"),
        "12": expr_gap,
    }


def select_goals(user_a: Dict[str, Any], user_b: Dict[str, Any], limit: int = DEFAULT_GOAL_LIMIT) -> List[Dict[str, str]]:
    """Pick the goals for the weakest areas; catalogue order breaks ties."""
    needs = goal_needs(user_a, user_b)
    ranked = sorted(GOAL_CATALOGUE, key=lambda g: -needs.get(g["id"], 0.0))
    return [dict(goal) for goal in ranked[:limit]]
