"""
Validation for HeartLens analysis results
pydantic models for AnalysisResult and request bodies, plus the fixed fallback result
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Dict, Any, List, Optional, Tuple, Type, Union, Literal

from pydantic import BaseModel, ConfigDict, Field, NonNegativeFloat, NonNegativeInt, ValidationError

from .insights import GOAL_CATALOGUE

logger = logging.getLogger(__name__)

Sender = Literal["user_a", "user_b"]
Count = Union[NonNegativeInt, NonNegativeFloat]
Health = Union[Annotated[int, Field(ge=0, le=100)], Annotated[float, Field(ge=0, le=100)]]


# ============================================================================
# Score maps (every score within [0, 1], missing scores default to 0)
# ============================================================================

class EmotionScores(BaseModel):
    joy: float = Field(default=0.0, ge=0, le=1)
    sadness: float = Field(default=0.0, ge=0, le=1)
    anger: float = Field(default=0.0, ge=0, le=1)
    fear: float = Field(default=0.0, ge=0, le=1)
    surprise: float = Field(default=0.0, ge=0, le=1)
    disgust: float = Field(default=0.0, ge=0, le=1)
    trust: float = Field(default=0.0, ge=0, le=1)
    anticipation: float = Field(default=0.0, ge=0, le=1)


class AttachmentStyle(BaseModel):
    secure: float = Field(default=0.0, ge=0, le=1)
    anxious: float = Field(default=0.0, ge=0, le=1)
    avoidant: float = Field(default=0.0, ge=0, le=1)
    disorganized: float = Field(default=0.0, ge=0, le=1)


class GottmanMetrics(BaseModel):
    harsh_startup: float = Field(default=0.0, ge=0, le=1)
    four_horsemen: float = Field(default=0.0, ge=0, le=1)
    flooding: float = Field(default=0.0, ge=0, le=1)
    body_language: float = Field(default=0.0, ge=0, le=1)
    failed_repair_attempts: float = Field(default=0.0, ge=0, le=1)
    bad_memories: float = Field(default=0.0, ge=0, le=1)


class CommunicationStyle(BaseModel):
    expressiveness: float = Field(default=0.0, ge=0, le=1)
    emotional_regulation: float = Field(default=0.0, ge=0, le=1)
    defensiveness: float = Field(default=0.0, ge=0, le=1)
    empathy: float = Field(default=0.0, ge=0, le=1)


class PersonProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    emotions: EmotionScores = Field(default_factory=EmotionScores)
    attachment: AttachmentStyle = Field(default_factory=AttachmentStyle)
    gottman: GottmanMetrics = Field(default_factory=GottmanMetrics)
    communication_style: CommunicationStyle = Field(default_factory=CommunicationStyle)
    dominant_emotion: Optional[str] = "neutral"
    dominant_attachment: Optional[str] = "secure"


PROFILE_SECTIONS: Dict[str, Type[BaseModel]] = {
    "emotions": EmotionScores,
    "attachment": AttachmentStyle,
    "gottman": GottmanMetrics,
    "communication_style": CommunicationStyle,
}


# ============================================================================
# Screenshots and the full result
# ============================================================================

class Message(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str
    sender: Sender
    emotional_tone: str
    intensity: float = Field(ge=0, le=1)
    emojis: List[str] = Field(default_factory=list)
    has_excessive_punctuation: bool = False
    has_all_caps: bool = False
    timestamp: Optional[int] = Field(default=None, ge=0)  # minutes since midnight


class Layout(BaseModel):
    right_side_sender: Sender
    left_side_sender: Sender


class EmotionalDynamics(BaseModel):
    escalation: float = Field(default=0.0, ge=-1, le=1)
    emotional_alignment: float = Field(default=0.0, ge=0, le=1)
    response_latency: Optional[Count] = None


class ScreenshotAnalysis(BaseModel):
    model_config = ConfigDict(extra="allow")

    messages: List[Message] = Field(default_factory=list)
    layout: Layout
    emotional_dynamics: EmotionalDynamics


class CommunicationPattern(BaseModel):
    date: str
    positive: Count = 0
    negative: Count = 0


class Insights(BaseModel):
    strengths: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class Goal(BaseModel):
    id: str
    title: str
    description: str
    category: Literal["communication", "connection", "conflict", "intimacy"]
    difficulty: Literal["easy", "medium", "hard"]


class AnalysisResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    user_a: PersonProfile
    user_b: PersonProfile
    communication_patterns: List[CommunicationPattern] = Field(default_factory=list)
    relationship_health: Health = 0
    timestamp: str
    screenshot_count: int = Field(default=0, ge=0)
    screenshots: List[ScreenshotAnalysis] = Field(default_factory=list)
    insights: Insights
    goals: List[Goal] = Field(default_factory=list)


# ============================================================================
# Request bodies
# ============================================================================

class SaveAnalysisRequest(BaseModel):
    id: Union[str, int]
    result: AnalysisResult


class IndividualInsights(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_a: Optional[Any] = Field(default=None, alias="subjectA")
    subject_b: Optional[Any] = Field(default=None, alias="subjectB")


class CategoryResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str
    subject_a_score: Optional[float] = Field(default=None, alias="subjectAScore")
    subject_b_score: Optional[float] = Field(default=None, alias="subjectBScore")
    comparison: Optional[str] = None
    individual_insights: Optional[IndividualInsights] = Field(default=None, alias="individualInsights")
    message_patterns: Optional[Any] = Field(default=None, alias="messagePatterns")


class GottmanAnalysis(BaseModel):
    horseman: str
    description: Optional[str] = None
    presence: Optional[float] = None
    examples: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class SyncAnalysisRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    analysis_results: List[CategoryResult] = Field(default_factory=list, alias="analysisResults")
    gottman_analysis: List[GottmanAnalysis] = Field(default_factory=list, alias="gottmanAnalysis")


# ============================================================================
# Helpers
# ============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sanitize_scores(scores: Optional[Dict[str, Any]], model: Type[BaseModel]) -> Dict[str, float]:
    """Clamp a score map to [0, 1] through its model; missing or non-numeric scores become 0."""
    scores = scores or {}
    clamped = {
        key: max(0.0, min(1.0, float(scores[key])))
        for key in model.model_fields
        if _is_number(scores.get(key))
    }
    return model.model_validate(clamped).model_dump()


def sanitize_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    """Clamp every score section of a PersonProfile."""
    cleaned = dict(profile)
    for section, model in PROFILE_SECTIONS.items():
        cleaned[section] = sanitize_scores(profile.get(section), model)
    return PersonProfile.model_validate(cleaned).model_dump()


def validate_analysis_result(result: Any) -> Tuple[bool, str]:
    """
    Validate an AnalysisResult.

    Returns:
        (is_valid, message)
    """
    try:
        AnalysisResult.model_validate(result)
    except ValidationError as e:
        logger.warning(f"Analysis result invalid: {e.error_count()} errors")
        return False, str(e)
    return True, "Analysis result valid"


def normalize_analysis_result(result: Any) -> Dict[str, Any]:
    """
    Validate and fill defaults.

    Raises:
        ValidationError: result does not match AnalysisResult
    """
    return AnalysisResult.model_validate(result).model_dump()


def generate_fallback_result(name_a: str = "Person 1", name_b: str = "Person 2") -> Dict[str, Any]:
    """Fixed, plausible result used when real analysis fails."""
    return {
        "user_a": {
            "name": name_a,
            "emotions": {"joy": 0.6, "sadness": 0.2, "anger": 0.1, "fear": 0.1,
                         "surprise": 0.3, "disgust": 0.1, "trust": 0.7, "anticipation": 0.5},
            "attachment": {"secure": 0.7, "anxious": 0.2, "avoidant": 0.1, "disorganized": 0.0},
            "gottman": {"harsh_startup": 0.2, "four_horsemen": 0.1, "flooding": 0.1,
                        "body_language": 0.2, "failed_repair_attempts": 0.1, "bad_memories": 0.1},
            "communication_style": {"expressiveness": 0.7, "emotional_regulation": 0.8,
                                    "defensiveness": 0.2, "empathy": 0.7},
            "dominant_emotion": "trust",
            "dominant_attachment": "secure",
        },
        "user_b": {
            "name": name_b,
            "emotions": {"joy": 0.5, "sadness": 0.3, "anger": 0.2, "fear": 0.2,
                         "surprise": 0.4, "disgust": 0.1, "trust": 0.6, "anticipation": 0.4},
            "attachment": {"secure": 0.6, "anxious": 0.3, "avoidant": 0.1, "disorganized": 0.0},
            "gottman": {"harsh_startup": 0.3, "four_horsemen": 0.2, "flooding": 0.2,
                        "body_language": 0.3, "failed_repair_attempts": 0.2, "bad_memories": 0.2},
            "communication_style": {"expressiveness": 0.6, "emotional_regulation": 0.7,
                                    "defensiveness": 0.3, "empathy": 0.6},
            "dominant_emotion": "trust",
            "dominant_attachment": "secure",
        },
        "communication_patterns": [
            {"date": "Day 1", "positive": 0.8, "negative": 0.2},
            {"date": "Day 2", "positive": 0.7, "negative": 0.3},
            {"date": "Day 3", "positive": 0.6, "negative": 0.4},
            {"date": "Day 4", "positive": 0.7, "negative": 0.3},
            {"date": "Day 5", "positive": 0.8, "negative": 0.2},
        ],
        "relationship_health": 75,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "screenshot_count": 0,
        "screenshots": [],
        "insights": {
            "strengths": [
                f"{name_a} and {name_b} show strong trust in their communications.",
                "Both partners express joy and positive emotions frequently.",
                "The relationship shows a healthy balance of expressiveness and emotional regulation.",
            ],
            "challenges": [
                "Occasional moments of defensiveness may hinder effective communication.",
                "There are some signs of anxiety in conflict situations.",
                "Response times could be improved for better engagement.",
            ],
            "recommendations": [
                "Practice active listening to further strengthen trust.",
                "Consider using 'I' statements when discussing sensitive topics.",
                "Set aside dedicated time for deeper conversations without distractions.",
                "Acknowledge each other's feelings before problem-solving.",
            ],
        },
        "goals": [dict(goal) for goal in GOAL_CATALOGUE[:5]],
        "fallback": True,
    }
