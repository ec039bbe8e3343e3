"""
Text scoring for HeartLens
Keyword-bucket sentiment, topic, pattern and relationship-indicator scoring
over OCR-extracted chat transcripts
"""

import re
import logging
from typing import Dict, Any, List, Optional

from . import config

logger = logging.getLogger(__name__)

WORD_SPLIT_RE = re.compile(r"\W+")
EMOTICON_RE = re.compile(r"[:;]-?[)(\[\]\\/PpD]")
URL_RE = re.compile(r"https?://[^\s]+")
TIMESTAMP_RE = re.compile(r"\d{1,2}:\d{2}")
CAPS_WORD_RE = re.compile(r"\b[A-Z]{2,}\b")
CLOCK_RE = re.compile(r"\b(\d{1,2}):(\d{2})(?:\s*([ap])\.?m\.?)?", re.IGNORECASE)


def tokenize(text: str) -> List[str]:
    """Lower-case and split on runs of non-word characters."""
    return [t for t in WORD_SPLIT_RE.split(text.lower()) if t]


def split_messages(text: str) -> List[str]:
    """Split a transcript into non-blank lines."""
    return [line for line in text.splitlines() if line.strip()]


def find_dominant_trait(scores: Dict[str, float]) -> Optional[str]:
    """
    Return the key with the strictly greatest value.

    Ties keep the first key encountered. Returns None for an empty mapping.
    """
    dominant = None
    best = None
    for key, value in scores.items():
        if best is None or value > best:
            dominant, best = key, value
    return dominant


def analyze_sentiment(text: str) -> Dict[str, Any]:
    """
    Count emotion keyword hits.

    Returns:
        - emotional_profile: emotion -> match count
        - dominant_emotion: emotion with the strictly highest count, None if no hits
        - intensity: max count / token count
    """
    tokens = tokenize(text)
    profile: Dict[str, int] = {}
    dominant = None
    max_count = 0

    for emotion, keywords in config.SENTIMENT_KEYWORDS.items():
        count = sum(1 for t in tokens if t in keywords)
        profile[emotion] = count
        if count > max_count:
            max_count = count
            dominant = emotion

    return {
        "emotional_profile": profile,
        "dominant_emotion": dominant,
        "intensity": max_count / len(tokens) if max_count > 0 else 0.0,
    }


def identify_topics(text: str) -> Dict[str, Any]:
    """Score conversation topics by keyword share of all tokens."""
    tokens = tokenize(text)
    scores: Dict[str, Dict[str, Any]] = {}

    for topic, keywords in config.TOPIC_KEYWORDS.items():
        matches = [t for t in tokens if t in keywords]
        if matches:
            scores[topic] = {
                "score": len(matches) / len(tokens),
                "matches": matches,
            }

    dominant = find_dominant_trait({topic: s["score"] for topic, s in scores.items()})
    return {"scores": scores, "dominant": dominant}


def _to_minutes(hours: int, minutes: int, meridiem: Optional[str]) -> int:
    if meridiem:
        meridiem = meridiem.lower()
        hours = hours % 12
        if meridiem == "p":
            hours += 12
    return hours * 60 + minutes


def extract_timestamps(text: str) -> List[int]:
    """Extract H:MM clock times (optional am/pm) as minutes since midnight."""
    times = []
    for match in CLOCK_RE.finditer(text):
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            continue
        times.append(_to_minutes(hours, minutes, match.group(3)))
    return times


def analyze_response_times(text: str) -> Optional[Dict[str, float]]:
    """Infer response gaps (minutes) from the timestamps found in text."""
    return summarize_response_gaps(extract_timestamps(text))


def summarize_response_gaps(times: List[int]) -> Optional[Dict[str, float]]:
    """
    Average/min/max gap between consecutive times (minutes since midnight).

    A negative gap is taken to cross midnight. Returns None with fewer
    than two times.
    """
    if len(times) < 2:
        return None

    differences = []
    for prev, cur in zip(times, times[1:]):
        diff = cur - prev
        if diff < 0:
            diff += 24 * 60
        differences.append(diff)

    return {
        "average": sum(differences) / len(differences),
        "min": min(differences),
        "max": max(differences),
    }


def count_emoticons(text: str) -> int:
    """Count text emoticons, ignoring the ':/' inside URLs."""
    return len(EMOTICON_RE.findall(URL_RE.sub(" ", text)))


def analyze_patterns(text: str) -> Dict[str, Any]:
    """Surface-level message statistics for a transcript."""
    messages = split_messages(text)
    count = len(messages)

    return {
        "message_count": count,
        "average_length": sum(len(m) for m in messages) / count if count else 0.0,
        "question_frequency": text.count("?"),
        "exclamation_frequency": text.count("!"),
        "emoticons": count_emoticons(text),
        "urls": len(URL_RE.findall(text)),
        "timestamps": len(TIMESTAMP_RE.findall(text)),
        "capitalized_words": len(CAPS_WORD_RE.findall(text)),
        "response_time": analyze_response_times(text),
    }


def is_shout(message: str) -> bool:
    """True when upper-casing leaves the line unchanged and it is long enough."""
    return message == message.upper() and len(message) > config.SHOUT_MIN_LENGTH


def analyze_message_structure(text: str) -> Dict[str, Any]:
    messages = split_messages(text)
    return {
        "message_count": len(messages),
        "structure": [
            {
                "length": len(msg),
                "has_question": "?" in msg,
                "has_emoticon": count_emoticons(msg) > 0,
                "is_shout": is_shout(msg),
            }
            for msg in messages
        ],
    }


def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", re.IGNORECASE)


def count_phrases(text: str, phrases: List[str]) -> int:
    """Number of distinct phrases present in text as whole words."""
    return sum(1 for phrase in dict.fromkeys(phrases) if _phrase_pattern(phrase).search(text))


def analyze_relationship_indicators(text: str) -> Dict[str, int]:
    return {
        category: count_phrases(text, phrases)
        for category, phrases in config.RELATIONSHIP_INDICATORS.items()
    }


def analyze_text(text: str, confidence: float = 0.0) -> Dict[str, Any]:
    """
    Run the full scorer over a transcript.

    Args:
        text: OCR-extracted transcript
        confidence: OCR confidence in [0, 1]

    Returns:
        TextAnalysis dict
    """
    if text is None:
        raise ValueError("text is required")

    analysis = {
        "text": text,
        "confidence": max(0.0, min(1.0, float(confidence))),
        "sentiment": analyze_sentiment(text),
        "patterns": analyze_patterns(text),
        "topics": identify_topics(text),
        "message_structure": analyze_message_structure(text),
        "relationship_indicators": analyze_relationship_indicators(text),
    }
    logger.debug(
        f"Scored transcript: {analysis['patterns']['message_count']} messages, "
        f"dominant emotion={analysis['sentiment']['dominant_emotion']}"
    )
    return analysis


if __name__ == "__main__":
    sample = """Alex: 9:15 pm I'm so happy we talked today :)
Sam: 9:20 pm Me too, I love you. Sorry about yesterday
Alex: 9:45 pm We will plan the trip tomorrow"""

    import json
    print(json.dumps(analyze_text(sample, 0.9), indent=2))
