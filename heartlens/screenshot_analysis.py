"""
Screenshot analysis for HeartLens
Turns OCR transcripts into per-person emotional profiles, attachment styles,
Gottman metrics, communication style and relationship health
"""

import re
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Tuple

import emoji
import numpy as np
import pandas as pd

from . import config
from .text_analysis import (
    tokenize,
    is_shout,
    count_phrases,
    extract_timestamps,
    summarize_response_gaps,
    find_dominant_trait,
    CLOCK_RE,
)

logger = logging.getLogger(__name__)

USER_A = "user_a"
USER_B = "user_b"
NEUTRAL = "neutral"
DEFAULT_NAMES = ("Person 1", "Person 2")

EMOTIONS = ["joy", "sadness", "anger", "fear", "surprise", "disgust", "trust", "anticipation"]
ATTACHMENT_STYLES = ["secure", "anxious", "avoidant", "disorganized"]
GOTTMAN_METRICS = [
    "harsh_startup", "four_horsemen", "flooding",
    "body_language", "failed_repair_attempts", "bad_memories",
]

NAME_PREFIX_RE = re.compile(r"^\s*([^:\n]{1,40}?)\s*:\s*(.*)$")
PUNCTUATION_RES = [
    (kind, re.compile(pattern), intensity, emotions)
    for kind, pattern, intensity, emotions in config.PUNCTUATION_PATTERNS
]
ANY_PUNCTUATION_RE = re.compile(r"[.!?,;:]")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(max(low, min(high, value)))


def resolve_names(names: Optional[Dict[str, str]] = None) -> Tuple[str, str]:
    """Participant names, defaulting to "Person 1" / "Person 2"."""
    names = names or {}
    return (names.get(USER_A) or DEFAULT_NAMES[0], names.get(USER_B) or DEFAULT_NAMES[1])


# ============================================================================
# Message-level scoring
# ============================================================================

def extract_emojis(text: str) -> List[str]:
    """Extract all emojis from text (multi-codepoint sequences kept whole)."""
    return [item["emoji"] for item in emoji.emoji_list(text)]


def analyze_emojis(emojis: List[str]) -> Dict[str, Any]:
    """
    Map emojis to their dominant emotion.

    Returns:
        - dominant_emotion: emotion with highest summed intensity, "neutral" if none known
        - intensity: max summed intensity / emoji count, capped at 1
        - scores: emotion -> summed intensity
    """
    if not emojis:
        return {"dominant_emotion": NEUTRAL, "intensity": 0.0, "scores": {}}

    scores: Dict[str, float] = {}
    for e in emojis:
        info = config.EMOJI_EMOTIONS.get(e)
        if info is None:
            continue
        emotion, intensity = info
        scores[emotion] = scores.get(emotion, 0.0) + intensity

    dominant = NEUTRAL
    max_score = 0.0
    for emotion, score in scores.items():
        if score > max_score:
            max_score = score
            dominant = emotion

    return {
        "dominant_emotion": dominant,
        "intensity": min(max_score / len(emojis), 1.0),
        "scores": scores,
    }


def analyze_punctuation(text: str) -> Dict[str, Any]:
    """
    Detect punctuation and formatting patterns.

    Returns:
        - patterns: list of pattern types found
        - intensity: summed pattern intensity, capped at 1
        - associated_emotions: emotions the patterns point to (first-seen order)
    """
    patterns: List[str] = []
    emotions: List[str] = []
    total = 0.0

    for kind, regex, intensity, associated in PUNCTUATION_RES:
        if regex.search(text):
            patterns.append(kind)
            total += intensity
            emotions.extend(e for e in associated if e not in emotions)

    if is_shout(text):
        patterns.append("all_caps")
        total += config.ALL_CAPS_INTENSITY
        if "anger" not in emotions:
            emotions.append("anger")

    if len(text) > config.NO_PUNCTUATION_MIN_LENGTH and not ANY_PUNCTUATION_RE.search(text):
        patterns.append("no_punctuation")
        total += config.NO_PUNCTUATION_INTENSITY
        if "disgust" not in emotions:
            emotions.append("disgust")

    return {
        "patterns": patterns,
        "intensity": min(total, 1.0),
        "associated_emotions": emotions,
    }


def score_message(text: str) -> Dict[str, Any]:
    """
    Emotional tone and intensity of a single message.

    Keyword hits count 0.5 each, emoji intensities add to their emotion and
    punctuation adds half its intensity to each associated emotion.
    """
    emojis = extract_emojis(text)
    plain = emoji.replace_emoji(text, replace="").strip()
    tokens = tokenize(plain)

    scores = {e: 0.0 for e in EMOTIONS}
    for e, keywords in config.EMOTION_KEYWORDS.items():
        scores[e] += 0.5 * sum(1 for t in tokens if t in keywords)

    for e, value in analyze_emojis(emojis)["scores"].items():
        scores[e] += value

    punctuation = analyze_punctuation(plain)
    for e in punctuation["associated_emotions"]:
        scores[e] += 0.5 * punctuation["intensity"]

    tone = find_dominant_trait(scores)
    if scores[tone] <= 0:
        tone = NEUTRAL
        intensity = 0.5 * punctuation["intensity"]
    else:
        intensity = 0.5 * scores[tone] + 0.5 * punctuation["intensity"]

    return {
        "emojis": emojis,
        "emotional_tone": tone,
        "intensity": clamp(intensity),
        "has_excessive_punctuation": any(
            p in punctuation["patterns"]
            for p in ("ellipsis", "excessive_question", "excessive_exclamation")
        ),
        "has_all_caps": "all_caps" in punctuation["patterns"],
    }


# ============================================================================
# Transcript parsing
# ============================================================================

def _ocr_lines(ocr_result: Dict[str, Any]) -> List[Dict[str, Any]]:
    lines = ocr_result.get("lines")
    if lines:
        return [dict(line) for line in lines]
    return [{"text": line} for line in (ocr_result.get("text") or "").splitlines()]


def _match_name(candidate: str, names: Tuple[str, str]) -> Optional[str]:
    candidate = candidate.strip().lower()
    if candidate == names[0].lower():
        return USER_A
    if candidate == names[1].lower():
        return USER_B
    return None


def parse_transcript(ocr_result: Dict[str, Any], names: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
    """
    Split OCR output into attributed Messages.

    Sender attribution, in order: a "Name: text" prefix matching a participant,
    the horizontal position of the line box (right of the midline is user_a),
    otherwise the previous speaker (user_a for the first line).
    """
    participants = resolve_names(names)
    image_width = ocr_result.get("image_width")
    messages: List[Dict[str, Any]] = []
    previous_sender = None
    pending_time = None

    for line in _ocr_lines(ocr_result):
        raw = (line.get("text") or "").strip()
        if not raw:
            continue

        # Bare clock lines label the next message
        clock = CLOCK_RE.fullmatch(raw)
        if clock:
            times = extract_timestamps(raw)
            pending_time = times[0] if times else pending_time
            continue

        sender = None
        text = raw
        prefix = NAME_PREFIX_RE.match(raw)
        if prefix:
            sender = _match_name(prefix.group(1), participants)
            if sender:
                text = prefix.group(2).strip()

        if sender is None and image_width and line.get("left") is not None:
            centre = line["left"] + line.get("width", 0) / 2
            sender = USER_A if centre > image_width / 2 else USER_B

        if sender is None:
            sender = previous_sender or USER_A
        previous_sender = sender

        # A bare "Name:" header attributes the lines that follow
        if not text:
            continue

        times = extract_timestamps(text)
        timestamp = times[0] if times else pending_time
        pending_time = None

        message = {"text": text, "sender": sender, "timestamp": timestamp}
        message.update(score_message(text))
        messages.append(message)

    return messages


def empty_screenshot_analysis(source: str = "none", confidence: float = 0.0) -> Dict[str, Any]:
    """Minimal analysis used when a screenshot cannot be processed."""
    return {
        "messages": [],
        "layout": {"right_side_sender": USER_A, "left_side_sender": USER_B},
        "emotional_dynamics": {
            "escalation": 0.0,
            "emotional_alignment": 0.5,
            "response_latency": None,
        },
        "ocr": {"source": source, "confidence": confidence},
    }


def analyze_screenshot(ocr_result: Dict[str, Any], names: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Analyze a single screenshot's OCR output.

    Args:
        ocr_result: OcrResult dict (text, confidence, source, optional line boxes)
        names: {"user_a": ..., "user_b": ...}

    Returns:
        ScreenshotAnalysis dict
    """
    messages = parse_transcript(ocr_result, names)
    intensities = [m["intensity"] for m in messages]

    escalation = intensities[-1] - intensities[0] if len(intensities) > 1 else 0.0

    alignment = 0.0
    if len(messages) > 1:
        unique_tones = {m["emotional_tone"] for m in messages}
        alignment = 1 - len(unique_tones) / len(messages)

    gaps = summarize_response_gaps([m["timestamp"] for m in messages if m["timestamp"] is not None])

    return {
        "messages": messages,
        "layout": {"right_side_sender": USER_A, "left_side_sender": USER_B},
        "emotional_dynamics": {
            "escalation": clamp(escalation, -1.0, 1.0),
            "emotional_alignment": clamp(alignment),
            "response_latency": gaps["average"] if gaps else None,
        },
        "ocr": {
            "source": ocr_result.get("source", "none"),
            "confidence": ocr_result.get("confidence", 0.0),
        },
    }


# ============================================================================
# Aggregation
# ============================================================================

def messages_frame(screenshots: List[Dict[str, Any]]) -> pd.DataFrame:
    """Flatten all screenshot messages into a DataFrame."""
    rows = []
    for idx, shot in enumerate(screenshots):
        for pos, msg in enumerate(shot.get("messages", [])):
            rows.append({
                "screenshot": idx,
                "position": pos,
                "sender": msg["sender"],
                "text": msg["text"],
                "tone": msg["emotional_tone"],
                "intensity": float(msg["intensity"]),
                "emoji_count": len(msg.get("emojis", [])),
                "emoji_negative": any(
                    config.EMOJI_EMOTIONS.get(e, (NEUTRAL, 0))[0] in config.NEGATIVE_EMOTIONS
                    for e in msg.get("emojis", [])
                ),
                "defensive": bool(msg.get("has_all_caps") or msg.get("has_excessive_punctuation")),
                "excessive_punctuation": bool(msg.get("has_excessive_punctuation")),
                "all_caps": bool(msg.get("has_all_caps")),
            })

    columns = [
        "screenshot", "position", "sender", "text", "tone", "intensity", "emoji_count",
        "emoji_negative", "defensive", "excessive_punctuation", "all_caps",
    ]
    df = pd.DataFrame(rows, columns=columns)
    if len(df):
        df["negative"] = df["tone"].isin(config.NEGATIVE_EMOTIONS)
        df["positive"] = df["tone"].isin(config.POSITIVE_EMOTIONS)
    else:
        df["negative"] = pd.Series(dtype=bool)
        df["positive"] = pd.Series(dtype=bool)
    return df


def _emotion_scores(user_df: pd.DataFrame) -> Dict[str, float]:
    if len(user_df) == 0:
        return {e: 0.0 for e in EMOTIONS}
    sums = user_df.groupby("tone")["intensity"].sum()
    return {e: clamp(float(sums.get(e, 0.0)) / len(user_df)) for e in EMOTIONS}


def calculate_expressiveness(user_df: pd.DataFrame) -> float:
    """Emoji usage and emotional intensity per message."""
    if len(user_df) == 0:
        return 0.5
    n = len(user_df)
    return clamp(user_df["emoji_count"].sum() / n * 0.5 + user_df["intensity"].sum() / n * 0.5)


def calculate_emotional_regulation(user_df: pd.DataFrame) -> float:
    """One minus the share of own-message steps that escalate sharply."""
    escalations = 0
    interactions = 0
    for _, group in user_df.groupby("screenshot"):
        steps = np.diff(group.sort_values("position")["intensity"].to_numpy())
        escalations += int((steps > config.ESCALATION_STEP).sum())
        interactions += len(steps)
    if interactions == 0:
        return 0.5
    return clamp(1 - escalations / interactions)


def calculate_defensiveness(user_df: pd.DataFrame) -> float:
    if len(user_df) == 0:
        return 0.3
    return clamp(user_df["defensive"].mean())


def _replies(df: pd.DataFrame, user: str) -> List[Tuple[pd.Series, pd.Series]]:
    """(previous message, reply) pairs where user answers the other participant."""
    pairs = []
    for _, group in df.groupby("screenshot"):
        ordered = group.sort_values("position")
        prev = None
        for _, row in ordered.iterrows():
            if prev is not None and prev["sender"] != user and row["sender"] == user:
                pairs.append((prev, row))
            prev = row
    return pairs


def calculate_empathy(df: pd.DataFrame, user: str) -> float:
    """
    Share of replies to the partner's negative messages that offer support
    (a supportive phrase or a question). 0.5 when there was no opportunity.
    """
    opportunities = [(prev, reply) for prev, reply in _replies(df, user) if prev["negative"]]
    if not opportunities:
        return 0.5
    supportive = sum(
        1 for _, reply in opportunities
        if count_phrases(reply["text"], config.SUPPORT_PHRASES) > 0 or "?" in reply["text"]
    )
    return clamp(supportive / len(opportunities))


def generate_attachment_style(emotions: Dict[str, float], style: Dict[str, float]) -> Dict[str, float]:
    return {
        "secure": clamp(0.3 + emotions["joy"] * 0.3 + emotions["trust"] * 0.4 - style["defensiveness"] * 0.3),
        "anxious": clamp(0.2 + emotions["fear"] * 0.4 + emotions["sadness"] * 0.2 + style["expressiveness"] * 0.2),
        "avoidant": clamp(0.2 + (1 - style["expressiveness"]) * 0.4 + emotions["disgust"] * 0.2),
        "disorganized": clamp(
            0.1 + emotions["anger"] * 0.3 + emotions["fear"] * 0.2 + style["defensiveness"] * 0.3
        ),
    }


def _has_any(text: str, phrase_groups: List[List[str]]) -> bool:
    return any(count_phrases(text, phrases) > 0 for phrases in phrase_groups)


def generate_gottman_metrics(df: pd.DataFrame, user: str) -> Dict[str, float]:
    """
    Gottman indicators for one participant, each a share in [0, 1]:

    - harsh_startup: screenshots where the user's first message is negative,
      shouted or critical
    - four_horsemen: messages with criticism/contempt/defensiveness/stonewalling phrases
    - flooding: negative messages at or above the flooding intensity
    - body_language: messages whose non-verbal cues (emojis, caps, punctuation) read negative
    - failed_repair_attempts: repair messages answered by a still-negative partner
    - bad_memories: messages raking up past grievances
    """
    user_df = df[df["sender"] == user]
    if len(user_df) == 0:
        return {m: 0.0 for m in GOTTMAN_METRICS}

    horsemen = list(config.HORSEMEN_PHRASES.values())
    critical = [config.HORSEMEN_PHRASES["criticism"], config.HORSEMEN_PHRASES["contempt"]]

    firsts = user_df.sort_values("position").groupby("screenshot").head(1)
    harsh = firsts.apply(
        lambda r: bool(r["negative"] or r["all_caps"] or _has_any(r["text"], critical)), axis=1
    )

    horsemen_hits = user_df["text"].apply(lambda t: _has_any(t, horsemen))
    flooding = user_df["negative"] & (user_df["intensity"] >= config.FLOODING_INTENSITY)
    body = user_df["emoji_negative"] | (user_df["negative"] & (user_df["all_caps"] | user_df["excessive_punctuation"]))
    bad_memories = user_df["text"].apply(lambda t: count_phrases(t, config.BAD_MEMORY_PHRASES) > 0)

    repairs = 0
    failed = 0
    for _, group in df.groupby("screenshot"):
        ordered = group.sort_values("position").reset_index(drop=True)
        for i, row in ordered.iterrows():
            if row["sender"] != user or count_phrases(row["text"], config.REPAIR_PHRASES) == 0:
                continue
            repairs += 1
            following = ordered.iloc[i + 1:]
            response = following[following["sender"] != user].head(1)
            if len(response) and bool(response.iloc[0]["negative"]):
                failed += 1

    return {
        "harsh_startup": clamp(harsh.mean() if len(harsh) else 0.0),
        "four_horsemen": clamp(horsemen_hits.mean()),
        "flooding": clamp(flooding.mean()),
        "body_language": clamp(body.mean()),
        "failed_repair_attempts": clamp(failed / repairs) if repairs else 0.0,
        "bad_memories": clamp(bad_memories.mean()),
    }


def _profile(df: pd.DataFrame, user: str) -> Dict[str, Any]:
    user_df = df[df["sender"] == user]
    emotions = _emotion_scores(user_df)
    style = {
        "expressiveness": calculate_expressiveness(user_df),
        "emotional_regulation": calculate_emotional_regulation(user_df),
        "defensiveness": calculate_defensiveness(user_df),
        "empathy": calculate_empathy(df, user),
    }
    return {
        "emotions": emotions,
        "attachment": generate_attachment_style(emotions, style),
        "gottman": generate_gottman_metrics(df, user),
        "communication_style": style,
    }


def aggregate_analysis(screenshots: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Aggregate screenshot analyses into per-person profiles.

    Returns:
        {"user_a": profile, "user_b": profile} without names or dominant traits
    """
    df = messages_frame(screenshots)
    logger.debug(f"Aggregating {len(df)} messages from {len(screenshots)} screenshots")
    return {USER_A: _profile(df, USER_A), USER_B: _profile(df, USER_B)}


def calculate_relationship_health(user_a: Dict[str, Any], user_b: Dict[str, Any]) -> int:
    """Weighted mean of joy, trust and secure attachment across both people, 0..100."""
    weights = config.HEALTH_WEIGHTS
    joy = (user_a["emotions"]["joy"] + user_b["emotions"]["joy"]) / 2
    trust = (user_a["emotions"]["trust"] + user_b["emotions"]["trust"]) / 2
    secure = (user_a["attachment"]["secure"] + user_b["attachment"]["secure"]) / 2
    score = joy * weights["joy"] + trust * weights["trust"] + secure * weights["secure"]
    return int(max(0, min(100, round(score * 100))))


def build_communication_patterns(screenshots: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Positive vs negative message counts per screenshot."""
    df = messages_frame(screenshots)
    patterns = []
    for idx in range(len(screenshots)):
        shot = df[df["screenshot"] == idx]
        patterns.append({
            "date": f"Screenshot {idx + 1}",
            "positive": int(shot["positive"].sum()),
            "negative": int(shot["negative"].sum()),
        })
    return patterns


# ============================================================================
# Pipeline
# ============================================================================

def build_person(profile: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Attach name and dominant traits to an aggregated profile."""
    return {
        "name": name,
        **profile,
        "dominant_emotion": find_dominant_trait(profile["emotions"]),
        "dominant_attachment": find_dominant_trait(profile["attachment"]),
    }


def analyze_screenshots(
    images: List[Tuple[str, bytes]],
    names: Optional[Dict[str, str]] = None,
    ocr_service=None,
) -> Dict[str, Any]:
    """
    Full pipeline: OCR each screenshot, score, aggregate, derive insights.

    Args:
        images: List of (filename, image bytes)
        names: {"user_a": ..., "user_b": ...}
        ocr_service: OcrService instance (default: new OcrService)

    Returns:
        AnalysisResult dict. Falls back to a fixed result if the computed one
        does not validate.
    """
    from .insights import generate_insights, select_goals
    from .validation import validate_analysis_result, generate_fallback_result

    name_a, name_b = resolve_names(names)
    participants = {USER_A: name_a, USER_B: name_b}

    if ocr_service is None:
        from .ocr import OcrService
        ocr_service = OcrService()

    logger.info(f"Analyzing {len(images)} screenshots")

    try:
        screenshots = []
        for filename, data in images:
            try:
                ocr_result = ocr_service.process_image(data, filename)
                if not ocr_result["text"]:
                    logger.warning(f"No text extracted from file: {filename}")
                screenshots.append(analyze_screenshot(ocr_result, participants))
            except Exception as e:
                logger.error(f"Error analyzing screenshot {filename}: {e}", exc_info=True)
                screenshots.append(empty_screenshot_analysis())

        profiles = aggregate_analysis(screenshots)
        user_a = build_person(profiles[USER_A], name_a)
        user_b = build_person(profiles[USER_B], name_b)
        health = calculate_relationship_health(user_a, user_b)

        result = {
            "user_a": user_a,
            "user_b": user_b,
            "communication_patterns": build_communication_patterns(screenshots),
            "relationship_health": health,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "screenshot_count": len(images),
            "screenshots": screenshots,
            "insights": generate_insights(user_a, user_b, health),
            "goals": select_goals(user_a, user_b),
        }
    except Exception as e:
        logger.error(f"Failed to analyze screenshots: {e}", exc_info=True)
        return generate_fallback_result(name_a, name_b)

    valid, message = validate_analysis_result(result)
    if not valid:
        logger.warning(f"Analysis result validation failed ({message}), using fallback data")
        return generate_fallback_result(name_a, name_b)

    logger.info(f"Analysis completed (health={health})")
    return result
