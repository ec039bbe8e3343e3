"""
Tests for screenshot analysis: message scoring, transcript parsing and aggregation
"""

import pytest
from unittest.mock import MagicMock, patch

from heartlens.ocr import make_result
from heartlens.screenshot_analysis import (
    USER_A,
    USER_B,
    EMOTIONS,
    ATTACHMENT_STYLES,
    GOTTMAN_METRICS,
    extract_emojis,
    analyze_emojis,
    analyze_punctuation,
    score_message,
    parse_transcript,
    analyze_screenshot,
    empty_screenshot_analysis,
    messages_frame,
    calculate_emotional_regulation,
    calculate_expressiveness,
    calculate_empathy,
    generate_gottman_metrics,
    aggregate_analysis,
    calculate_relationship_health,
    build_communication_patterns,
    analyze_screenshots,
)
from heartlens.validation import validate_analysis_result

NAMES = {"user_a": "Alex", "user_b": "Sam"}


def msg(sender, text, tone, intensity, emojis=None, caps=False, punct=False):
    return {
        "text": text,
        "sender": sender,
        "timestamp": None,
        "emojis": emojis or [],
        "emotional_tone": tone,
        "intensity": intensity,
        "has_excessive_punctuation": punct,
        "has_all_caps": caps,
    }


@pytest.fixture
def argument_screenshot():
    shot = empty_screenshot_analysis("tesseract", 0.9)
    shot["messages"] = [
        msg(USER_A, "You never help. What is wrong with you", "anger", 0.9),
        msg(USER_B, "I'm sorry, I didn't mean it", "sadness", 0.4),
        msg(USER_A, "whatever. like always", "disgust", 0.85),
        msg(USER_B, "are you okay?", "trust", 0.3),
    ]
    return shot


def test_extract_emojis():
    assert extract_emojis("love you 😍😂") == ["😍", "😂"]
    assert extract_emojis("no emojis") == []


def test_analyze_emojis():
    result = analyze_emojis(["😍", "😢", "😂"])
    assert result["dominant_emotion"] == "joy"
    assert result["scores"]["joy"] == pytest.approx(1.7)
    assert result["intensity"] == pytest.approx(1.7 / 3)

    assert analyze_emojis([])["dominant_emotion"] == "neutral"
    assert analyze_emojis(["🦄"])["dominant_emotion"] == "neutral"


def test_analyze_punctuation():
    result = analyze_punctuation("Really?? I can't believe it...")
    assert result["patterns"] == ["ellipsis", "excessive_question"]
    assert result["intensity"] == pytest.approx(1.0)
    assert result["associated_emotions"] == ["sadness", "fear", "surprise", "anger"]

    flat = analyze_punctuation("i just dont want to talk about it")
    assert flat["patterns"] == ["no_punctuation"]
    assert flat["associated_emotions"] == ["disgust"]


def test_score_message_shouting():
    result = score_message("JUST LEAVE ME ALONE!!!")

    assert result["emotional_tone"] == "anger"
    assert result["intensity"] == 1.0
    assert result["has_all_caps"] is True
    assert result["has_excessive_punctuation"] is True


def test_score_message_emoji_and_keywords():
    result = score_message("I love you 😍")

    assert result["emotional_tone"] == "joy"
    assert result["intensity"] == pytest.approx(0.7)
    assert result["emojis"] == ["😍"]


def test_score_message_neutral():
    result = score_message("see u at 5")
    assert result["emotional_tone"] == "neutral"
    assert result["intensity"] == 0.0


def test_parse_transcript_name_prefix_and_clock(ocr_text):
    messages = parse_transcript(ocr_text("Alex: I love you\n9:15 pm\nSam: whatever"), NAMES)

    assert [m["sender"] for m in messages] == [USER_A, USER_B]
    assert messages[0]["text"] == "I love you"
    assert messages[0]["timestamp"] is None
    assert messages[1]["timestamp"] == 21 * 60 + 15
    assert messages[1]["emotional_tone"] == "disgust"


def test_parse_transcript_uses_bubble_position(ocr_text):
    lines = [
        {"text": "hey are you home", "left": 300, "width": 80},
        {"text": "yes why", "left": 10, "width": 50},
        {"text": "Alex: ok", "left": 10, "width": 50},
    ]
    messages = parse_transcript(ocr_text("", lines=lines, image_width=400), NAMES)

    assert [m["sender"] for m in messages] == [USER_A, USER_B, USER_A]


def test_parse_transcript_falls_back_to_previous_speaker(ocr_text):
    messages = parse_transcript(ocr_text("Sam: hi\nhow are you\nBob: hello"), NAMES)

    assert [m["sender"] for m in messages] == [USER_B, USER_B, USER_B]
    assert messages[2]["text"] == "Bob: hello"


def test_parse_transcript_header_lines_carry_sender(ocr_text):
    messages = parse_transcript(ocr_text("Sam:\nhello there\nAlex:\nhi back"), NAMES)

    assert [(m["text"], m["sender"]) for m in messages] == [
        ("hello there", USER_B),
        ("hi back", USER_A),
    ]


def test_analyze_screenshot_dynamics(ocr_text):
    result = analyze_screenshot(
        ocr_text("Alex: I love you 😍\nSam: JUST LEAVE ME ALONE!!!", confidence=0.8),
        NAMES,
    )

    dynamics = result["emotional_dynamics"]
    assert len(result["messages"]) == 2
    assert dynamics["escalation"] == pytest.approx(0.3)
    assert dynamics["emotional_alignment"] == 0.0
    assert dynamics["response_latency"] is None
    assert result["ocr"] == {"source": "tesseract", "confidence": 0.8}


def test_analyze_screenshot_response_latency(ocr_text):
    result = analyze_screenshot(ocr_text("Alex: 9:00 hi\nSam: 9:10 hey"), NAMES)
    assert result["emotional_dynamics"]["response_latency"] == 10


def test_messages_frame_flags(argument_screenshot):
    df = messages_frame([argument_screenshot])

    assert len(df) == 4
    assert df["negative"].tolist() == [True, True, True, False]
    assert df["positive"].tolist() == [False, False, False, True]


def test_messages_frame_empty():
    df = messages_frame([empty_screenshot_analysis()])
    assert len(df) == 0
    assert "negative" in df.columns


def test_gottman_metrics_for_critic(argument_screenshot):
    df = messages_frame([argument_screenshot])
    metrics = generate_gottman_metrics(df, USER_A)

    assert metrics == {
        "harsh_startup": 1.0,
        "four_horsemen": 1.0,
        "flooding": 1.0,
        "body_language": 0.0,
        "failed_repair_attempts": 0.0,
        "bad_memories": 0.5,
    }


def test_gottman_failed_repair(argument_screenshot):
    df = messages_frame([argument_screenshot])
    metrics = generate_gottman_metrics(df, USER_B)

    assert metrics["failed_repair_attempts"] == 1.0
    assert metrics["four_horsemen"] == 0.0


def test_gottman_metrics_without_messages():
    df = messages_frame([empty_screenshot_analysis()])
    assert generate_gottman_metrics(df, USER_A) == {m: 0.0 for m in GOTTMAN_METRICS}


def test_empathy(argument_screenshot):
    df = messages_frame([argument_screenshot])

    assert calculate_empathy(df, USER_B) == 1.0
    assert calculate_empathy(df, USER_A) == 0.0


def test_regulation_and_expressiveness(argument_screenshot):
    df = messages_frame([argument_screenshot])
    user_a = df[df["sender"] == USER_A]

    assert calculate_emotional_regulation(user_a) == 1.0
    assert calculate_emotional_regulation(user_a.head(1)) == 0.5
    assert calculate_expressiveness(user_a.head(0)) == 0.5


def test_aggregate_analysis_scores_in_range(argument_screenshot):
    profiles = aggregate_analysis([argument_screenshot])

    for user in (USER_A, USER_B):
        profile = profiles[user]
        assert list(profile["emotions"]) == EMOTIONS
        assert list(profile["attachment"]) == ATTACHMENT_STYLES
        for group in ("emotions", "attachment", "gottman", "communication_style"):
            assert all(0.0 <= v <= 1.0 for v in profile[group].values())


def test_relationship_health():
    person = {
        "emotions": {"joy": 0.5, "trust": 0.5},
        "attachment": {"secure": 0.5},
    }
    assert calculate_relationship_health(person, person) == 50

    perfect = {"emotions": {"joy": 1.0, "trust": 1.0}, "attachment": {"secure": 1.0}}
    assert calculate_relationship_health(perfect, perfect) == 100


def test_communication_patterns(argument_screenshot):
    patterns = build_communication_patterns([argument_screenshot, empty_screenshot_analysis()])

    assert patterns == [
        {"date": "Screenshot 1", "positive": 1, "negative": 3},
        {"date": "Screenshot 2", "positive": 0, "negative": 0},
    ]


def test_analyze_screenshots_pipeline():
    service = MagicMock()
    service.process_image.side_effect = [
        make_result("Alex: I love you 😍\nSam: I love you too, thank you", 0.9, "tesseract"),
        RuntimeError("unreadable"),
    ]

    result = analyze_screenshots([("a.png", b"1"), ("b.png", b"2")], NAMES, ocr_service=service)

    assert validate_analysis_result(result) == (True, "Analysis result valid")
    assert result["screenshot_count"] == 2
    assert result["user_a"]["name"] == "Alex"
    assert result["user_a"]["dominant_emotion"] == "joy"
    assert len(result["screenshots"]) == 2
    assert result["screenshots"][1]["messages"] == []
    assert 0 <= result["relationship_health"] <= 100
    assert "fallback" not in result


def test_analyze_screenshots_default_names():
    service = MagicMock()
    service.process_image.return_value = make_result("", 0.0, "tesseract")

    result = analyze_screenshots([("a.png", b"1")], ocr_service=service)

    assert result["user_a"]["name"] == "Person 1"
    assert result["user_b"]["name"] == "Person 2"


def test_analyze_screenshots_falls_back_on_failure():
    service = MagicMock()
    service.process_image.return_value = make_result("Alex: hi", 0.9, "tesseract")

    with patch("heartlens.screenshot_analysis.aggregate_analysis", side_effect=RuntimeError("bad")):
        result = analyze_screenshots([("a.png", b"1")], NAMES, ocr_service=service)

    assert result["fallback"] is True
    assert result["user_a"]["name"] == "Alex"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
