"""
Configuration module for HeartLens
Loads environment variables and provides default settings
"""

import os
from pathlib import Path
from typing import Dict, Any, List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Web server
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "16"))
MAX_IMAGE_MB = int(os.getenv("MAX_IMAGE_MB", "5"))
DEV_USE_RELOADER = os.getenv("HEARTLENS_DEV_RELOAD", "True").lower() == "true"
SERVER_PORT = int(os.getenv("PORT", "5000"))

# Redis configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_SOCKET_TIMEOUT = int(os.getenv("REDIS_SOCKET_TIMEOUT", "5"))

# Result cache (content-hash keyed)
RESULT_CACHE_ENABLED = os.getenv("RESULT_CACHE_ENABLED", "True").lower() == "true"
RESULT_CACHE_TTL_SECONDS = int(os.getenv("RESULT_CACHE_TTL_SECONDS", "3600"))
RESULT_CACHE_PREFIX = "analysis_cache:"

# Analysis history
ANALYSIS_PREFIX = "analysis:"
ANALYSIS_HISTORY_KEY = "analysis_history"
MAX_HISTORY_SIZE = int(os.getenv("MAX_HISTORY_SIZE", "100"))

# Feature flags
FEATURE_PREFIX = "feature:"

# Rate limiting for the single-screenshot analysis endpoint
ANALYZE_CHAT_RATE_POINTS = int(os.getenv("ANALYZE_CHAT_RATE_POINTS", "20"))
ANALYZE_CHAT_RATE_DURATION = int(os.getenv("ANALYZE_CHAT_RATE_DURATION", str(60 * 60)))
ANALYZE_CHAT_BLOCK_DURATION = int(os.getenv("ANALYZE_CHAT_BLOCK_DURATION", str(60 * 60)))
RATE_LIMIT_PREFIX = "ratelimit:"
SLIDING_WINDOW_PREFIX = "slidingwindow:"

# Relational store
DB_PATH = os.getenv("HEARTLENS_DB_PATH", str(PROJECT_ROOT / "heartlens.db"))

# Celery Configuration
ASYNC_PERSIST = os.getenv("ASYNC_PERSIST", "False").lower() == "true"
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)
BROKER_POOL_LIMIT = int(os.getenv("BROKER_POOL_LIMIT", "3"))
BROKER_CONNECTION_RETRY = os.getenv("BROKER_CONNECTION_RETRY", "True").lower() == "true"

# ============================================================================
# OCR Configuration
# ============================================================================

OCR_MAX_RETRIES = int(os.getenv("OCR_MAX_RETRIES", "2"))
OCR_FALLBACK_THRESHOLD = float(os.getenv("OCR_FALLBACK_THRESHOLD", "0.3"))
OCR_TIMEOUT = int(os.getenv("OCR_TIMEOUT", "30"))

TESSERACT_ENABLED = os.getenv("TESSERACT_ENABLED", "True").lower() == "true"
TESSERACT_LANG = os.getenv("TESSERACT_LANG", "eng")
# psm 6: assume a uniform block of text, oem 1: LSTM engine
TESSERACT_CONFIG = os.getenv("TESSERACT_CONFIG", "--psm 6 --oem 1")

GOOGLE_VISION_ENABLED = os.getenv("GOOGLE_VISION_ENABLED", "True").lower() == "true"
GOOGLE_VISION_API_KEY = os.getenv("GOOGLE_VISION_API_KEY", "")
GOOGLE_VISION_URL = "https://vision.googleapis.com/v1/images:annotate"

AZURE_VISION_ENABLED = os.getenv("AZURE_VISION_ENABLED", "True").lower() == "true"
AZURE_VISION_ENDPOINT = os.getenv("AZURE_VISION_ENDPOINT", "")
AZURE_VISION_KEY = os.getenv("AZURE_VISION_KEY", "")
AZURE_VISION_API_VERSION = os.getenv("AZURE_VISION_API_VERSION", "3.2")

# ============================================================================
# Text scoring lexicons
# ============================================================================

# Emotion buckets for transcript-level sentiment (declaration order breaks ties)
SENTIMENT_KEYWORDS: Dict[str, List[str]] = {
    "joy": ["happy", "love", "great", "wonderful", "excited", "delighted"],
    "sadness": ["sad", "upset", "hurt", "disappointed", "sorry", "miss"],
    "anger": ["angry", "mad", "frustrated", "annoyed", "hate", "furious"],
    "fear": ["afraid", "worried", "scared", "anxious", "nervous", "concerned"],
    "trust": ["trust", "believe", "sure", "confident", "faith", "rely"],
    "surprise": ["wow", "omg", "unexpected", "surprised", "shocked", "amazed"],
}

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "communication": ["talk", "say", "tell", "listen", "understand", "mean"],
    "emotions": ["feel", "happy", "sad", "angry", "love", "hurt", "care"],
    "conflict": ["argue", "fight", "disagree", "problem", "issue", "wrong"],
    "support": ["help", "support", "there", "together", "appreciate", "thank"],
    "future": ["plan", "future", "goal", "dream", "hope", "want"],
    "intimacy": ["miss", "close", "touch", "kiss", "hug", "intimate"],
    "trust": ["trust", "honest", "truth", "lie", "faithful", "believe"],
    "boundaries": ["space", "time", "need", "want", "respect", "boundary"],
}

RELATIONSHIP_INDICATORS: Dict[str, List[str]] = {
    "positive_interactions": ["love", "appreciate", "thank", "care", "support", "understand"],
    "negative_interactions": ["hate", "never", "always", "whatever", "fine"],
    "repair_attempts": ["sorry", "apologize", "my fault", "didn't mean", "forgive"],
    "future_orientation": ["will", "going to", "plan", "future", "soon", "tomorrow"],
}

# Per-message emotion lexicon (eight emotions of the profile model)
EMOTION_KEYWORDS: Dict[str, List[str]] = {
    "joy": ["happy", "love", "great", "wonderful", "excited", "delighted", "glad",
            "awesome", "yay", "haha", "lol", "fun", "amazing"],
    "sadness": ["sad", "upset", "hurt", "disappointed", "sorry", "miss", "lonely",
                "cry", "crying", "tired", "okay"],
    "anger": ["angry", "mad", "frustrated", "annoyed", "hate", "furious", "stop",
              "leave", "ridiculous", "seriously"],
    "fear": ["afraid", "worried", "scared", "anxious", "nervous", "concerned", "panic"],
    "surprise": ["wow", "omg", "unexpected", "surprised", "shocked", "amazed", "really"],
    "disgust": ["gross", "disgusting", "ew", "eww", "sick", "whatever", "pathetic"],
    "trust": ["trust", "believe", "sure", "confident", "faith", "rely", "promise",
              "thanks", "thank", "appreciate"],
    "anticipation": ["soon", "tomorrow", "tonight", "later", "plan", "wait", "cant",
                     "looking", "forward", "weekend"],
}

POSITIVE_EMOTIONS = ["joy", "trust", "anticipation", "surprise"]
NEGATIVE_EMOTIONS = ["sadness", "anger", "fear", "disgust"]

# Emotional balance used for trend tracking across analyses
TREND_POSITIVE_EMOTIONS = ["joy", "surprise"]
TREND_NEGATIVE_EMOTIONS = ["sadness", "anger", "fear"]

# Emoji database: emoji -> (emotion, intensity)
EMOJI_EMOTIONS: Dict[str, tuple] = {
    # Joy
    "😊": ("joy", 0.7), "😄": ("joy", 0.8), "😁": ("joy", 0.8), "😀": ("joy", 0.7),
    "😃": ("joy", 0.8), "🥰": ("joy", 0.9), "😍": ("joy", 0.9), "🤣": ("joy", 0.9),
    "😂": ("joy", 0.8), "❤️": ("joy", 0.9), "❤": ("joy", 0.9),
    # Sadness
    "😢": ("sadness", 0.7), "😭": ("sadness", 0.9), "😞": ("sadness", 0.6),
    "😔": ("sadness", 0.5), "😟": ("sadness", 0.6), "🙁": ("sadness", 0.4),
    "☹️": ("sadness", 0.6), "☹": ("sadness", 0.6), "💔": ("sadness", 0.9),
    # Anger
    "😠": ("anger", 0.7), "😡": ("anger", 0.9), "🤬": ("anger", 1.0), "😤": ("anger", 0.7),
    # Fear
    "😨": ("fear", 0.7), "😱": ("fear", 0.9), "😰": ("fear", 0.7), "😥": ("fear", 0.5),
    # Surprise
    "😮": ("surprise", 0.6), "😲": ("surprise", 0.7), "😯": ("surprise", 0.5),
    "😳": ("surprise", 0.6), "🤯": ("surprise", 0.9),
    # Disgust
    "🤢": ("disgust", 0.7), "🤮": ("disgust", 0.9), "😖": ("disgust", 0.6),
    "🙄": ("disgust", 0.5),
    # Trust
    "🤝": ("trust", 0.8), "👍": ("trust", 0.6), "🙏": ("trust", 0.7),
    # Anticipation
    "🤔": ("anticipation", 0.5), "👀": ("anticipation", 0.6), "😏": ("anticipation", 0.5),
}

# Punctuation patterns: (type, regex, intensity, associated emotions)
PUNCTUATION_PATTERNS: List[tuple] = [
    ("ellipsis", r"\.{3,}", 0.5, ["sadness", "fear"]),
    ("excessive_question", r"\?{2,}", 0.6, ["surprise", "anger"]),
    ("excessive_exclamation", r"!{2,}", 0.8, ["joy", "anger", "surprise"]),
]
ALL_CAPS_INTENSITY = 0.8
NO_PUNCTUATION_INTENSITY = 0.4
NO_PUNCTUATION_MIN_LENGTH = 20

# Gottman-style phrase lists
HORSEMEN_PHRASES: Dict[str, List[str]] = {
    "criticism": ["you always", "you never", "what is wrong with you", "you're so", "why can't you"],
    "contempt": ["whatever", "pathetic", "ridiculous", "are you serious", "grow up"],
    "defensiveness": ["not my fault", "i didn't do", "it's not me", "but you", "i was just"],
    "stonewalling": ["leave me alone", "i'm done", "don't want to talk", "forget it", "fine."],
}
REPAIR_PHRASES = ["sorry", "apologize", "my fault", "didn't mean", "forgive", "let's start over",
                  "i understand", "you're right"]
BAD_MEMORY_PHRASES = ["last time", "remember when", "again", "like always", "every time",
                      "you did this before"]
SUPPORT_PHRASES = ["are you okay", "are you sure", "how are you", "i'm here", "i understand",
                   "that sounds", "what's wrong", "talk to me", "i'm sorry"]

# Message-level thresholds
FLOODING_INTENSITY = 0.8
ESCALATION_STEP = 0.3
SHOUT_MIN_LENGTH = 3

# Relationship health weights
HEALTH_WEIGHTS = {
    "joy": 0.3,
    "trust": 0.3,
    "secure": 0.4,
}


def get_config_summary() -> Dict[str, Any]:
    """Return a summary of current configuration."""
    return {
        "server": {
            "max_upload_mb": MAX_UPLOAD_MB,
            "max_image_mb": MAX_IMAGE_MB,
            "use_reloader": DEV_USE_RELOADER,
        },
        "redis": {
            "url": REDIS_URL,
            "result_cache": RESULT_CACHE_ENABLED,
            "result_cache_ttl": RESULT_CACHE_TTL_SECONDS,
            "max_history": MAX_HISTORY_SIZE,
        },
        "rate_limit": {
            "points": ANALYZE_CHAT_RATE_POINTS,
            "duration": ANALYZE_CHAT_RATE_DURATION,
            "block_duration": ANALYZE_CHAT_BLOCK_DURATION,
        },
        "ocr": {
            "max_retries": OCR_MAX_RETRIES,
            "fallback_threshold": OCR_FALLBACK_THRESHOLD,
            "timeout": OCR_TIMEOUT,
            "tesseract": TESSERACT_ENABLED,
            "google_vision": GOOGLE_VISION_ENABLED and bool(GOOGLE_VISION_API_KEY),
            "azure": AZURE_VISION_ENABLED and bool(AZURE_VISION_ENDPOINT and AZURE_VISION_KEY),
        },
        "storage": {
            "db_path": DB_PATH,
            "async_persist": ASYNC_PERSIST,
        },
    }


def validate_config() -> tuple[bool, str]:
    """Validate configuration. Returns (is_valid, message)."""
    total_weight = sum(HEALTH_WEIGHTS.values())
    if abs(total_weight - 1.0) > 0.01:
        return False, f"Health weights sum to {total_weight:.2f}, should be ~1.0"

    if not 0.0 <= OCR_FALLBACK_THRESHOLD <= 1.0:
        return False, f"OCR_FALLBACK_THRESHOLD must be in [0, 1], got {OCR_FALLBACK_THRESHOLD}"

    if not (TESSERACT_ENABLED or GOOGLE_VISION_API_KEY or (AZURE_VISION_ENDPOINT and AZURE_VISION_KEY)):
        return False, "No OCR engine configured (enable Tesseract or set cloud OCR credentials)"

    return True, "Configuration valid"


if __name__ == "__main__":
    # Print config summary for debugging
    import json
    print("HeartLens Configuration:")
    print(json.dumps(get_config_summary(), indent=2))
    print()
    valid, msg = validate_config()
    print(f"Validation: {msg}")
