"""
OCR service for HeartLens
Tesseract as the primary engine with Google Vision and Azure fallbacks
"""

import io
import re
import time
import base64
import logging
from typing import Dict, Any, List, Optional

import requests
import pytesseract
from PIL import Image

from . import config

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback-generator"
MIN_CONFIDENCE = 0.1


class OcrError(Exception):
    """Raised when an OCR engine fails to process an image."""
    pass


def make_result(
    text: str,
    confidence: float,
    source: str,
    processing_time_ms: float = 0.0,
    error: Optional[str] = None,
    lines: Optional[List[Dict[str, Any]]] = None,
    image_width: Optional[int] = None,
) -> Dict[str, Any]:
    """Build an OcrResult dict."""
    return {
        "text": text or "",
        "confidence": max(0.0, min(1.0, float(confidence))),
        "source": source,
        "processing_time_ms": processing_time_ms,
        "error": error,
        "lines": lines,
        "image_width": image_width,
    }


# ============================================================================
# Text validation
# ============================================================================

ARTEFACT_RE = re.compile(r"[^\w\s.,!?@#$%^&*()\-+=:;\"']")
REPEATED_PUNCT_RE = re.compile(r"[.,!?]+([.,!?])")
MIXED_CASE_RE = re.compile(r"\b[A-Z][a-z]*[A-Z]+[a-z]*\b")

# Characters OCR commonly confuses with letters; only fixed between letters
DIGIT_CONFUSIONS = {"0": "o", "1": "l", "5": "s", "8": "B"}


def clean_ocr_text(text: str) -> str:
    """
    Clean up raw OCR output.

    Collapses whitespace, strips artefacts, collapses repeated punctuation,
    fixes digit/letter confusion inside words and lower-cases words with
    stray capitals.
    """
    if not text or not isinstance(text, str):
        logger.warning("Invalid OCR text received for cleaning")
        return ""

    cleaned = text.replace("\u00a0", " ")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    cleaned = ARTEFACT_RE.sub("", cleaned)
    cleaned = REPEATED_PUNCT_RE.sub(r"\1", cleaned)

    for digit, letter in DIGIT_CONFUSIONS.items():
        cleaned = re.sub(rf"(?<=[a-z]){digit}(?=[a-z])", letter, cleaned)

    def _fix_case(match: re.Match) -> str:
        word = match.group(0)
        if len(word) > 2:
            return word.lower()
        return word

    return MIXED_CASE_RE.sub(_fix_case, cleaned)


def is_meaningful_text(text: str) -> bool:
    """Check that OCR output looks like words rather than noise."""
    if not text or not isinstance(text, str):
        return False

    compact = re.sub(r"\s+", "", text)
    if len(compact) < 5:
        return False

    has_words = re.search(r"[a-zA-Z]{2,}", text) is not None
    alnum = len(re.findall(r"[a-zA-Z0-9]", compact))
    return has_words and alnum / len(compact) > 0.7


def generate_fallback_text(filename: Optional[str] = None, size_bytes: Optional[int] = None) -> str:
    """Explanatory placeholder used when no engine produced any text."""
    if filename:
        info = f"[Image: {filename}, Size: {round((size_bytes or 0) / 1024)} KB]"
    else:
        info = "[Image data provided without a name]"

    return (
        f"The system was unable to extract text from this image. {info}\n\n"
        "This appears to be a screenshot that may contain conversation text. For best results, please:\n"
        "- Ensure the image is not compressed or blurry\n"
        "- Try cropping the image to focus on text areas\n"
        "- If possible, provide a higher resolution screenshot"
    )


# ============================================================================
# Engines
# ============================================================================

class TesseractEngine:
    """Local Tesseract OCR via pytesseract, keeping per-line bounding boxes."""

    name = "tesseract"

    def __init__(self, lang: Optional[str] = None, tess_config: Optional[str] = None, timeout: Optional[int] = None):
        self.lang = lang or config.TESSERACT_LANG
        self.tess_config = tess_config if tess_config is not None else config.TESSERACT_CONFIG
        self.timeout = timeout or config.OCR_TIMEOUT

    @property
    def enabled(self) -> bool:
        return config.TESSERACT_ENABLED

    def extract(self, image_bytes: bytes) -> Dict[str, Any]:
        try:
            img = Image.open(io.BytesIO(image_bytes))
            img.load()
        except Exception as e:
            raise OcrError(f"Could not open image: {e}") from e

        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")

        try:
            data = pytesseract.image_to_data(
                img,
                lang=self.lang,
                config=self.tess_config,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )
        except (RuntimeError, pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as e:
            raise OcrError(f"Tesseract failed: {e}") from e

        lines = self._group_lines(data)
        confidences = [
            float(c) for c, w in zip(data.get("conf", []), data.get("text", []))
            if str(w).strip() and float(c) >= 0
        ]
        confidence = (sum(confidences) / len(confidences) / 100.0) if confidences else 0.0
        text = "\n".join(line["text"] for line in lines)

        return make_result(text, confidence, self.name, lines=lines, image_width=img.width)

    @staticmethod
    def _group_lines(data: Dict[str, List]) -> List[Dict[str, Any]]:
        """Merge word boxes from image_to_data into lines."""
        grouped: Dict[tuple, Dict[str, Any]] = {}
        for i, word in enumerate(data.get("text", [])):
            word = str(word).strip()
            if not word:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            left = int(data["left"][i])
            right = left + int(data["width"][i])
            top = int(data["top"][i])
            if key not in grouped:
                grouped[key] = {"words": [word], "left": left, "right": right, "top": top}
            else:
                line = grouped[key]
                line["words"].append(word)
                line["left"] = min(line["left"], left)
                line["right"] = max(line["right"], right)
                line["top"] = min(line["top"], top)

        ordered = sorted(grouped.values(), key=lambda l: (l["top"], l["left"]))
        return [
            {"text": " ".join(l["words"]), "left": l["left"], "width": l["right"] - l["left"]}
            for l in ordered
        ]


class GoogleVisionEngine:
    """Google Cloud Vision REST client (TEXT_DETECTION + DOCUMENT_TEXT_DETECTION)."""

    name = "google-vision"

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[int] = None):
        self.api_key = api_key if api_key is not None else config.GOOGLE_VISION_API_KEY
        self.timeout = timeout or config.OCR_TIMEOUT

    @property
    def enabled(self) -> bool:
        return config.GOOGLE_VISION_ENABLED and bool(self.api_key)

    def extract(self, image_bytes: bytes) -> Dict[str, Any]:
        payload = {
            "requests": [{
                "image": {"content": base64.b64encode(image_bytes).decode("ascii")},
                "features": [
                    {"type": "TEXT_DETECTION", "maxResults": 1},
                    {"type": "DOCUMENT_TEXT_DETECTION", "maxResults": 1},
                ],
            }]
        }

        try:
            response = requests.post(
                config.GOOGLE_VISION_URL,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise OcrError(f"Google Vision request failed: {e}") from e

        if response.status_code != 200:
            raise OcrError(f"Google Vision API error: {response.status_code} {response.text[:200]}")

        first = (response.json().get("responses") or [{}])[0]
        annotations = first.get("textAnnotations") or []

        if first.get("fullTextAnnotation"):
            text = first["fullTextAnnotation"].get("text", "")
            values = [a["confidence"] for a in annotations if "confidence" in a]
            confidence = sum(values) / len(values) if values else 0.5
        elif annotations:
            text = annotations[0].get("description", "")
            confidence = 0.5
        else:
            text, confidence = "", 0.0

        return make_result(text, confidence, self.name)


class AzureEngine:
    """Azure Computer Vision Read API client (submit then poll)."""

    name = "azure"
    poll_interval = 1.0
    max_polls = 10

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.endpoint = (endpoint if endpoint is not None else config.AZURE_VISION_ENDPOINT).rstrip("/")
        self.api_key = api_key if api_key is not None else config.AZURE_VISION_KEY
        self.api_version = api_version or config.AZURE_VISION_API_VERSION
        self.timeout = timeout or config.OCR_TIMEOUT

    @property
    def enabled(self) -> bool:
        return config.AZURE_VISION_ENABLED and bool(self.endpoint and self.api_key)

    def extract(self, image_bytes: bytes) -> Dict[str, Any]:
        url = f"{self.endpoint}/vision/v{self.api_version}/read/analyze"
        headers = {"Ocp-Apim-Subscription-Key": self.api_key}

        try:
            submit = requests.post(
                url,
                params={"language": "en", "model-version": "latest"},
                headers={**headers, "Content-Type": "application/octet-stream"},
                data=image_bytes,
                timeout=self.timeout,
            )
            if submit.status_code not in (200, 202):
                raise OcrError(f"Azure OCR submission error: {submit.status_code} {submit.text[:200]}")

            operation = submit.headers.get("Operation-Location")
            if not operation:
                raise OcrError("Azure OCR did not return an operation location")

            result: Dict[str, Any] = {}
            for _ in range(self.max_polls):
                time.sleep(self.poll_interval)
                poll = requests.get(operation, headers=headers, timeout=self.timeout)
                if poll.status_code != 200:
                    raise OcrError(f"Azure OCR polling error: {poll.status_code} {poll.text[:200]}")
                result = poll.json()
                if result.get("status") in ("succeeded", "failed"):
                    break
        except requests.RequestException as e:
            raise OcrError(f"Azure OCR request failed: {e}") from e

        if result.get("status") != "succeeded":
            raise OcrError(f"Azure OCR failed or timed out: {result.get('status')}")

        return self._parse_read_result(result)

    def _parse_read_result(self, result: Dict[str, Any]) -> Dict[str, Any]:
        lines: List[Dict[str, Any]] = []
        word_confidences: List[float] = []
        image_width = None

        for page in result.get("analyzeResult", {}).get("readResults", []):
            image_width = image_width or page.get("width")
            for line in page.get("lines", []):
                box = line.get("boundingBox") or []
                xs = box[0::2]
                left = min(xs) if xs else 0
                width = (max(xs) - left) if xs else 0
                lines.append({"text": line.get("text", ""), "left": left, "width": width})
                word_confidences.extend(
                    w["confidence"] for w in line.get("words", []) if "confidence" in w
                )

        confidence = sum(word_confidences) / len(word_confidences) if word_confidences else 0.5
        text = "\n".join(l["text"] for l in lines)
        return make_result(
            text,
            confidence,
            self.name,
            lines=lines if image_width else None,
            image_width=image_width,
        )


# ============================================================================
# Service
# ============================================================================

class OcrService:
    """
    Runs the primary engine and then enabled fallbacks until one returns
    confident, meaningful text.
    """

    def __init__(
        self,
        engines: Optional[List[Any]] = None,
        max_retries: Optional[int] = None,
        fallback_threshold: Optional[float] = None,
    ):
        """
        Initialize OCR service.

        Args:
            engines: Ordered engines, primary first (default Tesseract, Google Vision, Azure)
            max_retries: Attempts allowed after the primary (default from config)
            fallback_threshold: Minimum confidence to accept a result (default from config)
        """
        if engines is None:
            engines = [TesseractEngine(), GoogleVisionEngine(), AzureEngine()]
        self.engines = engines
        self.max_retries = config.OCR_MAX_RETRIES if max_retries is None else max_retries
        self.fallback_threshold = (
            config.OCR_FALLBACK_THRESHOLD if fallback_threshold is None else fallback_threshold
        )

    def process_image(self, image_bytes: bytes, filename: Optional[str] = None) -> Dict[str, Any]:
        """
        Extract text from an image with fallback.

        Args:
            image_bytes: Raw image bytes
            filename: Original filename, used only in the fallback message

        Returns:
            OcrResult dict. Never raises for engine failures.
        """
        if not image_bytes:
            raise ValueError("image_bytes is empty")

        attempts: List[Dict[str, Any]] = []

        for engine in self.engines:
            if not engine.enabled:
                continue
            if len(attempts) >= self.max_retries + 1:
                break

            logger.info(f"Starting OCR with {engine.name}")
            start = time.perf_counter()
            try:
                result = engine.extract(image_bytes)
            except Exception as e:
                logger.error(f"OCR engine {engine.name} failed: {e}")
                attempts.append(make_result("", 0.0, engine.name, error=str(e)))
                continue

            result["processing_time_ms"] = (time.perf_counter() - start) * 1000
            attempts.append(result)

            if result["confidence"] >= self.fallback_threshold and is_meaningful_text(result["text"]):
                logger.info(f"OCR with {engine.name} succeeded (confidence: {result['confidence']:.2f})")
                return result

            logger.warning(f"OCR with {engine.name} below confidence threshold: {result['confidence']:.2f}")

        best = None
        for attempt in attempts:
            if best is None or attempt["confidence"] > best["confidence"]:
                best = attempt

        if best is not None and best["text"].strip():
            logger.warning("All OCR attempts had low confidence. Using best available result.")
            cleaned = dict(best)
            cleaned["text"] = clean_ocr_text(best["text"])
            cleaned["confidence"] = max(best["confidence"], MIN_CONFIDENCE)
            return cleaned

        logger.error("All OCR attempts failed. Using fallback text.")
        return make_result(
            generate_fallback_text(filename, len(image_bytes)),
            MIN_CONFIDENCE,
            FALLBACK_SOURCE,
        )


def extract_text_from_image(image_bytes: bytes, filename: Optional[str] = None,
                            service: Optional[OcrService] = None) -> str:
    """Return the extracted text only, or "" on failure."""
    try:
        return (service or OcrService()).process_image(image_bytes, filename)["text"]
    except Exception as e:
        logger.error(f"Failed to extract text from image: {e}")
        return ""
