"""Billboard image analyzers: a simulated stand-in, the remote AI endpoint, and Gemini Vision."""
import json
import os
import random
import re
from typing import Any, Dict, List, Optional

from flask import current_app
from google import genai
from google.genai import types

from utils.api_client import APIClient

OBSCENE_WORDS = ("inappropriate", "offensive", "vulgar", "explicit", "adult")
POLITICAL_KEYWORDS = ("vote", "election", "party", "candidate", "political", "campaign", "rally", "minister", "government")
SAMPLE_BILLBOARD_TEXTS = (
    "MEGA SALE - 50% OFF",
    "New Restaurant Opening Soon",
    "Vote for Change - Election 2024",
    "Premium Quality Products",
    "Contact: 9876543210",
)
MAX_BILLBOARD_WIDTH_FT = 40
MAX_BILLBOARD_HEIGHT_FT = 20
STRUCTURAL_CONDITIONS = ("good", "fair", "poor", "dangerous")


class AIVisionError(Exception):
    """Raised when an analyzer cannot return a valid result."""

    def __init__(self, message: str, code: str = "analysis_failed", retry_after: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "retryAfter": self.retry_after}


def find_keywords(text: str, keywords) -> List[str]:
    lowered = (text or "").lower()
    return [word for word in keywords if word.lower() in lowered]


def assess_structural_condition(hazards: List[str]) -> str:
    return STRUCTURAL_CONDITIONS[min(len(hazards), len(STRUCTURAL_CONDITIONS) - 1)]


def _first_json_block(text: str) -> str:
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def _safe_json_loads(raw_text: str) -> Dict[str, Any]:
    """Parse JSON, tolerating code fences or chatter around the object."""
    cleaned = raw_text.strip()
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*", "", cleaned).strip()
    cleaned = re.sub(r"```$", "", cleaned).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        return json.loads(_first_json_block(cleaned))


def _coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if value in {"true", "True", "1", 1}:
        return True
    if value in {"false", "False", "0", 0}:
        return False
    return None


def _coerce_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        return [str(value).strip()] if str(value).strip() else []
    return [str(item).strip() for item in value if str(item).strip()]


def _coerce_confidence(value: Any) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if 0 < number <= 1:
        number *= 100
    return int(max(0, min(100, round(number))))


def normalize_analysis(payload: Dict[str, Any], location: Dict[str, float]) -> Dict[str, Any]:
    """Coerce an analyzer payload into the shape stored on scans and reports."""
    if not isinstance(payload, dict):
        raise AIVisionError("Analyzer returned a non-object payload")
    violations = _coerce_str_list(payload.get("violations"))
    hazards = _coerce_str_list(payload.get("structural_hazards"))
    info = payload.get("billboard_info") if isinstance(payload.get("billboard_info"), dict) else {}
    condition = str(info.get("structural_condition") or "").lower()
    if condition not in STRUCTURAL_CONDITIONS:
        condition = assess_structural_condition(hazards)
    unauthorized = _coerce_bool(payload.get("is_unauthorized"))
    return {
        "is_unauthorized": bool(violations or hazards) if unauthorized is None else unauthorized,
        "confidence": _coerce_confidence(payload.get("confidence")),
        "violations": violations,
        "structural_hazards": hazards,
        "obscene_content": _coerce_str_list(payload.get("obscene_content")),
        "political_content": _coerce_str_list(payload.get("political_content")),
        "qr_code_detected": bool(_coerce_bool(payload.get("qr_code_detected"))),
        "billboard_info": {
            "size": str(info.get("size") or "unknown"),
            "location": str(info.get("location") or f"{location['lat']:.4f}, {location['lng']:.4f}"),
            "content": str(info.get("content") or "Commercial Advertisement")[:100],
            "structural_condition": condition,
            "estimated_age": str(info.get("estimated_age") or "unknown"),
        },
        "privacy_blurred": bool(_coerce_bool(payload.get("privacy_blurred"))),
    }


class ImageAnalyzer:
    """Capability boundary for billboard analysis; scoring only sees the normalized result."""

    name = "base"

    def analyze(self, image_bytes: bytes, mime_type: str, location: Dict[str, float]) -> Dict[str, Any]:
        raise NotImplementedError


class SimulatedImageAnalyzer(ImageAnalyzer):
    """Random-driven stand-in for OCR, hazard and placement checks."""

    name = "simulated"

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random(seed)

    def _ocr(self) -> str:
        return self.rng.choice(SAMPLE_BILLBOARD_TEXTS)

    def _structural_hazards(self) -> List[str]:
        roll = self.rng.random()
        hazards = []
        if roll > 0.7:
            hazards.append("Visible rust and corrosion detected")
        if roll > 0.8:
            hazards.append("Billboard appears tilted or unstable")
        if roll > 0.85:
            hazards.append("Structural cracks visible in support frame")
        if roll > 0.9:
            hazards.append("Loose or damaged panels detected")
        return hazards

    def _size_violations(self) -> tuple[List[str], str]:
        width = self.rng.randint(20, 49)
        height = self.rng.randint(10, 29)
        violations = []
        if width > MAX_BILLBOARD_WIDTH_FT:
            violations.append(f"Billboard width ({width}ft) exceeds maximum limit of {MAX_BILLBOARD_WIDTH_FT}ft")
        if height > MAX_BILLBOARD_HEIGHT_FT:
            violations.append(f"Billboard height ({height}ft) exceeds maximum limit of {MAX_BILLBOARD_HEIGHT_FT}ft")
        return violations, f"{width}x{height} ft"

    def _placement_violations(self) -> List[str]:
        violations = []
        if self.rng.random() > 0.6:
            violations.append("Billboard placed within 200m of traffic signal")
        if self.rng.random() > 0.7:
            violations.append("Billboard blocking visibility of road signs")
        if self.rng.random() > 0.8:
            violations.append("Billboard placed in no-advertising zone near school/hospital")
        return violations

    def analyze(self, image_bytes: bytes, mime_type: str, location: Dict[str, float]) -> Dict[str, Any]:
        text = self._ocr()
        obscene = find_keywords(text, OBSCENE_WORDS)
        political = find_keywords(text, POLITICAL_KEYWORDS)
        hazards = self._structural_hazards()
        qr_detected = self.rng.random() > 0.4
        size_violations, size_label = self._size_violations()

        violations = [f'Inappropriate content detected: "{word}"' for word in obscene]
        violations += [f'Political content detected: "{word}"' for word in political]
        violations += size_violations
        if not qr_detected:
            violations.append("Missing required QR code with license information")
        violations += self._placement_violations()

        faces_blurred = self.rng.random() > 0.7
        plates_blurred = self.rng.random() > 0.8
        return normalize_analysis(
            {
                "is_unauthorized": bool(violations or hazards),
                "confidence": self.rng.randint(70, 99),
                "violations": violations,
                "structural_hazards": hazards,
                "obscene_content": obscene,
                "political_content": political,
                "qr_code_detected": qr_detected,
                "billboard_info": {
                    "size": size_label,
                    "content": text,
                    "structural_condition": assess_structural_condition(hazards),
                    "estimated_age": f"{self.rng.randint(1, 5)} years",
                },
                "privacy_blurred": faces_blurred or plates_blurred,
            },
            location,
        )


class RemoteImageAnalyzer(ImageAnalyzer):
    """Delegates to the hosted AI endpoint through the retrying client."""

    name = "remote"

    def __init__(self, client: APIClient) -> None:
        self.client = client

    def analyze(self, image_bytes: bytes, mime_type: str, location: Dict[str, float]) -> Dict[str, Any]:
        result = self.client.fetch_ai_response(
            {
                "task": "billboard_analysis",
                "mime_type": mime_type,
                "image_size": len(image_bytes or b""),
                "location": location,
            }
        )
        if not result.get("success"):
            error = result.get("error") or {}
            raise AIVisionError(
                error.get("message") or "Failed to analyze image",
                code=error.get("code") or "analysis_failed",
                retry_after=error.get("retryAfter"),
            )
        data = result.get("data")
        if isinstance(data, dict) and isinstance(data.get("analysis"), dict):
            data = data["analysis"]
        return normalize_analysis(data, location)


def build_vision_prompt(location: Dict[str, float]) -> str:
    return (
        "You are a municipal billboard compliance reviewer. "
        f"The photo was taken at latitude {location['lat']}, longitude {location['lng']}. "
        "Check the billboard for size limits (40ft wide, 20ft high), missing license QR code, "
        "placement near traffic signals, schools or hospitals, obscene or political content, "
        "and structural hazards such as rust, tilt, cracks or loose panels. "
        "Return strict JSON with fields: is_unauthorized (boolean), confidence (0-100), "
        "violations (array of strings), structural_hazards (array), obscene_content (array of matched words), "
        "political_content (array of matched words), qr_code_detected (boolean), "
        "billboard_info {size, content, structural_condition (good|fair|poor|dangerous), estimated_age}, "
        "privacy_blurred (boolean). Do not include markdown. JSON only."
    )


class GeminiImageAnalyzer(ImageAnalyzer):
    name = "gemini"

    def __init__(self, api_key: str, model_name: str = "gemini-2.5-flash") -> None:
        if not api_key:
            raise AIVisionError("GEMINI_API_KEY is not configured")
        self.api_key = api_key
        self.model_name = model_name

    def analyze(self, image_bytes: bytes, mime_type: str, location: Dict[str, float]) -> Dict[str, Any]:
        client = genai.Client(api_key=self.api_key)
        current_app.logger.info("Dispatching Gemini Vision analysis", extra={"model": self.model_name})
        try:
            response = client.models.generate_content(
                model=self.model_name,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                    types.Part.from_text(text=build_vision_prompt(location)),
                ],
                config=types.GenerateContentConfig(response_mime_type="application/json"),
            )
        except Exception as exc:  # pragma: no cover - relies on remote service
            current_app.logger.exception("Gemini Vision request failed")
            raise AIVisionError("Gemini Vision request failed") from exc

        raw_text = (response.text or "").strip()
        if not raw_text:
            raise AIVisionError("Gemini Vision returned empty response")
        try:
            payload = _safe_json_loads(raw_text)
        except ValueError as exc:
            raise AIVisionError("Gemini Vision returned non-JSON output") from exc
        return normalize_analysis(payload, location)


def get_image_analyzer(config) -> ImageAnalyzer:
    kind = (config.get("IMAGE_ANALYZER") or "simulated").lower()
    if kind == "remote":
        return RemoteImageAnalyzer(APIClient.from_config(config))
    if kind == "gemini":
        return GeminiImageAnalyzer(
            config.get("GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY", ""),
            config.get("GEMINI_VISION_MODEL", "gemini-2.5-flash"),
        )
    return SimulatedImageAnalyzer(seed=config.get("ANALYZER_SEED"))
