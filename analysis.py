"""Gemini image analysis for waste photos.

The call is best-effort: one request, no retry, and a fixed fallback string
when anything goes wrong.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
from typing import Optional, Tuple

from google import genai
from google.genai import types
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

GEMINI_MODEL = os.environ.get("ECOCLEAN_GEMINI_MODEL", "gemini-2.5-flash")
NO_ANALYSIS = "No analysis available."
ANALYSIS_FAILED = "Analysis failed."
ANALYSIS_PREFIX = "[AI Analysis]: "

ANALYSIS_PROMPT = (
    "Identify the type of waste in this image (e.g., plastic, organic, construction, e-waste) "
    "and estimate the volume (small pile, large overflow, etc.). Suggest a priority level "
    "(Low, Medium, High). Keep it very brief, under 30 words."
)

_client: Optional[genai.Client] = None


def get_client() -> Optional[genai.Client]:
    """Lazily build the Gemini client; None when no API key is configured."""
    global _client
    if _client is None:
        api_key = os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
        if not api_key:
            return None
        _client = genai.Client(api_key=api_key)
    return _client


def _detect_mime(image_bytes: bytes) -> str:
    try:
        fmt = Image.open(io.BytesIO(image_bytes)).format
    except (UnidentifiedImageError, OSError):
        return "image/jpeg"
    return Image.MIME.get(fmt or "", "image/jpeg")


def decode_image(image: str) -> Tuple[bytes, str]:
    """Split a data URL (or bare base64) into raw bytes and a MIME type."""
    mime_type = None
    payload = image
    if image.startswith("data:") and "," in image:
        header, payload = image.split(",", 1)
        mime_type = header[len("data:"):].split(";", 1)[0] or None

    try:
        image_bytes = base64.b64decode(payload, validate=False)
    except binascii.Error as exc:
        raise ValueError("Image is not valid base64.") from exc
    if not image_bytes:
        raise ValueError("Image is empty.")

    return image_bytes, mime_type or _detect_mime(image_bytes)


def analyze_waste_image(image: str) -> str:
    """Ask Gemini to describe waste type, volume and priority for a photo."""
    try:
        client = get_client()
        if client is None:
            logger.warning("Gemini API key not configured; skipping image analysis.")
            return ANALYSIS_FAILED
        image_bytes, mime_type = decode_image(image)
        response = client.models.generate_content(
            model=GEMINI_MODEL,
            contents=[
                types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                ANALYSIS_PROMPT,
            ],
        )
    except Exception:
        logger.exception("Gemini analysis error")
        return ANALYSIS_FAILED

    return (response.text or "").strip() or NO_ANALYSIS


def merge_analysis(description: str, analysis: str) -> str:
    if description:
        return f"{description}\n\n{ANALYSIS_PREFIX}{analysis}"
    return f"{ANALYSIS_PREFIX}{analysis}"
