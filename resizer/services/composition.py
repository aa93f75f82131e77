"""
Composition analysis of an uploaded image.

Purely informational: the text never influences the resize pipelines, and
failures degrade to a fixed message instead of raising.
"""

from __future__ import annotations

import logging
from typing import Protocol

from resizer.services.gemini_http_client import GeminiHTTPClient


logger = logging.getLogger(__name__)

ANALYSIS_INSTRUCTION = (
    "Analyze the composition of this image. Describe the main subject, its placement "
    "(e.g., rule of thirds, centered), and the overall visual flow. Be concise and "
    "focus on photographic composition elements."
)

MISSING_KEY_MESSAGE = "Error: API key is not configured. Please contact the administrator."
ANALYSIS_FAILED_MESSAGE = "An error occurred while analyzing the image composition."


class DescriptionClient(Protocol):
    def describe_image(self, image_bytes: bytes, mime_type: str, instruction: str) -> str:
        ...


def analyze_image_composition(
    image_bytes: bytes,
    mime_type: str,
    *,
    api_key: str | None,
    client: DescriptionClient | None = None,
) -> str:
    """Describe the image's composition, or return a fixed error string."""
    if not api_key or not api_key.strip():
        logger.error("Composition analysis requested without an API key")
        return MISSING_KEY_MESSAGE

    try:
        if client is None:
            client = GeminiHTTPClient(api_key=api_key)
        text = client.describe_image(image_bytes, mime_type, ANALYSIS_INSTRUCTION)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error analyzing image composition: %s", exc)
        return ANALYSIS_FAILED_MESSAGE

    if not text or not text.strip():
        logger.warning("Composition analysis returned no text")
        return ANALYSIS_FAILED_MESSAGE
    return text.strip()
