"""
Direct HTTP client for the Gemini `generateContent` API.

All calls go through the centralized rate limiter. Nothing is retried here:
429s feed the limiter's backoff for *subsequent* calls, and every failure is
raised as a `TransportError` for the caller to surface.
"""

from __future__ import annotations

import base64
import logging
import os
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from resizer.models.generation import GenerateContentResponse, GenerationRequest
from resizer.services.errors import MissingCredential, TransportError
from resizer.services.rate_limiter import GeminiRateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"

RATE_LIMIT_TIMEOUT = 30.0


class GeminiHTTPClient:
    """
    Thin client for the two Gemini operations the service needs.

    - `generate_image`: padded image + prompt in, raw response out (the
      outpaint pipeline classifies it).
    - `describe_image`: image + instruction in, free text out.
    """

    def __init__(
        self,
        api_key: str | None,
        base_url: str | None = None,
        image_model: str | None = None,
        text_model: str | None = None,
        timeout: float | None = None,
        rate_limiter: GeminiRateLimiter | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: Gemini API key. Required; only checked for being non-empty.
            base_url: REST root. Defaults to GEMINI_API_BASE_URL or the public endpoint.
            image_model: Outpainting model. Defaults to GEMINI_IMAGE_MODEL.
            text_model: Analysis model. Defaults to GEMINI_TEXT_MODEL.
            timeout: Per-call timeout in seconds. Defaults to GEMINI_TIMEOUT_SECONDS.
            rate_limiter: Limiter to use instead of the process-wide one.
        """
        if not api_key or not api_key.strip():
            raise MissingCredential()

        self.api_key = api_key.strip()
        self.base_url = (base_url or os.getenv("GEMINI_API_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.image_model = image_model or os.getenv("GEMINI_IMAGE_MODEL", DEFAULT_IMAGE_MODEL)
        self.text_model = text_model or os.getenv("GEMINI_TEXT_MODEL", DEFAULT_TEXT_MODEL)
        self.timeout = timeout if timeout is not None else float(os.getenv("GEMINI_TIMEOUT_SECONDS", "120"))
        self.rate_limiter = rate_limiter or get_rate_limiter()

    def generate_image(self, request: GenerationRequest) -> GenerateContentResponse:
        """Send a padded image and prompt to the image model."""
        parts = [
            self._inline_part(request.image_bytes, request.mime_type),
            {"text": request.prompt_text},
        ]
        logger.info(
            "Calling Gemini image model %s (%d bytes, %s)",
            self.image_model,
            len(request.image_bytes),
            request.mime_type,
        )
        return self.generate_content(self.image_model, parts, response_modalities=["IMAGE", "TEXT"])

    def describe_image(self, image_bytes: bytes, mime_type: str, instruction: str) -> str:
        """Ask the text model about an image and return its answer."""
        parts = [self._inline_part(image_bytes, mime_type), {"text": instruction}]
        logger.info("Calling Gemini text model %s", self.text_model)
        response = self.generate_content(self.text_model, parts)
        return response.text

    def generate_content(
        self,
        model: str,
        parts: List[Dict[str, Any]],
        response_modalities: Optional[List[str]] = None,
    ) -> GenerateContentResponse:
        """Single `generateContent` call; returns the parsed response."""
        payload: Dict[str, Any] = {"contents": [{"parts": parts}]}
        if response_modalities:
            payload["generationConfig"] = {"responseModalities": response_modalities}

        if not self.rate_limiter.acquire(timeout=RATE_LIMIT_TIMEOUT):
            raise TransportError("Timed out waiting for the Gemini rate limiter.", status_code=429)

        url = f"{self.base_url}/models/{model}:generateContent"
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            logger.error("Gemini request timed out after %ss", self.timeout)
            raise TransportError(f"The request to Gemini timed out after {self.timeout}s.") from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Gemini request failed: %s", exc)
            raise TransportError(f"Could not reach Gemini: {exc}") from exc

        if response.status_code == 429:
            self.rate_limiter.report_429()
            logger.error("Gemini API rate limited (429) - backoff applied to subsequent calls")
            raise TransportError("Gemini rate limit exceeded; try again later.", status_code=429)

        if response.status_code in (401, 403):
            logger.error("Gemini API authentication failed (%d)", response.status_code)
            raise TransportError(
                f"Gemini authentication failed: {self._error_message(response)}",
                status_code=response.status_code,
            )

        if response.status_code >= 400:
            detail = self._error_message(response)
            logger.error("Gemini API error (%d): %s", response.status_code, detail)
            raise TransportError(
                f"Gemini API error ({response.status_code}): {detail}",
                status_code=response.status_code,
            )

        try:
            parsed = GenerateContentResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Unparseable Gemini response: %s", exc)
            raise TransportError("Gemini returned a response that could not be parsed.") from exc

        self.rate_limiter.report_success()
        return parsed

    @staticmethod
    def _inline_part(image_bytes: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "inline_data": {
                "mime_type": mime_type,
                "data": base64.b64encode(image_bytes).decode("utf-8"),
            }
        }

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        """Extract `error.message` from a Gemini error body, or fall back to raw text."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason or "unknown error"
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return body["error"].get("message") or body["error"].get("status") or "unknown error"
        return str(body)[:200]
