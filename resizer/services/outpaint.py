"""
Outpaint pipeline: pad -> remote generate -> validate -> rescale.

The generative model is not trusted to return the requested size, so
generation and "force to exact size" are separate stages: whatever comes
back is validated, decoded, and then stretched onto the exact target.

Each invocation is self-contained; nothing is shared between requests.
"""

from __future__ import annotations

import base64
import binascii
import logging
from enum import Enum
from typing import Protocol

from PIL import Image

from resizer.models.generation import (
    GenerateContentResponse,
    GenerationOutcome,
    GenerationRequest,
    GenerationResult,
    SafetyRating,
)
from resizer.models.geometry import Dimensions
from resizer.models.images import EncodedImage
from resizer.services.errors import GenerationFailed, MissingCredential
from resizer.services.gemini_http_client import GeminiHTTPClient
from resizer.services.geometry import aspect_ratio, aspects_equal, fit_pad_canvas
from resizer.services.imaging import (
    build_padded_canvas,
    decode_image,
    encode_image,
    scale_to,
    transparent_coverage,
)


logger = logging.getLogger(__name__)

DEFAULT_OUTPAINT_PROMPT = (
    "You are a professional photo editor. Your task is to seamlessly fill in the "
    "transparent areas of this image to extend the scene. Match the existing style, "
    "lighting, and content. Do not alter the original, non-transparent parts of the image."
)

# Safety ratings at these probabilities are not worth reporting.
_IGNORED_PROBABILITIES = {"NEGLIGIBLE", "LOW", "HARM_PROBABILITY_UNSPECIFIED"}

_TEXT_DETAIL_LIMIT = 200


class OutpaintStage(str, Enum):
    START = "start"
    ASPECT_CHECK = "aspect_check"
    SHORT_CIRCUIT = "short_circuit"
    PADDING = "padding"
    GENERATING = "generating"
    VALIDATING = "validating"
    FAILED = "failed"
    RESCALING = "rescaling"
    DONE = "done"


class GenerationClient(Protocol):
    """What the pipeline needs from the remote image model."""

    def generate_image(self, request: GenerationRequest) -> GenerateContentResponse:
        ...


def _enter(stage: OutpaintStage, **context: object) -> None:
    if context:
        details = ", ".join(f"{key}={value}" for key, value in context.items())
        logger.info("Outpaint stage: %s (%s)", stage.value, details)
    else:
        logger.info("Outpaint stage: %s", stage.value)


def _triggered_categories(ratings: list[SafetyRating]) -> list[str]:
    return [rating.category for rating in ratings if rating.probability not in _IGNORED_PROBABILITIES]


def classify_generation_response(response: GenerateContentResponse) -> GenerationResult:
    """
    Decide whether a generation response carries a usable image.

    Only the first candidate is considered. Within it, the first part with
    inline image data wins.
    """
    if not response.candidates:
        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason:
            categories = _triggered_categories(feedback.safety_ratings)
            detail = feedback.block_reason
            if categories:
                detail = f"{feedback.block_reason}: {', '.join(categories)}"
            return GenerationResult(outcome=GenerationOutcome.BLOCKED, detail=detail)
        return GenerationResult(outcome=GenerationOutcome.EMPTY_RESPONSE)

    candidate = response.candidates[0]
    if candidate.content is None or not candidate.content.parts:
        detail = f"finish reason: {candidate.finish_reason}" if candidate.finish_reason else None
        return GenerationResult(outcome=GenerationOutcome.NO_CONTENT, detail=detail)

    for part in candidate.content.parts:
        if part.inline_data is not None and part.inline_data.data:
            try:
                image_bytes = base64.b64decode(part.inline_data.data)
            except (binascii.Error, ValueError):
                logger.warning("Skipping image part with invalid base64 payload")
                continue
            return GenerationResult(
                outcome=GenerationOutcome.SUCCESS,
                image_bytes=image_bytes,
                mime_type=part.inline_data.mime_type,
            )

    text = " ".join(part.text.strip() for part in candidate.content.parts if part.text).strip()
    return GenerationResult(
        outcome=GenerationOutcome.TEXT_ONLY,
        detail=text[:_TEXT_DETAIL_LIMIT] or None,
    )


def outpaint(
    image: Image.Image,
    target: Dimensions,
    *,
    api_key: str | None,
    prompt: str | None = None,
    client: GenerationClient | None = None,
) -> Image.Image:
    """
    Extend `image` to the target aspect ratio with generated content.

    Returns a raster of exactly `target` size. Raises `InvalidDimensions`,
    `MissingCredential`, `GenerationFailed`, `TransportError`, `DecodeError`
    or `RenderError`; never retries.
    """
    _enter(OutpaintStage.START, source=f"{image.width}x{image.height}", target=f"{target.width}x{target.height}")
    target.validate()
    if not api_key or not api_key.strip():
        raise MissingCredential()

    aspect_o = aspect_ratio(image.width, image.height)
    aspect_t = aspect_ratio(target.width, target.height)
    _enter(OutpaintStage.ASPECT_CHECK, source_aspect=f"{aspect_o:.4f}", target_aspect=f"{aspect_t:.4f}")

    if aspects_equal(aspect_o, aspect_t):
        _enter(OutpaintStage.SHORT_CIRCUIT)
        # Re-encode the original unchanged; no padding and no remote call.
        result = decode_image(encode_image(image, "image/png"))
    else:
        result = _generate(image, target, api_key=api_key, prompt=prompt, client=client)

    _enter(OutpaintStage.RESCALING, size=f"{result.width}x{result.height}")
    output = scale_to(result, target)
    _enter(OutpaintStage.DONE)
    return output


def _generate(
    image: Image.Image,
    target: Dimensions,
    *,
    api_key: str,
    prompt: str | None,
    client: GenerationClient | None,
) -> Image.Image:
    canvas = fit_pad_canvas(image.width, image.height, target.width, target.height)
    padded = build_padded_canvas(image, canvas)
    _enter(
        OutpaintStage.PADDING,
        canvas=f"{padded.width}x{padded.height}",
        transparent=f"{transparent_coverage(padded):.1%}",
    )

    prompt_text = prompt if prompt and prompt.strip() else DEFAULT_OUTPAINT_PROMPT
    request = GenerationRequest(
        image_bytes=encode_image(padded, "image/png"),
        mime_type="image/png",
        prompt_text=prompt_text,
    )

    if client is None:
        client = GeminiHTTPClient(api_key=api_key)

    _enter(OutpaintStage.GENERATING, custom_prompt=prompt_text != DEFAULT_OUTPAINT_PROMPT)
    response = client.generate_image(request)

    _enter(OutpaintStage.VALIDATING)
    result = classify_generation_response(response)
    if not result.succeeded:
        _enter(OutpaintStage.FAILED, reason=result.outcome.value, detail=result.detail)
        raise GenerationFailed(result.outcome, result.detail)

    return decode_image(result.image_bytes)


def outpaint_upload(
    data: bytes,
    target: Dimensions,
    *,
    api_key: str | None,
    prompt: str | None = None,
    client: GenerationClient | None = None,
) -> tuple[EncodedImage, bool]:
    """
    Outpaint pipeline at the upload boundary.

    Validates the target and credential before decoding anything. Returns the
    PNG-encoded result and whether the aspect short-circuit was taken.
    """
    target.validate()
    if not api_key or not api_key.strip():
        raise MissingCredential()

    image = decode_image(data)
    short_circuit = aspects_equal(
        aspect_ratio(image.width, image.height),
        aspect_ratio(target.width, target.height),
    )
    output = outpaint(image, target, api_key=api_key, prompt=prompt, client=client)
    return EncodedImage(data=encode_image(output, "image/png"), mime_type="image/png"), short_circuit
