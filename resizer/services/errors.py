"""
Error taxonomy for the resize and outpaint pipelines.

Every failure a caller can observe is one of the `ResizeError` subclasses
below. Library exceptions (Pillow, requests) are translated into these at the
seam where they happen and chained with `raise ... from exc`, so the HTTP
layer only ever needs to map this small hierarchy to status codes.
"""

from __future__ import annotations

from resizer.models.generation import GenerationOutcome


class ResizeError(RuntimeError):
    """Base class for all pipeline failures surfaced to callers."""

    code = "resize_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidDimensions(ResizeError):
    """Target width/height is not strictly positive."""

    code = "invalid_dimensions"

    def __init__(self, width: int, height: int) -> None:
        super().__init__(
            f"Target dimensions must be positive integers, got {width}x{height}."
        )
        self.width = width
        self.height = height


class DecodeError(ResizeError):
    """Input bytes are not a decodable image."""

    code = "decode_error"


class RenderError(ResizeError):
    """Output raster could not be allocated or drawn."""

    code = "render_error"


class MissingCredential(ResizeError):
    """No API key supplied for an operation that needs remote access."""

    code = "missing_credential"

    def __init__(self, message: str = "An API key is required for AI outpainting.") -> None:
        super().__init__(message)


_GENERATION_MESSAGES = {
    GenerationOutcome.BLOCKED: "The request was blocked by the image model's safety filters.",
    GenerationOutcome.EMPTY_RESPONSE: "The image model returned an empty response.",
    GenerationOutcome.NO_CONTENT: "The image model returned a candidate without any content.",
    GenerationOutcome.TEXT_ONLY: "AI did not return an image.",
}


class GenerationFailed(ResizeError):
    """The remote image model did not yield usable image data."""

    code = "generation_failed"

    def __init__(self, reason: GenerationOutcome, detail: str | None = None) -> None:
        message = _GENERATION_MESSAGES.get(reason, "Image generation failed.")
        if reason is GenerationOutcome.BLOCKED and detail:
            message = f"{message} Reason: {detail}"
        super().__init__(message)
        self.reason = reason
        self.detail = detail


class TransportError(ResizeError):
    """Network or protocol failure talking to a remote collaborator."""

    code = "transport_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
