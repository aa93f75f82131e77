from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class GenerationOutcome(str, Enum):
    """Classification of a remote generation response."""

    SUCCESS = "success"
    BLOCKED = "blocked"
    EMPTY_RESPONSE = "empty_response"
    NO_CONTENT = "no_content"
    TEXT_ONLY = "text_only"


@dataclass(slots=True)
class GenerationRequest:
    """Padded image plus instruction sent to the image model."""

    image_bytes: bytes
    mime_type: str
    prompt_text: str


@dataclass(slots=True)
class GenerationResult:
    """
    Validated outcome of a generation call.

    Only `SUCCESS` results carry image bytes; every other outcome may carry a
    diagnostic `detail` (block reason and categories, finish reason, or the
    text the model replied with).
    """

    outcome: GenerationOutcome
    image_bytes: bytes | None = None
    mime_type: str | None = None
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is GenerationOutcome.SUCCESS


# Wire models for the `generateContent` REST response. Only the fields the
# pipelines inspect are declared; everything else in the payload is ignored.


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InlineData(_WireModel):
    mime_type: str = Field(default="image/png", alias="mimeType")
    # Base64-encoded payload.
    data: str = ""


class Part(_WireModel):
    text: str | None = None
    inline_data: InlineData | None = Field(default=None, alias="inlineData")


class Content(_WireModel):
    role: str | None = None
    parts: List[Part] = Field(default_factory=list)


class SafetyRating(_WireModel):
    category: str
    probability: str = "NEGLIGIBLE"
    blocked: bool = False


class Candidate(_WireModel):
    content: Content | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")
    safety_ratings: List[SafetyRating] = Field(default_factory=list, alias="safetyRatings")


class PromptFeedback(_WireModel):
    block_reason: str | None = Field(default=None, alias="blockReason")
    block_reason_message: str | None = Field(default=None, alias="blockReasonMessage")
    safety_ratings: List[SafetyRating] = Field(default_factory=list, alias="safetyRatings")


class GenerateContentResponse(_WireModel):
    candidates: List[Candidate] = Field(default_factory=list)
    prompt_feedback: PromptFeedback | None = Field(default=None, alias="promptFeedback")
    model_version: str | None = Field(default=None, alias="modelVersion")

    @property
    def text(self) -> str:
        """Concatenated text parts of the first candidate (empty if none)."""
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return "".join(part.text or "" for part in self.candidates[0].content.parts)
