from enum import Enum
from typing import List

from pydantic import BaseModel, Field, PositiveInt


class ResizeMode(str, Enum):
    """How a resize request produces its output."""

    CROP = "crop"
    OUTPAINT = "outpaint"


class SizePreset(BaseModel):
    """A commonly requested output size."""

    label: str = Field(..., description="Human-readable label, e.g. '16:9 (HD Video)'.")
    width: PositiveInt = Field(..., description="Target width in pixels.")
    height: PositiveInt = Field(..., description="Target height in pixels.")


SIZE_PRESETS: List[SizePreset] = [
    SizePreset(label="16:9 (HD Video)", width=1920, height=1080),
    SizePreset(label="4:3 (Standard)", width=1024, height=768),
    SizePreset(label="1:1 (Square)", width=1080, height=1080),
    SizePreset(label="4:5 (Portrait)", width=1080, height=1350),
    SizePreset(label="9:16 (Story)", width=1080, height=1920),
]


class RectModel(BaseModel):
    """Rectangle in source-image pixel coordinates."""

    x: float
    y: float
    width: float
    height: float


class PadCanvasModel(BaseModel):
    """Canvas containing the whole source at the target aspect ratio."""

    canvas_width: float
    canvas_height: float
    draw_x: float
    draw_y: float


class GeometryPlanResponse(BaseModel):
    """Crop and pad geometry for a source/target pair."""

    source_aspect: float = Field(..., description="Source width / height.")
    target_aspect: float = Field(..., description="Target width / height.")
    aspects_match: bool = Field(
        ...,
        description="True when the aspects differ by less than 0.01; outpainting is skipped.",
    )
    crop_rect: RectModel = Field(..., description="Source region used by the crop pipeline.")
    pad_canvas: PadCanvasModel = Field(..., description="Padding canvas used by the outpaint pipeline.")


class AnalysisResponse(BaseModel):
    """Free-text composition analysis of an uploaded image."""

    analysis: str = Field(..., description="Model output, or a fixed error message.")


class ErrorDetail(BaseModel):
    """Body of every error response produced by the resize endpoints."""

    error: str = Field(..., description="Stable error code, e.g. 'generation_failed'.")
    message: str = Field(..., description="Human-readable explanation.")
    reason: str | None = Field(
        default=None,
        description="Generation failure classification (blocked/empty_response/no_content/text_only).",
    )
    detail: str | None = Field(
        default=None,
        description="Diagnostic detail, e.g. the block reason and triggered safety categories.",
    )
