import logging
import os

from fastapi import APIRouter, File, Form, Header, HTTPException, Query, Response, UploadFile, status
from starlette.concurrency import run_in_threadpool

from resizer.api.v1.schemas import (
    SIZE_PRESETS,
    AnalysisResponse,
    ErrorDetail,
    GeometryPlanResponse,
    PadCanvasModel,
    RectModel,
    ResizeMode,
    SizePreset,
)
from resizer.models.geometry import Dimensions
from resizer.services.composition import analyze_image_composition
from resizer.services.errors import (
    DecodeError,
    GenerationFailed,
    InvalidDimensions,
    MissingCredential,
    RenderError,
    ResizeError,
    TransportError,
)
from resizer.services.geometry import plan_geometry
from resizer.services.imaging import resize_upload, sniff_mime_type
from resizer.services.outpaint import outpaint_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")

_ERROR_STATUS = {
    InvalidDimensions: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DecodeError: status.HTTP_400_BAD_REQUEST,
    RenderError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    MissingCredential: status.HTTP_401_UNAUTHORIZED,
    GenerationFailed: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransportError: status.HTTP_502_BAD_GATEWAY,
}


def _http_error(exc: ResizeError) -> HTTPException:
    """Translate a pipeline error into an HTTPException with an ErrorDetail body."""
    body = ErrorDetail(error=exc.code, message=exc.message)
    if isinstance(exc, GenerationFailed):
        body.reason = exc.reason.value
        body.detail = exc.detail
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning("Request failed with %s (%d): %s", exc.code, status_code, exc.message)
    return HTTPException(status_code=status_code, detail=body.model_dump(exclude_none=True))


def _resolve_api_key(form_key: str | None, header_key: str | None) -> str | None:
    """Request credential first (form, then header), then GEMINI_API_KEY."""
    for candidate in (form_key, header_key, os.getenv("GEMINI_API_KEY")):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


@router.get(
    "/presets",
    response_model=list[SizePreset],
    tags=["resize"],
    summary="List standard output sizes",
)
async def list_presets() -> list[SizePreset]:
    return SIZE_PRESETS


@router.get(
    "/plan",
    response_model=GeometryPlanResponse,
    tags=["resize"],
    summary="Preview crop and pad geometry",
)
async def get_plan(
    source_width: int = Query(..., description="Source image width in pixels."),
    source_height: int = Query(..., description="Source image height in pixels."),
    width: int = Query(..., description="Target width in pixels."),
    height: int = Query(..., description="Target height in pixels."),
) -> GeometryPlanResponse:
    """
    Report the crop rect and padding canvas for a source/target pair.

    No pixels are processed. `aspects_match` tells whether an outpaint
    request would skip generation entirely.
    """
    try:
        plan = plan_geometry(Dimensions(source_width, source_height), Dimensions(width, height))
    except ResizeError as exc:
        raise _http_error(exc) from exc

    return GeometryPlanResponse(
        source_aspect=plan.source_aspect,
        target_aspect=plan.target_aspect,
        aspects_match=plan.aspects_match,
        crop_rect=RectModel(
            x=plan.crop_rect.x,
            y=plan.crop_rect.y,
            width=plan.crop_rect.width,
            height=plan.crop_rect.height,
        ),
        pad_canvas=PadCanvasModel(
            canvas_width=plan.pad_canvas.canvas_width,
            canvas_height=plan.pad_canvas.canvas_height,
            draw_x=plan.pad_canvas.draw_x,
            draw_y=plan.pad_canvas.draw_y,
        ),
    )


@router.post(
    "/resize",
    tags=["resize"],
    summary="Center-crop and scale an image to exact dimensions",
    responses={200: {"content": {"image/png": {}, "image/jpeg": {}, "image/webp": {}}}},
)
async def resize(
    image: UploadFile = File(..., description="Source image (PNG, JPEG or WEBP)."),
    width: int = Form(..., description="Target width in pixels."),
    height: int = Form(..., description="Target height in pixels."),
) -> Response:
    """
    Crop the largest centered region matching the target aspect ratio and
    scale it to exactly `width` x `height`. No network access; the output
    keeps the upload's format.
    """
    target = Dimensions(width, height)
    data = await image.read()
    try:
        encoded = await run_in_threadpool(resize_upload, data, target)
    except ResizeError as exc:
        raise _http_error(exc) from exc

    return Response(
        content=encoded.data,
        media_type=encoded.mime_type,
        headers={"X-Resize-Mode": ResizeMode.CROP.value},
    )


@router.post(
    "/outpaint",
    tags=["resize"],
    summary="Extend an image with AI outpainting, then scale to exact dimensions",
    responses={200: {"content": {"image/png": {}}}},
)
async def outpaint(
    image: UploadFile = File(..., description="Source image (PNG, JPEG or WEBP)."),
    width: int = Form(..., description="Target width in pixels."),
    height: int = Form(..., description="Target height in pixels."),
    prompt: str | None = Form(default=None, description="Optional custom outpainting instruction."),
    api_key: str | None = Form(default=None, description="Gemini API key for this request."),
    x_api_key: str | None = Header(default=None),
) -> Response:
    """
    Pad the image to the target aspect ratio, let the image model fill the
    transparent margins, and rescale the result to exactly `width` x `height`.

    When the source already matches the target aspect (within 0.01) the model
    is not called; the response header `X-Outpaint-Path` reports which path
    was taken. Failures are not retried.
    """
    target = Dimensions(width, height)
    data = await image.read()
    try:
        encoded, short_circuit = await run_in_threadpool(
            lambda: outpaint_upload(
                data,
                target,
                api_key=_resolve_api_key(api_key, x_api_key),
                prompt=prompt,
            )
        )
    except ResizeError as exc:
        raise _http_error(exc) from exc

    return Response(
        content=encoded.data,
        media_type=encoded.mime_type,
        headers={
            "X-Resize-Mode": ResizeMode.OUTPAINT.value,
            "X-Outpaint-Path": "short-circuit" if short_circuit else "generated",
        },
    )


@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    tags=["analysis"],
    summary="Describe the composition of an image",
)
async def analyze(
    image: UploadFile = File(..., description="Image to analyze."),
    api_key: str | None = Form(default=None, description="Gemini API key for this request."),
    x_api_key: str | None = Header(default=None),
) -> AnalysisResponse:
    """
    Informational only. Always returns 200; failures are reported as a fixed
    message in `analysis`.
    """
    data = await image.read()
    mime_type = sniff_mime_type(data, default=image.content_type or "image/png")
    text = await run_in_threadpool(
        lambda: analyze_image_composition(
            data,
            mime_type,
            api_key=_resolve_api_key(api_key, x_api_key),
        )
    )
    return AnalysisResponse(analysis=text)
