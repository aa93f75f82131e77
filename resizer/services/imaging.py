"""
Raster operations: decode, encode, crop-and-scale, scale-only, padding.

Rasters are Pillow images in mode RGB or RGBA. Padding canvases are composed
with numpy; the margin around the source is alpha 0.
"""

from __future__ import annotations

import logging
import os
from io import BytesIO

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from resizer.models.geometry import Dimensions, PadCanvas
from resizer.models.images import EncodedImage
from resizer.services.errors import DecodeError, RenderError
from resizer.services.geometry import fit_crop_rect


logger = logging.getLogger(__name__)

RESAMPLE = Image.Resampling.LANCZOS

MIME_TO_FORMAT = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/webp": "WEBP",
}

# Encoder settings matching what browsers use for canvas exports.
_SAVE_OPTIONS = {
    "JPEG": {"quality": 92},
    "WEBP": {"quality": 80},
}


DEFAULT_MAX_DIMENSION = 8192


def max_dimension() -> int:
    """Largest raster side accepted, from RESIZER_MAX_DIMENSION."""
    raw = os.getenv("RESIZER_MAX_DIMENSION")
    if raw is None:
        return DEFAULT_MAX_DIMENSION
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value <= 0:
        logger.warning(
            "Ignoring invalid RESIZER_MAX_DIMENSION=%r; using %d", raw, DEFAULT_MAX_DIMENSION
        )
        return DEFAULT_MAX_DIMENSION
    return value


def decode_image(data: bytes) -> Image.Image:
    """
    Decode uploaded bytes into an RGB or RGBA raster.

    EXIF orientation is applied so that width/height match what a viewer
    displays. Images with any transparency keep an alpha channel.
    """
    if not data:
        raise DecodeError("No image data was provided.")

    try:
        with Image.open(BytesIO(data)) as opened:
            opened.load()
            image = ImageOps.exif_transpose(opened)
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise DecodeError("The uploaded file is not a supported image.") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"The uploaded image could not be decoded: {exc}") from exc

    has_alpha = image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
    return image.convert("RGBA" if has_alpha else "RGB")


def sniff_mime_type(data: bytes, default: str = "image/png") -> str:
    """Return the MIME type of encoded image bytes, or `default` if unknown."""
    try:
        with Image.open(BytesIO(data)) as opened:
            mime_type = Image.MIME.get(opened.format or "")
    except (UnidentifiedImageError, OSError):
        return default
    if mime_type not in MIME_TO_FORMAT:
        return default
    return mime_type


def encode_image(image: Image.Image, mime_type: str = "image/png") -> bytes:
    """Encode a raster as PNG, JPEG or WEBP (anything else falls back to PNG)."""
    image_format = MIME_TO_FORMAT.get(mime_type, "PNG")
    if image_format == "JPEG" and image.mode != "RGB":
        image = image.convert("RGB")

    buffer = BytesIO()
    try:
        image.save(buffer, format=image_format, **_SAVE_OPTIONS.get(image_format, {}))
    except (OSError, ValueError) as exc:
        raise RenderError(f"Failed to encode output image as {image_format}: {exc}") from exc
    return buffer.getvalue()


def _check_renderable(target: Dimensions) -> None:
    target.validate()
    limit = max_dimension()
    if target.width > limit or target.height > limit:
        raise RenderError(
            f"Unsupported target size {target.width}x{target.height}; "
            f"each side must be at most {limit} pixels."
        )


def crop_scale(image: Image.Image, target: Dimensions) -> Image.Image:
    """
    Center-crop the source to the target aspect, then scale to exact size.

    The crop rect may have fractional edges; Pillow resamples from the exact
    box so no extra distortion is introduced beyond the filter itself.
    """
    _check_renderable(target)
    rect = fit_crop_rect(image.width, image.height, target.width, target.height)

    try:
        output = image.resize(target.size, RESAMPLE, box=rect.box)
    except (ValueError, MemoryError) as exc:
        raise RenderError(f"Failed to render {target.width}x{target.height} output: {exc}") from exc

    logger.info(
        "Crop-scaled %dx%d -> %dx%d using crop (%.1f, %.1f, %.1f, %.1f)",
        image.width,
        image.height,
        target.width,
        target.height,
        rect.x,
        rect.y,
        rect.width,
        rect.height,
    )
    return output


def scale_to(image: Image.Image, target: Dimensions) -> Image.Image:
    """Stretch the whole source onto exactly the target bounds (no cropping)."""
    _check_renderable(target)
    if image.size == target.size:
        return image.copy()

    try:
        output = image.resize(target.size, RESAMPLE)
    except (ValueError, MemoryError) as exc:
        raise RenderError(f"Failed to render {target.width}x{target.height} output: {exc}") from exc

    logger.info("Scaled %dx%d -> %dx%d", image.width, image.height, target.width, target.height)
    return output


def build_padded_canvas(image: Image.Image, canvas: PadCanvas) -> Image.Image:
    """
    Draw the source centered on a transparent RGBA canvas.

    Pixels outside the source have alpha 0; the source's own alpha (if any)
    is preserved.
    """
    canvas_w, canvas_h = canvas.pixel_size
    limit = max_dimension()
    if canvas_w > limit or canvas_h > limit:
        raise RenderError(
            f"Padding canvas {canvas_w}x{canvas_h} exceeds the {limit} pixel limit; "
            "the source and target aspect ratios are too far apart."
        )
    offset_x, offset_y = canvas.pixel_offset(image.width, image.height)

    try:
        pixels = np.zeros((canvas_h, canvas_w, 4), dtype=np.uint8)
    except (ValueError, MemoryError) as exc:
        raise RenderError(f"Failed to allocate {canvas_w}x{canvas_h} padding canvas.") from exc

    source = np.asarray(image.convert("RGBA"))
    pixels[offset_y : offset_y + image.height, offset_x : offset_x + image.width] = source

    return Image.fromarray(pixels)


def transparent_coverage(image: Image.Image) -> float:
    """Fraction of pixels that are fully transparent (0.0 for opaque modes)."""
    if image.mode != "RGBA":
        return 0.0
    alpha = np.asarray(image.getchannel("A"))
    return float(np.mean(alpha == 0))


def resize_upload(data: bytes, target: Dimensions) -> EncodedImage:
    """
    Crop-scale pipeline at the upload boundary.

    The target is validated before any decoding happens. The output keeps the
    upload's own format (PNG/JPEG/WEBP).
    """
    target.validate()
    image = decode_image(data)
    mime_type = sniff_mime_type(data)
    output = crop_scale(image, target)
    return EncodedImage(data=encode_image(output, mime_type), mime_type=mime_type)
