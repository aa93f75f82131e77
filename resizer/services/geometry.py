"""
Rect/aspect math shared by the crop and outpaint pipelines.

Everything here is pure: no pixels, no I/O. The crop rect uses "cover"
semantics (fill the target, cropping the excess); the pad canvas uses
"contain" semantics (keep the whole source, adding transparent margins).
"""

from __future__ import annotations

import logging

from resizer.models.geometry import Dimensions, GeometryPlan, PadCanvas, Rect


logger = logging.getLogger(__name__)

# Aspect ratios closer than this are treated as already matching, which
# skips outpainting entirely.
ASPECT_EPSILON = 0.01


def aspect_ratio(width: float, height: float) -> float:
    """Width divided by height. `height` must be non-zero."""
    return width / height


def aspects_equal(a: float, b: float, epsilon: float = ASPECT_EPSILON) -> bool:
    return abs(a - b) < epsilon


def fit_crop_rect(source_w: int, source_h: int, target_w: int, target_h: int) -> Rect:
    """
    Compute the largest centered rect of the source with the target's aspect.

    If the source is relatively wider than the target the width is cropped
    symmetrically and the full height is kept; if it is relatively taller the
    height is cropped instead. When the aspects already match (within
    `ASPECT_EPSILON`) the full source rect is returned unmodified.
    """
    aspect_src = aspect_ratio(source_w, source_h)
    aspect_tgt = aspect_ratio(target_w, target_h)

    if aspects_equal(aspect_src, aspect_tgt):
        return Rect(x=0.0, y=0.0, width=float(source_w), height=float(source_h))

    if aspect_src > aspect_tgt:
        # Source is wider: crop left/right.
        crop_w = source_h * aspect_tgt
        return Rect(x=(source_w - crop_w) / 2, y=0.0, width=crop_w, height=float(source_h))

    # Source is taller: crop top/bottom.
    crop_h = source_w / aspect_tgt
    return Rect(x=0.0, y=(source_h - crop_h) / 2, width=float(source_w), height=crop_h)


def fit_pad_canvas(source_w: int, source_h: int, target_w: int, target_h: int) -> PadCanvas:
    """
    Compute the smallest target-aspect canvas that contains the source unscaled.

    A relatively wider source grows the canvas height (padding top/bottom);
    a relatively taller one grows the width (padding left/right). The source
    is centered on the grown axis.
    """
    aspect_src = aspect_ratio(source_w, source_h)
    aspect_tgt = aspect_ratio(target_w, target_h)

    canvas_w = float(source_w)
    canvas_h = float(source_h)
    if aspect_src > aspect_tgt:
        canvas_h = source_w / aspect_tgt
    elif aspect_src < aspect_tgt:
        canvas_w = source_h * aspect_tgt

    return PadCanvas(
        canvas_width=canvas_w,
        canvas_height=canvas_h,
        draw_x=(canvas_w - source_w) / 2,
        draw_y=(canvas_h - source_h) / 2,
    )


def plan_geometry(source: Dimensions, target: Dimensions) -> GeometryPlan:
    """Report crop and pad geometry for a source/target pair."""
    source.validate()
    target.validate()

    source_aspect = aspect_ratio(source.width, source.height)
    target_aspect = aspect_ratio(target.width, target.height)
    plan = GeometryPlan(
        source=source,
        target=target,
        source_aspect=source_aspect,
        target_aspect=target_aspect,
        aspects_match=aspects_equal(source_aspect, target_aspect),
        crop_rect=fit_crop_rect(source.width, source.height, target.width, target.height),
        pad_canvas=fit_pad_canvas(source.width, source.height, target.width, target.height),
    )
    logger.debug(
        "Planned %dx%d -> %dx%d: crop=%s pad=%s",
        source.width,
        source.height,
        target.width,
        target.height,
        plan.crop_rect,
        plan.pad_canvas,
    )
    return plan
