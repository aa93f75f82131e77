from __future__ import annotations

from dataclasses import dataclass

from resizer.services.errors import InvalidDimensions


@dataclass(frozen=True, slots=True)
class Dimensions:
    """Target size of a resize request, in pixels."""

    width: int
    height: int

    def validate(self) -> "Dimensions":
        """Raise `InvalidDimensions` unless both sides are strictly positive."""
        if self.width <= 0 or self.height <= 0:
            raise InvalidDimensions(self.width, self.height)
        return self

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True, slots=True)
class Rect:
    """
    Rectangle in source-image pixel coordinates.

    Coordinates are kept as floats so that a crop can start at a sub-pixel
    offset; the resampler honours the fractional box.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def box(self) -> tuple[float, float, float, float]:
        """(left, upper, right, lower), the box form Pillow expects."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(frozen=True, slots=True)
class PadCanvas:
    """
    Canvas that contains the full source image at the target aspect ratio.

    `draw_x`/`draw_y` are where the source's top-left corner lands; every
    canvas pixel outside the drawn source is transparent.
    """

    canvas_width: float
    canvas_height: float
    draw_x: float
    draw_y: float

    @property
    def pixel_size(self) -> tuple[int, int]:
        # Truncate, but absorb float error so a grown axis never ends up one
        # pixel short of the source it must contain.
        return (int(self.canvas_width + 1e-6), int(self.canvas_height + 1e-6))

    def pixel_offset(self, source_width: int, source_height: int) -> tuple[int, int]:
        """Integer paste offset for a source of the given size."""
        canvas_w, canvas_h = self.pixel_size
        return ((canvas_w - source_width) // 2, (canvas_h - source_height) // 2)


@dataclass(frozen=True, slots=True)
class GeometryPlan:
    """Crop and pad geometry for one source/target pair, without pixels."""

    source: Dimensions
    target: Dimensions
    source_aspect: float
    target_aspect: float
    # True when outpainting would short-circuit (aspects already match).
    aspects_match: bool
    crop_rect: Rect
    pad_canvas: PadCanvas
