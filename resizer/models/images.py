from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class EncodedImage:
    """Encoded image ready to be returned to a caller."""

    data: bytes
    mime_type: str = "image/png"
