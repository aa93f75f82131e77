"""Shared fixtures: small synthetic images encoded in memory."""

import base64
from io import BytesIO
from typing import Callable

import pytest
from PIL import Image


def _encode(image: Image.Image, image_format: str) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


@pytest.fixture
def make_image() -> Callable[..., Image.Image]:
    """Build a solid-color RGB raster."""

    def factory(width: int, height: int, color=(200, 30, 30)) -> Image.Image:
        return Image.new("RGB", (width, height), color=color)

    return factory


@pytest.fixture
def make_image_bytes(make_image) -> Callable[..., bytes]:
    """Build a solid-color image encoded as PNG (or another Pillow format)."""

    def factory(width: int, height: int, color=(200, 30, 30), image_format: str = "PNG") -> bytes:
        return _encode(make_image(width, height, color), image_format)

    return factory


@pytest.fixture
def image_response() -> Callable[..., dict]:
    """Build a `generateContent` payload whose first part is an inline PNG."""

    def factory(width: int, height: int, color=(10, 120, 200)) -> dict:
        png = _encode(Image.new("RGB", (width, height), color=color), "PNG")
        return {
            "candidates": [
                {
                    "content": {
                        "role": "model",
                        "parts": [
                            {"text": "Here is the extended image."},
                            {
                                "inlineData": {
                                    "mimeType": "image/png",
                                    "data": base64.b64encode(png).decode("utf-8"),
                                }
                            },
                        ],
                    },
                    "finishReason": "STOP",
                }
            ]
        }

    return factory
