"""Composition analysis degrades to fixed messages instead of raising."""

from unittest.mock import Mock, patch

from resizer.services.composition import (
    ANALYSIS_FAILED_MESSAGE,
    ANALYSIS_INSTRUCTION,
    MISSING_KEY_MESSAGE,
    analyze_image_composition,
)
from resizer.services.errors import TransportError


def test_returns_model_text():
    client = Mock()
    client.describe_image.return_value = "  Subject sits on the left third.  "

    text = analyze_image_composition(b"img", "image/png", api_key="key", client=client)

    assert text == "Subject sits on the left third."
    client.describe_image.assert_called_once_with(b"img", "image/png", ANALYSIS_INSTRUCTION)


def test_missing_key_message():
    client = Mock()
    for api_key in (None, "", " "):
        assert analyze_image_composition(b"img", "image/png", api_key=api_key, client=client) == MISSING_KEY_MESSAGE
    client.describe_image.assert_not_called()


def test_transport_failure_message():
    client = Mock()
    client.describe_image.side_effect = TransportError("down")
    assert analyze_image_composition(b"img", "image/png", api_key="key", client=client) == ANALYSIS_FAILED_MESSAGE


def test_empty_text_message():
    client = Mock()
    client.describe_image.return_value = ""
    assert analyze_image_composition(b"img", "image/png", api_key="key", client=client) == ANALYSIS_FAILED_MESSAGE


def test_builds_default_client_from_key():
    with patch("resizer.services.composition.GeminiHTTPClient") as client_cls:
        client_cls.return_value.describe_image.return_value = "Balanced."
        text = analyze_image_composition(b"img", "image/png", api_key="key")

    client_cls.assert_called_once_with(api_key="key")
    assert text == "Balanced."
