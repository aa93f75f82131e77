"""
Test suite for the Gemini HTTP client.

`requests.post` is patched throughout; these tests never reach the network.
"""

import base64
from unittest.mock import Mock, patch

import pytest
import requests

from resizer.models.generation import GenerationRequest
from resizer.services.errors import MissingCredential, TransportError
from resizer.services.gemini_http_client import (
    DEFAULT_BASE_URL,
    DEFAULT_IMAGE_MODEL,
    GeminiHTTPClient,
)

POST = "resizer.services.gemini_http_client.requests.post"


def _limiter(acquired: bool = True) -> Mock:
    limiter = Mock()
    limiter.acquire.return_value = acquired
    return limiter


def _http_response(status_code: int, body=None, text: str = "") -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.reason = "reason"
    if body is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = body
    return response


def _client(limiter=None, **kwargs) -> GeminiHTTPClient:
    return GeminiHTTPClient(api_key="test-key", rate_limiter=limiter or _limiter(), **kwargs)


def _request() -> GenerationRequest:
    return GenerationRequest(image_bytes=b"\x89PNG fake", mime_type="image/png", prompt_text="fill it")


def test_requires_non_empty_key():
    for api_key in (None, "", "  "):
        with pytest.raises(MissingCredential):
            GeminiHTTPClient(api_key=api_key, rate_limiter=_limiter())


def test_defaults_come_from_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_IMAGE_MODEL", "custom-image-model")
    monkeypatch.setenv("GEMINI_TIMEOUT_SECONDS", "7")
    monkeypatch.delenv("GEMINI_API_BASE_URL", raising=False)

    client = _client()
    assert client.image_model == "custom-image-model"
    assert client.timeout == 7.0
    assert client.base_url == DEFAULT_BASE_URL


def test_generate_image_posts_inline_png_and_prompt(image_response, monkeypatch):
    monkeypatch.delenv("GEMINI_IMAGE_MODEL", raising=False)
    limiter = _limiter()
    client = _client(limiter=limiter, base_url="https://example.test/v1beta/")

    with patch(POST, return_value=_http_response(200, image_response(4, 4))) as post:
        response = client.generate_image(_request())

    assert response.candidates[0].content.parts[1].inline_data.mime_type == "image/png"

    url = post.call_args.args[0]
    assert url == f"https://example.test/v1beta/models/{DEFAULT_IMAGE_MODEL}:generateContent"
    kwargs = post.call_args.kwargs
    assert kwargs["headers"]["x-goog-api-key"] == "test-key"
    parts = kwargs["json"]["contents"][0]["parts"]
    assert parts[0]["inline_data"]["mime_type"] == "image/png"
    assert base64.b64decode(parts[0]["inline_data"]["data"]) == b"\x89PNG fake"
    assert parts[1] == {"text": "fill it"}
    assert kwargs["json"]["generationConfig"]["responseModalities"] == ["IMAGE", "TEXT"]

    limiter.acquire.assert_called_once()
    limiter.report_success.assert_called_once()


def test_describe_image_returns_text():
    body = {"candidates": [{"content": {"parts": [{"text": "Centered "}, {"text": "subject."}]}}]}
    with patch(POST, return_value=_http_response(200, body)) as post:
        text = _client(text_model="text-model").describe_image(b"img", "image/jpeg", "describe")

    assert text == "Centered subject."
    assert "text-model:generateContent" in post.call_args.args[0]
    assert "generationConfig" not in post.call_args.kwargs["json"]


def test_rate_limit_response_reports_backoff_without_retry():
    limiter = _limiter()
    with patch(POST, return_value=_http_response(429, {"error": {"message": "quota"}})) as post:
        with pytest.raises(TransportError) as excinfo:
            _client(limiter=limiter).generate_image(_request())

    assert excinfo.value.status_code == 429
    assert post.call_count == 1
    limiter.report_429.assert_called_once()
    limiter.report_success.assert_not_called()


def test_authentication_failure():
    with patch(POST, return_value=_http_response(403, {"error": {"message": "API key not valid."}})):
        with pytest.raises(TransportError) as excinfo:
            _client().generate_image(_request())

    assert excinfo.value.status_code == 403
    assert "API key not valid." in excinfo.value.message


def test_server_error_carries_api_message():
    with patch(POST, return_value=_http_response(500, {"error": {"code": 500, "message": "Internal"}})) as post:
        with pytest.raises(TransportError) as excinfo:
            _client().generate_image(_request())

    assert excinfo.value.status_code == 500
    assert "Internal" in excinfo.value.message
    assert post.call_count == 1


def test_error_without_json_body_uses_text():
    with patch(POST, return_value=_http_response(502, None, text="Bad gateway")):
        with pytest.raises(TransportError) as excinfo:
            _client().generate_image(_request())
    assert "Bad gateway" in excinfo.value.message


def test_timeout_and_connection_errors_are_transport_errors():
    for failure in (requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("down")):
        with patch(POST, side_effect=failure):
            with pytest.raises(TransportError):
                _client().generate_image(_request())


def test_unparseable_success_body():
    with patch(POST, return_value=_http_response(200, None, text="<html>")):
        with pytest.raises(TransportError):
            _client().generate_image(_request())


def test_rate_limiter_timeout_skips_the_call():
    with patch(POST) as post:
        with pytest.raises(TransportError):
            _client(limiter=_limiter(acquired=False)).generate_image(_request())
    post.assert_not_called()
