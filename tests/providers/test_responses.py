"""
Tests for the per-family response parsers.
"""

import base64

import pytest
from unittest.mock import patch, MagicMock

from genbridge.core.error_handler import ProtocolError, TransportError, UpstreamRefusal
from genbridge.core.types import ProtocolFamily
from genbridge.core.utils import to_data_url
from genbridge.providers.responses import (
    extract_diagnostic,
    first_output_image,
    parse_response,
    view_url,
)

REFUSAL = "I'm sorry, I can't generate that image because it violates the content policy."


def b64(data):
    return base64.b64encode(data).decode("ascii")


class TestGeminiResponse:
    """
    Tests for both Gemini families.
    """

    @pytest.mark.parametrize("family", [ProtocolFamily.GEMINI_NATIVE, ProtocolFamily.GEMINI_COMPATIBLE])
    def test_inline_image(self, family, png_bytes):
        body = {"candidates": [{"content": {"parts": [
            {"text": "Here is your fox."},
            {"inlineData": {"mimeType": "image/png", "data": b64(png_bytes)}},
        ]}, "finishReason": "STOP"}]}

        result = parse_response(body, family)

        assert result.image_bytes == png_bytes
        assert result.mime_type == "image/png"
        assert result.family == family

    def test_snake_case_inline_data(self, jpeg_bytes):
        body = {"candidates": [{"content": {"parts": [
            {"inline_data": {"mime_type": "image/jpeg", "data": b64(jpeg_bytes)}},
        ]}}]}
        result = parse_response(body, ProtocolFamily.GEMINI_COMPATIBLE)
        assert result.image_bytes == jpeg_bytes
        assert result.mime_type == "image/jpeg"

    @pytest.mark.parametrize("family", [ProtocolFamily.GEMINI_NATIVE, ProtocolFamily.GEMINI_COMPATIBLE])
    def test_text_refusal(self, family):
        body = {"candidates": [{"content": {"parts": [{"text": REFUSAL}]}, "finishReason": "STOP"}]}

        with pytest.raises(UpstreamRefusal) as excinfo:
            parse_response(body, family)

        assert REFUSAL in excinfo.value.message
        assert excinfo.value.family == family.value

    def test_blocked_prompt(self):
        body = {"promptFeedback": {"blockReason": "SAFETY"}}
        with pytest.raises(UpstreamRefusal, match="Prompt blocked: SAFETY"):
            parse_response(body, ProtocolFamily.GEMINI_NATIVE)

    def test_finish_reason(self):
        body = {"candidates": [{"content": {"parts": []}, "finishReason": "IMAGE_SAFETY"}]}
        with pytest.raises(UpstreamRefusal, match="IMAGE_SAFETY"):
            parse_response(body, ProtocolFamily.GEMINI_NATIVE)

    def test_error_object(self):
        body = {"error": {"code": 400, "message": "API key not valid", "status": "INVALID_ARGUMENT"}}
        with pytest.raises(UpstreamRefusal, match="API key not valid"):
            parse_response(body, ProtocolFamily.GEMINI_NATIVE)

    def test_wrong_shape_is_protocol_error(self):
        # A chat completion parsed as Gemini: family mismatch
        body = {"id": "x", "object": "chat.completion"}
        with pytest.raises(ProtocolError) as excinfo:
            parse_response(body, ProtocolFamily.GEMINI_COMPATIBLE)
        assert excinfo.value.family == "gemini-compatible"

    def test_non_dict_body(self):
        with pytest.raises(ProtocolError):
            parse_response(["not", "an", "object"], ProtocolFamily.GEMINI_NATIVE)

    def test_corrupted_inline_data(self, png_bytes):
        corrupted = b64(png_bytes)[:12] + "$$@@" + b64(png_bytes)[12:]
        body = {"candidates": [{"content": {"parts": [
            {"inlineData": {"mimeType": "image/png", "data": corrupted}},
        ]}}]}

        with pytest.raises(ProtocolError, match="not valid base64") as excinfo:
            parse_response(body, ProtocolFamily.GEMINI_NATIVE)
        assert excinfo.value.family == "gemini-native"


class TestChatCompletionsResponse:
    """
    Tests for the chat-completions family.
    """

    def test_message_images(self, png_bytes):
        body = {"choices": [{"message": {
            "role": "assistant",
            "content": "",
            "images": [{"type": "image_url", "image_url": {"url": to_data_url(png_bytes)}}],
        }}]}
        result = parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)
        assert result.image_bytes == png_bytes
        assert result.mime_type == "image/png"

    def test_markdown_image_url(self):
        body = {"choices": [{"message": {
            "content": "Here you go:\n![image](https://cdn.example.com/out/fox.jpg)"
        }}]}
        result = parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)
        assert result.image_bytes is None
        assert result.image_remote_ref == "https://cdn.example.com/out/fox.jpg"
        assert result.mime_type == "image/jpeg"

    def test_markdown_data_url(self, png_bytes):
        body = {"choices": [{"message": {"content": f"![fox]({to_data_url(png_bytes)})"}}]}
        result = parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)
        assert result.image_bytes == png_bytes

    def test_plain_url_in_text(self):
        body = {"choices": [{"message": {"content": "Generated: https://cdn.example.com/a/b.png done"}}]}
        result = parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)
        assert result.image_remote_ref == "https://cdn.example.com/a/b.png"

    def test_list_content(self):
        body = {"choices": [{"message": {"content": [
            {"type": "text", "text": "Here"},
            {"type": "image_url", "image_url": {"url": "https://cdn.example.com/x.webp"}},
        ]}}]}
        result = parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)
        assert result.image_remote_ref == "https://cdn.example.com/x.webp"
        assert result.mime_type == "image/webp"

    def test_refusal(self):
        body = {"choices": [{"message": {"role": "assistant", "content": REFUSAL}, "finish_reason": "stop"}]}

        with pytest.raises(UpstreamRefusal) as excinfo:
            parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)

        assert REFUSAL in str(excinfo.value)

    def test_error_object(self):
        body = {"error": {"message": "Insufficient credits", "code": 402}}
        with pytest.raises(UpstreamRefusal, match="402: Insufficient credits"):
            parse_response(body, ProtocolFamily.CHAT_COMPLETIONS)

    def test_wrong_shape(self):
        with pytest.raises(ProtocolError):
            parse_response({"candidates": []}, ProtocolFamily.CHAT_COMPLETIONS)


class TestUnifiedResponse:
    """
    Tests for the unified image endpoint.
    """

    def test_url(self):
        body = {"model": "doubao", "data": [{"url": "https://ark.example.com/img.jpeg", "size": "2048x2048"}]}
        result = parse_response(body, ProtocolFamily.UNIFIED_IMAGE_ENDPOINT)
        assert result.image_remote_ref == "https://ark.example.com/img.jpeg"
        assert result.image_bytes is None

    def test_b64_json(self, png_bytes):
        body = {"data": [{"b64_json": b64(png_bytes)}]}
        result = parse_response(body, ProtocolFamily.UNIFIED_IMAGE_ENDPOINT)
        assert result.image_bytes == png_bytes
        assert result.mime_type == "image/png"

    def test_refusal(self):
        body = {"error": {"code": "OutputImageSensitiveContentDetected", "message": REFUSAL}}

        with pytest.raises(UpstreamRefusal) as excinfo:
            parse_response(body, ProtocolFamily.UNIFIED_IMAGE_ENDPOINT)

        assert REFUSAL in excinfo.value.message

    def test_per_item_error(self):
        body = {"data": [{"error": {"code": "Sensitive", "message": REFUSAL}}]}
        with pytest.raises(UpstreamRefusal) as excinfo:
            parse_response(body, ProtocolFamily.UNIFIED_IMAGE_ENDPOINT)
        assert REFUSAL in excinfo.value.message

    def test_empty_data_falls_back_to_raw_body(self):
        body = {"data": [], "usage": {"generated_images": 0}}
        with pytest.raises(UpstreamRefusal) as excinfo:
            parse_response(body, ProtocolFamily.UNIFIED_IMAGE_ENDPOINT)
        assert "generated_images" in excinfo.value.message


class TestGraphResponse:
    """
    Tests for graph-executor history entries.
    """

    ENTRY = {
        "outputs": {"9": {"images": [{"filename": "GenBridge_ZImage_00001_.png",
                                      "subfolder": "", "type": "output"}]}},
        "status": {"status_str": "success", "completed": True},
    }

    def test_first_output_image(self):
        assert first_output_image(self.ENTRY)["filename"] == "GenBridge_ZImage_00001_.png"
        assert first_output_image({"outputs": {}}) is None

    def test_view_url(self):
        url = view_url("http://127.0.0.1:8188/", {"filename": "a b.png", "subfolder": "x", "type": "output"})
        assert url == "http://127.0.0.1:8188/view?filename=a+b.png&subfolder=x&type=output"

    @patch('requests.get')
    def test_fetches_view(self, mock_get, png_bytes):
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.content = png_bytes
        mock_get.return_value = mock_response

        result = parse_response(self.ENTRY, ProtocolFamily.GRAPH_EXECUTOR, base_url="http://127.0.0.1:8188")

        assert result.image_bytes == png_bytes
        assert result.mime_type == "image/png"
        called_url = mock_get.call_args[0][0]
        assert called_url.startswith("http://127.0.0.1:8188/view?")
        assert "filename=GenBridge_ZImage_00001_.png" in called_url
        assert "subfolder=&type=output" in called_url

    @patch('requests.get')
    def test_view_failure(self, mock_get):
        mock_response = MagicMock()
        mock_response.ok = False
        mock_response.status_code = 404
        mock_response.text = "Not found"
        mock_get.return_value = mock_response

        with pytest.raises(TransportError) as excinfo:
            parse_response(self.ENTRY, ProtocolFamily.GRAPH_EXECUTOR, base_url="http://127.0.0.1:8188")
        assert excinfo.value.status_code == 404

    def test_refusal(self):
        entry = {"outputs": {"9": {"text": [REFUSAL]}}, "status": {"status_str": "success"}}

        with pytest.raises(UpstreamRefusal) as excinfo:
            parse_response(entry, ProtocolFamily.GRAPH_EXECUTOR, base_url="http://127.0.0.1:8188")

        assert REFUSAL in excinfo.value.message

    def test_wrong_shape(self):
        with pytest.raises(ProtocolError):
            parse_response({"prompt_id": "42"}, ProtocolFamily.GRAPH_EXECUTOR, base_url="http://x:8188")


class TestExtractDiagnostic:
    """
    Tests for the diagnostic priority order.
    """

    def test_text_before_error(self):
        body = {"choices": [{"message": {"content": "text reply"}}], "error": {"message": "error object"}}
        assert extract_diagnostic(body) == "text reply"

    def test_error_before_raw(self):
        assert extract_diagnostic({"error": {"message": "boom"}, "other": 1}) == "boom"

    def test_raw_body_truncated(self):
        body = {"unexpected": "y" * 2000}
        diagnostic = extract_diagnostic(body)
        assert diagnostic.startswith('{"unexpected": "yyy')
        assert len(diagnostic) == 503

    def test_non_dict(self):
        assert extract_diagnostic("plain text") == "plain text"
