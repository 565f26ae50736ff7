"""
Tests for error handler.

This module tests the error taxonomy and the HTTP helper.
"""

import pytest
from unittest.mock import patch, MagicMock
import requests

from genbridge.core.error_handler import (
    GenerationError,
    ConfigurationError,
    ValidationError,
    TransportError,
    UploadError,
    UpstreamRefusal,
    GenerationTimeoutError,
    ProtocolError,
    GenerationCancelledError,
    send_json_request,
    redact_url,
    validate_configuration,
    error_report,
    truncate_text,
)


class TestErrorTaxonomy:
    """
    Tests for the exception classes.
    """

    def test_transport_error(self):
        """
        Test TransportError message formatting.
        """
        error = TransportError("Test error")
        assert str(error) == "HTTP Error: Test error"
        assert error.kind == "transport"
        assert error.status_code is None

        error = TransportError(
            message="Test error",
            status_code=404,
            response="Not found",
            endpoint="https://api.example.com"
        )
        assert str(error) == "HTTP Error: Test error (Status Code: 404) - Not found"
        assert error.endpoint == "https://api.example.com"

    def test_transport_error_truncates_body(self):
        """
        Test that long response bodies are cut to 200 characters in the message.
        """
        error = TransportError("Bad gateway", status_code=502, response="x" * 1000)
        assert str(error).endswith("x" * 200 + "...")
        assert error.response == "x" * 1000

    def test_upload_error_is_transport_error(self):
        error = UploadError("Upload failed", status_code=400)
        assert isinstance(error, TransportError)
        assert error.kind == "transport"

    def test_configuration_error(self):
        """
        Test ConfigurationError exception.
        """
        error = ConfigurationError(
            message="Test error",
            component="Gemini",
            missing_keys=["api_key", "base_url"]
        )
        assert "Configuration Error: Test error (Component: Gemini)" in str(error)
        assert "Missing Keys: api_key, base_url" in str(error)
        assert error.kind == "configuration"

    def test_validation_error(self):
        error = ValidationError("Prompt must not be empty", field="prompt")
        assert str(error) == "Validation Error: Prompt must not be empty (Field: prompt)"
        assert error.kind == "validation"

    def test_upstream_refusal_message_is_verbatim(self):
        error = UpstreamRefusal("I can't help with that request.", family="chat-completions")
        assert str(error) == "I can't help with that request."
        assert error.kind == "upstream_refusal"
        assert error.family == "chat-completions"

    def test_protocol_error_names_family(self):
        error = ProtocolError("Expected a 'choices' array", family="chat-completions")
        assert str(error) == "Protocol Error (chat-completions): Expected a 'choices' array"
        assert error.kind == "protocol"

    def test_kind_override(self):
        error = GenerationError("Unexpected", kind="internal")
        assert error.kind == "internal"
        assert GenerationCancelledError("stop").kind == "cancelled"

    def test_timeout_error(self):
        error = GenerationTimeoutError("Job timed out", job_id="42", polls=90)
        assert error.kind == "timeout"
        assert error.job_id == "42"
        assert error.polls == 90


class TestSendJsonRequest:
    """
    Tests for send_json_request.
    """

    @patch('requests.post')
    def test_success(self, mock_post):
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.json.return_value = {"data": "test"}
        mock_post.return_value = mock_response

        result = send_json_request("POST", "https://api.example.com", payload={"a": 1},
                                   headers={"X": "1"}, timeout=5)

        assert result == {"data": "test"}
        mock_post.assert_called_once_with("https://api.example.com", json={"a": 1},
                                          headers={"X": "1"}, timeout=5)

    @patch('requests.get')
    def test_get(self, mock_get):
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.json.return_value = [1, 2]
        mock_get.return_value = mock_response

        assert send_json_request("GET", "https://api.example.com") == [1, 2]

    @patch('requests.post')
    def test_http_error(self, mock_post):
        mock_response = MagicMock()
        mock_response.ok = False
        mock_response.status_code = 401
        mock_response.text = "Unauthorized"
        mock_post.return_value = mock_response

        with pytest.raises(TransportError) as excinfo:
            send_json_request("POST", "https://api.example.com", error_message="Gemini request failed")

        assert excinfo.value.status_code == 401
        assert excinfo.value.response == "Unauthorized"
        assert "Gemini request failed" in str(excinfo.value)

    @patch('requests.post')
    def test_connection_error(self, mock_post):
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransportError) as excinfo:
            send_json_request("POST", "http://127.0.0.1:8188/prompt")

        assert "Connection error" in str(excinfo.value)
        assert excinfo.value.status_code is None

    @patch('requests.post')
    def test_timeout(self, mock_post):
        mock_post.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(TransportError) as excinfo:
            send_json_request("POST", "https://api.example.com")

        assert "timed out" in str(excinfo.value)

    @patch('requests.post')
    def test_invalid_json(self, mock_post):
        mock_response = MagicMock()
        mock_response.ok = True
        mock_response.text = "<html>oops</html>"
        mock_response.json.side_effect = ValueError("No JSON")
        mock_post.return_value = mock_response

        with pytest.raises(ProtocolError) as excinfo:
            send_json_request("POST", "https://api.example.com", family="chat-completions")

        assert excinfo.value.family == "chat-completions"
        assert excinfo.value.response == "<html>oops</html>"
        assert "chat-completions" in str(excinfo.value)


class TestHelpers:
    """
    Tests for the helper functions.
    """

    def test_redact_url(self):
        url = "https://host/v1beta/models/m:generateContent?key=secret123"
        assert redact_url(url) == "https://host/v1beta/models/m:generateContent?key=***REDACTED***"
        assert redact_url("https://host/x?key=abc&alt=json") == "https://host/x?key=***REDACTED***&alt=json"
        assert redact_url("https://host/x") == "https://host/x"

    def test_validate_configuration(self):
        validate_configuration({"base_url": "https://host", "api_key": "k"}, ["base_url", "api_key"])

        with pytest.raises(ConfigurationError) as excinfo:
            validate_configuration({"base_url": "https://host", "api_key": ""}, ["base_url", "api_key"],
                                   component="Gemini")

        assert excinfo.value.missing_keys == ["api_key"]
        assert excinfo.value.component == "Gemini"

    def test_error_report(self):
        error = TransportError("Failed", status_code=500, response="boom",
                               endpoint="https://host/x?key=secret")
        report = error_report(error)

        assert report["kind"] == "transport"
        assert report["message"] == "Failed"
        assert report["status_code"] == 500
        assert report["response"] == "boom"
        assert "secret" not in report["endpoint"]

    def test_error_report_keeps_full_body(self):
        body = "<html>" + "x" * 3000 + "END_OF_PAGE</html>"
        report = error_report(ProtocolError("Not JSON", family="gemini", response=body))

        assert report["family"] == "gemini"
        assert report["response"] == body

    def test_error_report_plain_exception(self):
        report = error_report(RuntimeError("bad"))
        assert report == {"kind": "internal", "message": "bad"}

    def test_truncate_text(self):
        assert truncate_text("short") == "short"
        assert truncate_text(None) == ""
        assert truncate_text("abcdef", limit=3) == "abc..."
        assert truncate_text({"a": 1}) == "{'a': 1}"
