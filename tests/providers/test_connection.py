"""
Tests for the provider connection check.
"""

from unittest.mock import patch, MagicMock

import requests

from genbridge.core.types import ProviderProfile
from genbridge.providers.connection import check_connection


def ok_response(data):
    response = MagicMock()
    response.ok = True
    response.json.return_value = data
    return response


class TestConnection:

    @patch('requests.get')
    def test_success(self, mock_get):
        mock_get.return_value = ok_response({"data": [{"id": "model"}]})
        profile = ProviderProfile("OpenRouter", "https://openrouter.ai/api/v1", "ok")

        result = check_connection(profile)

        assert result.success
        assert result.message == "Connection successful!"
        assert mock_get.call_args[0][0] == "https://openrouter.ai/api/v1/models"
        assert mock_get.call_args[1]["headers"]["Authorization"] == "Bearer ok"

    @patch('requests.get')
    def test_comfyui_without_key(self, mock_get):
        mock_get.return_value = ok_response({"system": {"os": "posix"}})
        result = check_connection(ProviderProfile("ComfyUI", "http://127.0.0.1:8188"))

        assert result.success
        assert mock_get.call_args[0][0] == "http://127.0.0.1:8188/system_stats"

    def test_missing_key(self):
        result = check_connection(ProviderProfile("Google Gemini", "https://generativelanguage.googleapis.com"))
        assert not result.success
        assert "API Key" in result.message

    def test_unified_cannot_be_tested(self):
        result = check_connection(ProviderProfile("Seedream", "https://ark.cn-beijing.volces.com", "ark"))
        assert result.success
        assert "cannot be tested automatically" in result.message

    @patch('requests.get')
    def test_http_error(self, mock_get):
        response = MagicMock()
        response.ok = False
        response.status_code = 403
        mock_get.return_value = response

        result = check_connection(ProviderProfile("GPTGod", "https://api.gptgod.online", "bad"))
        assert not result.success
        assert result.message == "HTTP Error: 403"

    @patch('requests.get')
    def test_api_error_in_body(self, mock_get):
        mock_get.return_value = ok_response({"error": {"message": "invalid key"}})
        result = check_connection(ProviderProfile("Yunwu", "https://yunwu.ai", "bad"))
        assert not result.success
        assert result.message == "API Error: invalid key"

    @patch('requests.get')
    def test_connection_refused(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("refused")
        result = check_connection(ProviderProfile("ComfyUI", "http://127.0.0.1:8188"))
        assert not result.success
        assert "refused" in result.message
