"""Tests for the chat-completions text service client."""

import os
from unittest.mock import Mock, patch

import pytest
import requests

from assistant.text_service import GenerativeTextClient, TextServiceError


def _response(payload):
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


class TestFromEnv:
    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=False):
            for key in ("LLM_API_URL", "LLM_MODEL", "LLM_API_KEY", "LLM_TIMEOUT"):
                os.environ.pop(key, None)
            client = GenerativeTextClient.from_env()

        assert client.url == "http://localhost:8000"
        assert client.api_key is None
        assert client.timeout == 60

    def test_custom_values(self):
        env = {
            "LLM_API_URL": "http://llm.internal:9000/",
            "LLM_MODEL": "local-model",
            "LLM_API_KEY": "secret",
            "LLM_TIMEOUT": "15",
        }
        with patch.dict(os.environ, env):
            client = GenerativeTextClient.from_env()

        assert client.url == "http://llm.internal:9000"
        assert client.model == "local-model"
        assert client.api_key == "secret"
        assert client.timeout == 15

    def test_invalid_timeout_uses_default(self):
        with patch.dict(os.environ, {"LLM_TIMEOUT": "soon"}):
            assert GenerativeTextClient.from_env().timeout == 60


class TestGenerate:
    def test_returns_first_choice_content(self):
        client = GenerativeTextClient(url="http://llm", model="m", api_key="k", timeout=5)
        payload = {"choices": [{"message": {"content": "Trim slow-moving stock."}}]}

        with patch("assistant.text_service.requests.post", return_value=_response(payload)) as post:
            reply = client.generate("prompt text")

        assert reply == "Trim slow-moving stock."
        args, kwargs = post.call_args
        assert args[0] == "http://llm/v1/chat/completions"
        assert kwargs["json"]["messages"] == [{"role": "user", "content": "prompt text"}]
        assert kwargs["json"]["model"] == "m"
        assert kwargs["headers"]["Authorization"] == "Bearer k"
        assert kwargs["timeout"] == 5

    def test_no_auth_header_without_key(self):
        client = GenerativeTextClient(url="http://llm")
        payload = {"choices": [{"message": {"content": "ok"}}]}

        with patch("assistant.text_service.requests.post", return_value=_response(payload)) as post:
            client.generate("hi")

        assert "Authorization" not in post.call_args[1]["headers"]

    @pytest.mark.parametrize(
        "error, message",
        [
            (requests.exceptions.ConnectionError("refused"), "Cannot connect"),
            (requests.exceptions.Timeout("slow"), "timed out"),
            (requests.exceptions.HTTPError("500"), "call failed"),
        ],
    )
    def test_transport_errors_wrapped(self, error, message):
        client = GenerativeTextClient(url="http://llm")

        with patch("assistant.text_service.requests.post", side_effect=error):
            with pytest.raises(TextServiceError, match=message):
                client.generate("hi")

    @pytest.mark.parametrize("payload", [{}, {"choices": []}, {"choices": [{"message": None}]}])
    def test_malformed_payload_wrapped(self, payload):
        client = GenerativeTextClient(url="http://llm")

        with patch("assistant.text_service.requests.post", return_value=_response(payload)):
            with pytest.raises(TextServiceError, match="Unexpected text service response"):
                client.generate("hi")
