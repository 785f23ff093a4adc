from unittest.mock import MagicMock, Mock, patch

import httpx
import pytest

from hostel_assistant.services.llm import LLMError, OpenAICompatibleProvider


@pytest.fixture
def http_client():
    with patch("hostel_assistant.services.llm.openai_provider.httpx.Client") as client_cls:
        client = MagicMock()
        client_cls.return_value.__enter__.return_value = client
        yield client_cls, client


def make_response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.json.return_value = payload or {}
    return response


class TestOpenAICompatibleProvider:
    def test_posts_chat_completion(self, http_client):
        client_cls, client = http_client
        client.post.return_value = make_response(
            payload={
                "model": "llama-3.3-70b-versatile",
                "choices": [{"message": {"content": "hello"}}],
                "usage": {"total_tokens": 12},
            }
        )
        provider = OpenAICompatibleProvider("key", "llama-3.3-70b-versatile", base_url="https://llm.test/v1/")

        response = provider.generate([{"role": "user", "content": "hi"}], max_tokens=50, timeout_seconds=8)

        assert response.content == "hello"
        assert response.usage == {"total_tokens": 12}
        client_cls.assert_called_once_with(timeout=8)
        url = client.post.call_args.args[0]
        kwargs = client.post.call_args.kwargs
        assert url == "https://llm.test/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer key"
        assert kwargs["json"]["max_tokens"] == 50
        assert "response_format" not in kwargs["json"]

    def test_sends_response_format(self, http_client):
        _, client = http_client
        client.post.return_value = make_response(payload={"choices": [{"message": {"content": "{}"}}]})
        provider = OpenAICompatibleProvider("key", "m")

        provider.generate([], model="other", response_format={"type": "json_object"})

        payload = client.post.call_args.kwargs["json"]
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["model"] == "other"

    def test_empty_choices(self, http_client):
        _, client = http_client
        client.post.return_value = make_response(payload={"choices": []})

        response = OpenAICompatibleProvider("key", "m").generate([])

        assert response.content == ""
        assert response.model == "m"

    def test_http_error_status(self, http_client):
        _, client = http_client
        client.post.return_value = make_response(status_code=429, text="rate limited")

        with pytest.raises(LLMError) as exc_info:
            OpenAICompatibleProvider("key", "m").generate([])

        assert exc_info.value.status_code == 429

    def test_transport_error(self, http_client):
        _, client = http_client
        client.post.side_effect = httpx.ConnectTimeout("timed out")

        with pytest.raises(LLMError):
            OpenAICompatibleProvider("key", "m").generate([])

    def test_non_json_body(self, http_client):
        _, client = http_client
        response = make_response()
        response.json.side_effect = ValueError("bad json")
        client.post.return_value = response

        with pytest.raises(LLMError):
            OpenAICompatibleProvider("key", "m").generate([])

    @pytest.mark.parametrize(
        "payload",
        [
            ["not", "an", "object"],
            {"choices": ["not-a-message-object"]},
            {"choices": [{"message": "text"}]},
            {"choices": {"0": {}}},
            {"choices": [{"message": {"content": {"nested": True}}}]},
        ],
    )
    def test_malformed_body_raises_llm_error(self, http_client, payload):
        _, client = http_client
        client.post.return_value = make_response(payload=payload)

        with pytest.raises(LLMError):
            OpenAICompatibleProvider("key", "m").generate([])
