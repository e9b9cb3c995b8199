"""Tests for the text generation client."""

import json

import pytest
from pytest_httpx import HTTPXMock

from otcsmigrate.client.llm import AnthropicTextGenerator, TextGenerationError

MESSAGES_URL = "https://api.anthropic.com/v1/messages"


class TestAnthropicTextGenerator:
    """Tests for AnthropicTextGenerator."""

    def test_returns_first_text_block(self, httpx_mock: HTTPXMock) -> None:
        """Should send the prompt and return the text block."""
        httpx_mock.add_response(
            method="POST",
            url=MESSAGES_URL,
            match_headers={"x-api-key": "sk-test", "anthropic-version": "2023-06-01"},
            json={"content": [{"type": "text", "text": "Summary"}]},
        )

        with AnthropicTextGenerator("sk-test") as generator:
            assert generator.generate("Hello", max_tokens=100) == "Summary"

        payload = json.loads(httpx_mock.get_request().content)
        assert payload["max_tokens"] == 100
        assert payload["messages"] == [{"role": "user", "content": "Hello"}]

    def test_http_error(self, httpx_mock: HTTPXMock) -> None:
        """HTTP errors should raise TextGenerationError."""
        httpx_mock.add_response(method="POST", url=MESSAGES_URL, status_code=529, text="overloaded")

        with AnthropicTextGenerator("sk-test") as generator, pytest.raises(TextGenerationError, match="529"):
            generator.generate("Hello")

    def test_no_text_block(self, httpx_mock: HTTPXMock) -> None:
        """A response without text should raise TextGenerationError."""
        httpx_mock.add_response(method="POST", url=MESSAGES_URL, json={"content": []})

        with AnthropicTextGenerator("sk-test") as generator, pytest.raises(TextGenerationError):
            generator.generate("Hello")
