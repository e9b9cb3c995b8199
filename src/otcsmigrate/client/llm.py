"""Text generation collaborator.

The migration engine only needs "prompt in, text out". It is used twice per
job at most: once for the batched conflict decisions of the agent strategy
and once for the executive summary of the report.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class TextGenerationError(Exception):
    """The text generator failed or returned no text."""


class TextGenerator(Protocol):
    """Protocol for prompt-to-text collaborators."""

    def generate(self, prompt: str, max_tokens: int = 2048) -> str:
        """Return the generated text for a single-turn prompt."""
        ...


class AnthropicTextGenerator:
    """TextGenerator backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 120.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._model = model
        self._client = httpx.Client(
            base_url=ANTHROPIC_API_URL,
            timeout=timeout,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> AnthropicTextGenerator:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def generate(self, prompt: str, max_tokens: int = 2048) -> str:
        """Send one user message and return the first text block.

        Raises:
            TextGenerationError: On HTTP errors or a response without text.
        """
        try:
            response = self._client.post(
                "/v1/messages",
                json={
                    "model": self._model,
                    "max_tokens": max_tokens,
                    "messages": [{"role": "user", "content": prompt}],
                },
            )
        except httpx.RequestError as e:
            raise TextGenerationError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise TextGenerationError(
                f"Text generation failed: {response.status_code} - {response.text}"
            )

        for block in response.json().get("content") or []:
            if block.get("type") == "text":
                return str(block.get("text", ""))
        raise TextGenerationError("No text in response")
