"""Clients for external collaborators (Content Server, text generation)."""

from otcsmigrate.client.api import (
    APIError,
    AuthenticationError,
    ConflictError,
    FolderPage,
    NodeTypes,
    NotFoundError,
    OTCSClient,
    ServerNode,
)
from otcsmigrate.client.llm import (
    AnthropicTextGenerator,
    TextGenerationError,
    TextGenerator,
)

__all__ = [
    "APIError",
    "AnthropicTextGenerator",
    "AuthenticationError",
    "ConflictError",
    "FolderPage",
    "NodeTypes",
    "NotFoundError",
    "OTCSClient",
    "ServerNode",
    "TextGenerationError",
    "TextGenerator",
]
