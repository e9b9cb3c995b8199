"""HTTP client for the OpenText Content Server REST API.

This module provides:
- OTCSClient: Ticket-authenticated client over httpx
- Node metadata, paged folder listing and folder creation
- Document upload, version upload and content download
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from otcsmigrate.core.config import ServerConfig

logger = logging.getLogger(__name__)

TICKET_HEADER = "OTCSTicket"
DEFAULT_PAGE_SIZE = 100


class NodeTypes:
    """Content Server subtype numbers used by the migration."""

    FOLDER = 0
    DOCUMENT = 144
    PROJECT = 202


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed or the session ticket is no longer valid."""


class ConflictError(APIError):
    """Name conflict or concurrent modification."""


class NotFoundError(APIError):
    """Node not found."""


def parse_server_date(value: str | None) -> datetime | None:
    """Parse a Content Server date; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class ServerNode:
    """Node metadata from the server."""

    id: int
    name: str
    type: int
    parent_id: int | None
    size: int
    mime_type: str | None
    modify_date: datetime | None
    container: bool

    @property
    def is_folder(self) -> bool:
        return self.type == NodeTypes.FOLDER

    @classmethod
    def from_properties(cls, props: dict[str, Any]) -> ServerNode:
        """Create from a "properties" object of an API response."""
        node_type = int(props.get("type", -1))
        return cls(
            id=int(props["id"]),
            name=props.get("name", ""),
            type=node_type,
            parent_id=props.get("parent_id"),
            size=int(props.get("size") or 0),
            mime_type=props.get("mime_type"),
            modify_date=parse_server_date(props.get("modify_date")),
            container=bool(
                props.get("container")
                or node_type in (NodeTypes.FOLDER, NodeTypes.PROJECT)
            ),
        )


@dataclass
class FolderPage:
    """One page of a folder listing."""

    items: list[ServerNode]
    page: int
    page_total: int
    total_count: int

    @property
    def has_more(self) -> bool:
        return self.page < self.page_total


def _extract_properties(data: Any) -> dict[str, Any]:
    """Pull node properties out of the v2 response envelope."""
    results = data.get("results") if isinstance(data, dict) else None
    if isinstance(results, dict):
        props = (results.get("data") or {}).get("properties")
        if props:
            return dict(props)
        if "id" in results:
            return dict(results)
    raise APIError("Unable to extract node properties from response")


class OTCSClient:
    """HTTP client for Content Server.

    Usage:
        with OTCSClient(ServerConfig(...)) as client:
            client.authenticate()
            page = client.get_subnodes(2000)
    """

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server connection settings.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._ticket: str | None = None
        if not config.verify_ssl:
            logger.warning(
                f"TLS certificate verification is disabled for {config.base_url}"
            )
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def ticket(self) -> str | None:
        return self._ticket

    def set_ticket(self, ticket: str) -> None:
        self._ticket = ticket

    def is_authenticated(self) -> bool:
        return self._ticket is not None

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> OTCSClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _headers(self) -> dict[str, str]:
        return {TICKET_HEADER: self._ticket} if self._ticket else {}

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code < 400:
            return response

        message = f"OTCS API Error: {response.status_code}"
        try:
            body = response.json()
            message = body.get("error") or body.get("errorDetail") or message
        except ValueError:
            message = response.text or message

        if response.status_code == 401:
            raise AuthenticationError(message, 401)
        if response.status_code == 404:
            raise NotFoundError(message, 404)
        if response.status_code == 409:
            raise ConflictError(message, 409)
        raise APIError(message, response.status_code)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        response = self._client.request(method, path, headers=headers, **kwargs)
        return self._handle_response(response)

    # === Session ===

    def authenticate(self) -> str:
        """Obtain a session ticket.

        Returns:
            The ticket, also stored on the client.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """
        form = {
            "username": self._config.username,
            "password": self._config.password,
        }
        if self._config.domain:
            form["domain"] = self._config.domain

        response = self._client.post("/v1/auth", data=form)
        if response.status_code >= 400:
            raise AuthenticationError(
                f"Authentication failed: {response.status_code} - {response.text}",
                response.status_code,
            )
        self._ticket = response.json()["ticket"]
        logger.debug(f"Authenticated to {self.base_url} as {self._config.username}")
        return self._ticket

    def validate_session(self) -> bool:
        """Check whether the current ticket is still accepted."""
        if not self._ticket:
            return False
        try:
            response = self._client.head("/v2/auth", headers=self._headers())
            return response.status_code < 400
        except httpx.RequestError:
            return False

    def logout(self) -> None:
        """Invalidate the ticket on the server."""
        if not self._ticket:
            return
        self._client.delete("/v2/auth", headers=self._headers())
        self._ticket = None

    # === Nodes ===

    def get_node(self, node_id: int) -> ServerNode:
        """Get node metadata.

        Raises:
            NotFoundError: If the node does not exist.
        """
        response = self._request("GET", f"/v2/nodes/{node_id}")
        return ServerNode.from_properties(_extract_properties(response.json()))

    def get_subnodes(
        self,
        node_id: int,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> FolderPage:
        """List one page of a container's children."""
        response = self._request(
            "GET",
            f"/v2/nodes/{node_id}/nodes",
            params={"page": str(page), "limit": str(limit)},
        )
        data = response.json()
        items = [
            ServerNode.from_properties(item["data"]["properties"])
            for item in data.get("results") or []
            if (item.get("data") or {}).get("properties")
        ]
        paging = (data.get("collection") or {}).get("paging") or {}
        return FolderPage(
            items=items,
            page=int(paging.get("page", page)),
            page_total=int(paging.get("page_total", 1)),
            total_count=int(paging.get("total_count", len(items))),
        )

    def find_child_by_name(self, parent_id: int, name: str) -> ServerNode | None:
        """Find a direct child by exact name."""
        response = self._request(
            "GET",
            f"/v2/nodes/{parent_id}/nodes",
            params={"where_name": name, "limit": "1"},
        )
        for item in response.json().get("results") or []:
            props = (item.get("data") or {}).get("properties")
            if props:
                return ServerNode.from_properties(props)
        return None

    # === Folders ===

    def create_folder(self, parent_id: int, name: str) -> int:
        """Create a folder and return its node ID."""
        response = self._request(
            "POST",
            "/v2/nodes",
            data={
                "type": str(NodeTypes.FOLDER),
                "parent_id": str(parent_id),
                "name": name,
            },
        )
        return int(_extract_properties(response.json())["id"])

    def create_folder_path(self, parent_id: int, path: str) -> list[int]:
        """Create every missing folder along a "/"-separated path.

        Existing folders are reused, so calling this twice is harmless.

        Returns:
            Node IDs of each path component, outermost first.
        """
        ids: list[int] = []
        current = parent_id
        for part in (p for p in path.split("/") if p.strip()):
            existing = self.find_child_by_name(current, part)
            current = existing.id if existing else self.create_folder(current, part)
            ids.append(current)
        return ids

    # === Content ===

    def upload_document(
        self,
        parent_id: int,
        name: str,
        content: bytes,
        mime_type: str,
    ) -> int:
        """Create a document node and return its ID.

        Raises:
            ConflictError: If a node with that name already exists.
        """
        response = self._request(
            "POST",
            "/v2/nodes",
            data={
                "type": str(NodeTypes.DOCUMENT),
                "parent_id": str(parent_id),
                "name": name,
            },
            files={"file": (name, content, mime_type)},
        )
        return int(_extract_properties(response.json())["id"])

    def add_version(
        self,
        node_id: int,
        name: str,
        content: bytes,
        mime_type: str,
    ) -> int:
        """Add a new version to an existing document; returns the node ID."""
        self._request(
            "POST",
            f"/v2/nodes/{node_id}/versions",
            files={"file": (name, content, mime_type)},
        )
        return node_id

    def get_content(self, node_id: int) -> bytes:
        """Download the current version of a document."""
        return self._request("GET", f"/v2/nodes/{node_id}/content").content
