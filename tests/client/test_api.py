"""Tests for the Content Server HTTP client."""

from datetime import UTC, datetime

import pytest
from pytest_httpx import HTTPXMock

from otcsmigrate.client.api import (
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    OTCSClient,
    ServerNode,
)
from otcsmigrate.core.config import ServerConfig

BASE = "http://otcs.test/api"


def make_config(domain: str | None = None) -> ServerConfig:
    """Create a ServerConfig for testing."""
    return ServerConfig(base_url="http://otcs.test", username="admin", password="secret", domain=domain)


def node_props(node_id: int, name: str, node_type: int = 144, **extra: object) -> dict[str, object]:
    props: dict[str, object] = {"id": node_id, "name": name, "type": node_type, "parent_id": 2000}
    props.update(extra)
    return props


def node_response(props: dict[str, object]) -> dict[str, object]:
    return {"results": {"data": {"properties": props}}}


@pytest.fixture
def client() -> OTCSClient:
    """Authenticated-looking client (ticket preset)."""
    c = OTCSClient(make_config())
    c.set_ticket("ticket123")
    return c


class TestServerNode:
    """Tests for ServerNode.from_properties()."""

    def test_document(self) -> None:
        """Should parse document properties."""
        node = ServerNode.from_properties(
            node_props(5, "a.pdf", size=1024, mime_type="application/pdf", modify_date="2024-01-01T10:00:00")
        )
        assert node.id == 5
        assert node.name == "a.pdf"
        assert node.size == 1024
        assert node.is_folder is False
        assert node.modify_date == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)

    def test_folder(self) -> None:
        """Type 0 should be a folder and a container."""
        node = ServerNode.from_properties(node_props(6, "Docs", node_type=0))
        assert node.is_folder is True
        assert node.container is True
        assert node.size == 0
        assert node.modify_date is None


class TestAuthentication:
    """Tests for session handling."""

    def test_authenticate(self, httpx_mock: HTTPXMock) -> None:
        """Should post form credentials and keep the ticket."""
        httpx_mock.add_response(method="POST", url=f"{BASE}/v1/auth", json={"ticket": "abc"})

        client = OTCSClient(make_config(domain="corp"))
        assert client.authenticate() == "abc"
        assert client.is_authenticated()

        request = httpx_mock.get_request()
        body = request.content.decode()
        assert "username=admin" in body
        assert "password=secret" in body
        assert "domain=corp" in body

    def test_authenticate_rejected(self, httpx_mock: HTTPXMock) -> None:
        """Rejected credentials should raise AuthenticationError."""
        httpx_mock.add_response(method="POST", url=f"{BASE}/v1/auth", status_code=401, text="bad")

        client = OTCSClient(make_config())
        with pytest.raises(AuthenticationError):
            client.authenticate()
        assert not client.is_authenticated()

    def test_ticket_header_sent(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Requests should carry the OTCSTicket header."""
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/v2/nodes/5",
            match_headers={"OTCSTicket": "ticket123"},
            json=node_response(node_props(5, "a.pdf")),
        )
        assert client.get_node(5).name == "a.pdf"

    def test_logout(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Logout should delete the session and forget the ticket."""
        httpx_mock.add_response(method="DELETE", url=f"{BASE}/v2/auth")
        client.logout()
        assert client.ticket is None

    def test_validate_session(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """An accepted HEAD request means the session is valid."""
        httpx_mock.add_response(method="HEAD", url=f"{BASE}/v2/auth")
        assert client.validate_session() is True


class TestErrors:
    """Tests for error mapping."""

    @pytest.mark.parametrize(
        ("status", "error_type"),
        [(401, AuthenticationError), (404, NotFoundError), (409, ConflictError), (500, APIError)],
    )
    def test_status_mapping(
        self,
        httpx_mock: HTTPXMock,
        client: OTCSClient,
        status: int,
        error_type: type[APIError],
    ) -> None:
        """HTTP errors should map to specific exceptions."""
        httpx_mock.add_response(
            method="GET", url=f"{BASE}/v2/nodes/5", status_code=status, json={"error": "nope"}
        )
        with pytest.raises(error_type, match="nope") as exc_info:
            client.get_node(5)
        assert exc_info.value.status_code == status


class TestFolders:
    """Tests for listing and folder creation."""

    def test_get_subnodes_paging(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Should parse items and paging information."""
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/v2/nodes/2000/nodes?page=1&limit=100",
            json={
                "results": [
                    {"data": {"properties": node_props(10, "a.pdf", size=3)}},
                    {"data": {"properties": node_props(11, "Sub", node_type=0)}},
                ],
                "collection": {"paging": {"page": 1, "page_total": 2, "total_count": 150}},
            },
        )
        page = client.get_subnodes(2000)

        assert [n.name for n in page.items] == ["a.pdf", "Sub"]
        assert page.total_count == 150
        assert page.has_more is True

    def test_create_folder_path_reuses_existing(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Existing folders should be reused and missing ones created."""
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/v2/nodes/2000/nodes?where_name=A&limit=1",
            json={"results": [{"data": {"properties": node_props(20, "A", node_type=0)}}]},
        )
        httpx_mock.add_response(
            method="GET",
            url=f"{BASE}/v2/nodes/20/nodes?where_name=B&limit=1",
            json={"results": []},
        )
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE}/v2/nodes",
            json=node_response(node_props(21, "B", node_type=0)),
        )

        assert client.create_folder_path(2000, "A/B") == [20, 21]

        create = httpx_mock.get_requests(method="POST")[0]
        body = create.content.decode()
        assert "type=0" in body
        assert "parent_id=20" in body
        assert "name=B" in body


class TestContent:
    """Tests for upload and download."""

    def test_upload_document(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Should create a type 144 node with a multipart file."""
        httpx_mock.add_response(
            method="POST",
            url=f"{BASE}/v2/nodes",
            json=node_response(node_props(30, "a.txt")),
        )

        assert client.upload_document(2000, "a.txt", b"hello", "text/plain") == 30

        body = httpx_mock.get_request().content
        assert b'name="type"' in body
        assert b"144" in body
        assert b"hello" in body

    def test_add_version(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Should post a new version and return the same node ID."""
        httpx_mock.add_response(method="POST", url=f"{BASE}/v2/nodes/30/versions", json={})
        assert client.add_version(30, "a.txt", b"v2", "text/plain") == 30

    def test_get_content(self, httpx_mock: HTTPXMock, client: OTCSClient) -> None:
        """Should return the raw bytes."""
        httpx_mock.add_response(method="GET", url=f"{BASE}/v2/nodes/30/content", content=b"data")
        assert client.get_content(30) == b"data"
