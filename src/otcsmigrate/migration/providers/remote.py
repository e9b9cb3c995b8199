"""Content Server storage provider."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from otcsmigrate.client.api import NotFoundError, OTCSClient, ServerNode
from otcsmigrate.migration.providers.base import DEFAULT_MIME_TYPE, join_relative
from otcsmigrate.migration.types import Handle, RemoteEntry

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def _as_node_id(handle: Handle) -> int:
    if isinstance(handle, bool) or not isinstance(handle, int):
        raise TypeError(f"Remote provider expects a node ID, got {handle!r}")
    return handle


def node_to_entry(node: ServerNode, relative_path: str, parent_id: int | None) -> RemoteEntry:
    """Convert server metadata into a scan entry."""
    return RemoteEntry(
        relative_path=relative_path,
        name=node.name,
        size=node.size,
        # Nodes without a modify date compare as "just changed"
        modified_at=node.modify_date or datetime.now(UTC),
        mime_type=node.mime_type or DEFAULT_MIME_TYPE,
        is_directory=node.is_folder,
        node_id=node.id,
        parent_id=parent_id,
    )


class RemoteProvider:
    """StorageProvider over an authenticated OTCSClient."""

    name = "otcs"

    def __init__(self, client: OTCSClient) -> None:
        self._client = client

    def exists(self, handle: Handle) -> bool:
        try:
            self._client.get_node(_as_node_id(handle))
        except NotFoundError:
            return False
        return True

    def list(self, container: Handle, prefix: str = "") -> list[RemoteEntry]:
        node_id = _as_node_id(container)
        entries: list[RemoteEntry] = []
        page = 1
        while True:
            result = self._client.get_subnodes(node_id, page=page, limit=PAGE_SIZE)
            for node in result.items:
                entries.append(node_to_entry(node, join_relative(prefix, node.name), node_id))
            if not result.has_more:
                break
            page += 1
        return entries

    def read(self, handle: Handle) -> bytes:
        return self._client.get_content(_as_node_id(handle))

    def write(
        self,
        parent: Handle,
        name: str,
        data: bytes,
        mime_type: str,
        replace: Handle | None = None,
    ) -> int:
        if replace is not None:
            return self._client.add_version(_as_node_id(replace), name, data, mime_type)
        return self._client.upload_document(_as_node_id(parent), name, data, mime_type)

    def mkdir(self, parent: Handle, name: str) -> int:
        return self._client.create_folder(_as_node_id(parent), name)

    def ensure_path(self, root: Handle, relative_dir: str) -> int:
        ids = self._client.create_folder_path(_as_node_id(root), relative_dir)
        return ids[-1] if ids else _as_node_id(root)

    def stat(self, handle: Handle) -> RemoteEntry:
        node = self._client.get_node(_as_node_id(handle))
        return node_to_entry(node, node.name, node.parent_id)
