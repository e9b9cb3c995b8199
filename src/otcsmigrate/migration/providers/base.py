"""Storage provider abstraction.

Both sides of a job are accessed through the same small capability set so
that discovery, transfer and verification never branch on where an entry
lives. Containers and files are addressed by a Handle: a Path for the local
filesystem, a node ID for Content Server.
"""

from __future__ import annotations

import mimetypes
import posixpath
from typing import Protocol

from otcsmigrate.migration.types import Entry, Handle

MIME_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".ppt": "application/vnd.ms-powerpoint",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".html": "text/html",
    ".xml": "application/xml",
    ".json": "application/json",
    ".md": "text/markdown",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".zip": "application/zip",
    ".mp3": "audio/mpeg",
    ".mp4": "video/mp4",
    ".msg": "application/vnd.ms-outlook",
    ".eml": "message/rfc822",
}

DIRECTORY_MIME_TYPE = "inode/directory"
DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(name: str) -> str:
    """MIME type from the file extension, with document types pinned."""
    ext = posixpath.splitext(name)[1].lower()
    if ext in MIME_TYPES:
        return MIME_TYPES[ext]
    return mimetypes.guess_type(name)[0] or DEFAULT_MIME_TYPE


def join_relative(prefix: str, name: str) -> str:
    """Join a relative directory and a child name with "/"."""
    return f"{prefix}/{name}" if prefix else name


class StorageProvider(Protocol):
    """Capabilities the engine needs from one side of a job."""

    name: str

    def exists(self, handle: Handle) -> bool:
        """Whether the node exists."""
        ...

    def list(self, container: Handle, prefix: str = "") -> list[Entry]:
        """List a container's immediate children.

        Args:
            container: Container to enumerate.
            prefix: Relative path of the container below the job root;
                children get relative_path = prefix + "/" + name.
        """
        ...

    def read(self, handle: Handle) -> bytes:
        """Read a file's bytes."""
        ...

    def write(
        self,
        parent: Handle,
        name: str,
        data: bytes,
        mime_type: str,
        replace: Handle | None = None,
    ) -> Handle:
        """Write a file into parent and return its identity.

        Args:
            replace: Existing node to replace instead of creating a new one.
        """
        ...

    def mkdir(self, parent: Handle, name: str) -> Handle:
        """Create a single folder level."""
        ...

    def ensure_path(self, root: Handle, relative_dir: str) -> Handle:
        """Create every missing folder of relative_dir below root (idempotent)."""
        ...

    def stat(self, handle: Handle) -> Entry:
        """Fresh metadata for a node.

        Raises:
            FileNotFoundError or NotFoundError if the node is gone.
        """
        ...
