"""Local filesystem storage provider."""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from otcsmigrate.migration.providers.base import (
    DIRECTORY_MIME_TYPE,
    guess_mime_type,
    join_relative,
)
from otcsmigrate.migration.types import Handle, LocalEntry

logger = logging.getLogger(__name__)


def _as_path(handle: Handle) -> Path:
    if not isinstance(handle, Path):
        raise TypeError(f"Local provider expects a Path, got {handle!r}")
    return handle


class LocalProvider:
    """StorageProvider over a local directory tree.

    Hidden entries (names starting with ".") are never listed. Symbolic links are
    never followed nor listed.
    """

    name = "local"

    def __init__(self, root: Path) -> None:
        """Initialize the provider.

        Args:
            root: Job root; relative paths of stat() results are computed
                against it.
        """
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _entry(self, path: Path, relative_path: str, st: os.stat_result) -> LocalEntry:
        is_dir = path.is_dir()
        return LocalEntry(
            relative_path=relative_path,
            name=path.name,
            size=0 if is_dir else st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=UTC),
            mime_type=DIRECTORY_MIME_TYPE if is_dir else guess_mime_type(path.name),
            is_directory=is_dir,
            local_path=path,
        )

    def exists(self, handle: Handle) -> bool:
        return _as_path(handle).exists()

    def list(self, container: Handle, prefix: str = "") -> list[LocalEntry]:
        directory = _as_path(container)
        if not directory.is_dir():
            raise FileNotFoundError(f"Directory does not exist: {directory}")

        entries: list[LocalEntry] = []
        with os.scandir(directory) as it:
            for dirent in sorted(it, key=lambda d: d.name):
                if dirent.name.startswith("."):
                    continue
                # Symlinks are never followed
                if dirent.is_symlink():
                    continue
                if not (dirent.is_dir(follow_symlinks=False) or dirent.is_file(follow_symlinks=False)):
                    continue
                path = Path(dirent.path)
                entries.append(
                    self._entry(path, join_relative(prefix, dirent.name), path.stat())
                )
        return entries

    def read(self, handle: Handle) -> bytes:
        return _as_path(handle).read_bytes()

    def write(
        self,
        parent: Handle,
        name: str,
        data: bytes,
        mime_type: str,
        replace: Handle | None = None,
    ) -> Path:
        target = _as_path(replace) if replace is not None else _as_path(parent) / name
        target.parent.mkdir(parents=True, exist_ok=True)

        # Write next to the target then swap, so readers never see a partial file
        tmp = target.with_name(f".{target.name}.partial")
        tmp.write_bytes(data)
        os.replace(tmp, target)
        return target

    def mkdir(self, parent: Handle, name: str) -> Path:
        path = _as_path(parent) / name
        path.mkdir(exist_ok=True)
        return path

    def ensure_path(self, root: Handle, relative_dir: str) -> Path:
        path = _as_path(root).joinpath(*[p for p in relative_dir.split("/") if p])
        path.mkdir(parents=True, exist_ok=True)
        return path

    def stat(self, handle: Handle) -> LocalEntry:
        path = _as_path(handle)
        st = path.stat()
        try:
            relative = path.relative_to(self._root).as_posix()
        except ValueError:
            relative = path.name
        return self._entry(path, relative, st)
