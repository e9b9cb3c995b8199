"""Shared enums for otcsmigrate.

These are closed sets: job definitions, manifests and reports only ever
carry one of the values defined here.
"""

from __future__ import annotations

from enum import Enum


class Direction(str, Enum):
    """Which side of a job is the source."""

    LOCAL_TO_OTCS = "local-to-otcs"
    OTCS_TO_LOCAL = "otcs-to-local"

    @property
    def is_upload(self) -> bool:
        return self is Direction.LOCAL_TO_OTCS


class ConflictStrategy(str, Enum):
    """How modified files (present on both sides but different) are handled."""

    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"
    AGENT = "agent"


class Origin(str, Enum):
    """Where a scanned entry comes from."""

    LOCAL = "local"
    REMOTE = "remote"


class ItemStatus(str, Enum):
    """Classification of a source/destination pair."""

    NEW = "new"
    EXISTING = "existing"
    MODIFIED = "modified"
    ORPHAN = "orphan"


class TransferAction(str, Enum):
    """Outcome of processing one manifest item."""

    TRANSFERRED = "transferred"
    SKIPPED = "skipped"
    FAILED = "failed"
