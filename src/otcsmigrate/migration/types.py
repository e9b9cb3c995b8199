"""Shared types and dataclasses for migration jobs.

This module provides:
- MigrationError and subclasses: Exception classes
- Entry, LocalEntry, RemoteEntry: Immutable scan snapshots
- ManifestItem, Manifest, ManifestSummary: Discovery output
- Decision: Conflict resolver output
- TransferResult, TransferSummary: Executor output
- VerificationItem, VerificationReport: Verifier output
- Handle: Identity of a node on either side
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from otcsmigrate.core.types import ItemStatus, Origin, TransferAction

if TYPE_CHECKING:
    from otcsmigrate.core.config import MigrationJob
    from otcsmigrate.migration.progress import ProgressStats

# A local path or a remote node ID
Handle = Path | int


class MigrationError(Exception):
    """Base exception for migration errors."""


class DiscoveryError(MigrationError):
    """Enumeration of the source or destination failed."""


class ConflictResolutionError(MigrationError):
    """The conflict collaborator failed or returned unusable output."""


class TransferAbortedError(MigrationError):
    """The transfer phase stopped because the session was lost."""


# =============================================================================
# Scan entries
# =============================================================================


@dataclass(frozen=True)
class Entry:
    """Fields shared by local and remote entries.

    Diffing and size checks only ever look at these fields.

    Attributes:
        relative_path: "/"-separated path below the job root (join key).
        name: Last path component.
        size: Size in bytes (0 for directories).
        modified_at: Last modification time (timezone-aware).
        mime_type: MIME type ("inode/directory" for local directories).
        is_directory: True for containers.
    """

    origin: ClassVar[Origin]

    relative_path: str
    name: str
    size: int
    modified_at: datetime
    mime_type: str
    is_directory: bool = False

    @property
    def handle(self) -> Handle:
        """Identity of this entry on its own side."""
        raise NotImplementedError

    @property
    def parent_dir(self) -> str:
        """Relative directory containing this entry ("" for the root)."""
        head, _, _ = self.relative_path.rpartition("/")
        return head


@dataclass(frozen=True)
class LocalEntry(Entry):
    """Entry scanned from the local filesystem."""

    origin: ClassVar[Origin] = Origin.LOCAL

    local_path: Path = field(default_factory=Path)

    @property
    def handle(self) -> Path:
        return self.local_path


@dataclass(frozen=True)
class RemoteEntry(Entry):
    """Entry scanned from Content Server."""

    origin: ClassVar[Origin] = Origin.REMOTE

    node_id: int = 0
    parent_id: int | None = None

    @property
    def handle(self) -> int:
        return self.node_id


# =============================================================================
# Manifest
# =============================================================================


@dataclass(frozen=True)
class ManifestItem:
    """One classified source/destination pair.

    For orphans, source holds the destination entry as a placeholder.
    """

    source: Entry
    status: ItemStatus
    dest: Entry | None = None
    conflict_reason: str | None = None

    @property
    def relative_path(self) -> str:
        return self.source.relative_path


@dataclass
class ManifestSummary:
    """Counts over a manifest (files only)."""

    total_source: int = 0
    total_dest: int = 0
    new: int = 0
    existing: int = 0
    modified: int = 0
    orphans: int = 0
    total_bytes: int = 0


@dataclass
class Manifest:
    """Discovery output for one job.

    source_items and dest_items include directories; items holds files only.
    """

    job: MigrationJob
    source_items: list[Entry]
    dest_items: list[Entry]
    items: list[ManifestItem]
    summary: ManifestSummary

    def with_status(self, status: ItemStatus) -> list[ManifestItem]:
        return [i for i in self.items if i.status == status]

    @property
    def conflicts(self) -> list[ManifestItem]:
        return self.with_status(ItemStatus.MODIFIED)


# =============================================================================
# Conflict resolution
# =============================================================================


@dataclass(frozen=True)
class Decision:
    """Whether (and under which name) to transfer an item."""

    transfer: bool
    reason: str
    rename: str | None = None


# =============================================================================
# Transfer
# =============================================================================


@dataclass
class TransferResult:
    """Result of processing one manifest item.

    Attributes:
        item: The manifest item.
        success: False only when the transfer was attempted and failed.
        action: transferred, skipped or failed.
        dest_id: Destination identity written (remote node ID or local path).
        error: Error message of the last attempt.
        duration_ms: Wall time spent on this item.
        reason: Resolver explanation.
        attempts: Number of I/O attempts made.
    """

    item: ManifestItem
    success: bool
    action: TransferAction
    dest_id: Handle | None = None
    error: str | None = None
    duration_ms: float = 0.0
    reason: str = ""
    attempts: int = 0


@dataclass
class TransferSummary:
    """All results of a transfer run plus the final progress stats."""

    results: list[TransferResult]
    stats: ProgressStats
    cancelled: bool = False
    dry_run: bool = False


# =============================================================================
# Verification
# =============================================================================


@dataclass
class VerificationItem:
    """Size check of one transferred file."""

    file: str
    expected_size: int
    passed: bool
    expected_id: Handle | None = None
    exists: bool | None = None
    actual_size: int | None = None
    error: str | None = None


@dataclass
class VerificationSummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0


@dataclass
class VerificationReport:
    """Verifier output."""

    items: list[VerificationItem]
    summary: VerificationSummary

    def for_file(self, relative_path: str) -> VerificationItem | None:
        for item in self.items:
            if item.file == relative_path:
                return item
        return None
