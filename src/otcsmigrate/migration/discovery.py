"""Discovery: scan both sides of a job and classify every file.

This module provides:
- walk: Enumerate a tree through a StorageProvider
- compute_diff: Classify source/destination files into a manifest
- discover: Scan both sides of a job and build its Manifest

Matching is done on the lower-cased relative path, so "Docs/A.pdf" and
"docs/a.pdf" are treated as the same file on both sides.
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Iterable
from dataclasses import asdict
from typing import TYPE_CHECKING

from otcsmigrate.core.types import ItemStatus
from otcsmigrate.migration.audit import audit_extra
from otcsmigrate.migration.types import (
    DiscoveryError,
    Entry,
    Handle,
    Manifest,
    ManifestItem,
    ManifestSummary,
)

if TYPE_CHECKING:
    from otcsmigrate.core.config import MigrationJob
    from otcsmigrate.migration.providers import StorageProvider

logger = logging.getLogger(__name__)

# Modification times closer than this are considered equal
MTIME_TOLERANCE_SECONDS = 1.0


def walk(provider: StorageProvider, root: Handle, recursive: bool) -> list[Entry]:
    """Enumerate a container depth-first, directories included.

    Args:
        provider: Provider for the side being scanned.
        root: Container at the job root.
        recursive: Descend into subfolders; otherwise only the root's
            immediate children are returned.
    """
    entries: list[Entry] = []
    pending: list[tuple[Handle, str]] = [(root, "")]
    while pending:
        container, prefix = pending.pop()
        children = provider.list(container, prefix)
        entries.extend(children)
        if recursive:
            # Reversed so that the first child is expanded first
            pending.extend(
                (child.handle, child.relative_path)
                for child in reversed(children)
                if child.is_directory
            )
    return entries


def filter_extensions(entries: Iterable[Entry], extensions: tuple[str, ...]) -> list[Entry]:
    """Keep directories and files whose extension is in the allow-list."""
    if not extensions:
        return list(entries)
    return [
        e
        for e in entries
        if e.is_directory or posixpath.splitext(e.name)[1].lower() in extensions
    ]


def _path_key(entry: Entry) -> str:
    return entry.relative_path.lower()


def compare_entries(source: Entry, dest: Entry) -> str | None:
    """Explain why two paired files differ, or None if they match."""
    if source.size != dest.size:
        return f"Size mismatch: source={source.size}, dest={dest.size}"
    delta = abs((source.modified_at - dest.modified_at).total_seconds())
    if delta >= MTIME_TOLERANCE_SECONDS:
        return (
            f"Date mismatch: source={source.modified_at.isoformat()}, "
            f"dest={dest.modified_at.isoformat()}"
        )
    return None


def compute_diff(source_files: list[Entry], dest_files: list[Entry]) -> list[ManifestItem]:
    """Classify files into new / existing / modified / orphan.

    Args:
        source_files: Source files (no directories).
        dest_files: Destination files (no directories).

    Returns:
        One item per source file in source order, then one orphan item per
        unmatched destination file in destination order.
    """
    dest_by_key: dict[str, Entry] = {}
    for dest in dest_files:
        dest_by_key[_path_key(dest)] = dest

    items: list[ManifestItem] = []
    matched: set[str] = set()

    for source in source_files:
        key = _path_key(source)
        dest = dest_by_key.get(key)
        if dest is None:
            items.append(ManifestItem(source=source, status=ItemStatus.NEW))
            continue

        matched.add(key)
        reason = compare_entries(source, dest)
        if reason is None:
            items.append(ManifestItem(source=source, dest=dest, status=ItemStatus.EXISTING))
        else:
            items.append(
                ManifestItem(
                    source=source,
                    dest=dest,
                    status=ItemStatus.MODIFIED,
                    conflict_reason=reason,
                )
            )

    for dest in dest_files:
        if _path_key(dest) not in matched:
            items.append(ManifestItem(source=dest, dest=dest, status=ItemStatus.ORPHAN))

    return items


def summarize(
    items: list[ManifestItem],
    source_files: list[Entry],
    dest_files: list[Entry],
) -> ManifestSummary:
    summary = ManifestSummary(
        total_source=len(source_files),
        total_dest=len(dest_files),
        total_bytes=sum(f.size for f in source_files),
    )
    for item in items:
        if item.status == ItemStatus.NEW:
            summary.new += 1
        elif item.status == ItemStatus.EXISTING:
            summary.existing += 1
        elif item.status == ItemStatus.MODIFIED:
            summary.modified += 1
        else:
            summary.orphans += 1
    return summary


def discover(
    job: MigrationJob,
    source: StorageProvider,
    source_root: Handle,
    destination: StorageProvider,
    dest_root: Handle,
) -> Manifest:
    """Scan both sides of a job and build its manifest.

    A missing destination root is treated as empty. Any enumeration error
    aborts discovery: a manifest built from a partial scan could classify
    files wrongly.

    Raises:
        DiscoveryError: If either side cannot be fully enumerated.
    """
    logger.info(
        f"Discovering files for job: {job.name}",
        extra=audit_extra(
            "phase",
            phase="discover",
            status="start",
            summary=f"Discovering files for job: {job.name}",
        ),
    )

    try:
        logger.info(f"Scanning {source.name} source: {source_root}")
        source_items = walk(source, source_root, job.recursive)
    except Exception as e:
        raise DiscoveryError(f"Failed to scan source {source_root}: {e}") from e

    try:
        logger.info(f"Scanning {destination.name} destination: {dest_root}")
        if destination.exists(dest_root):
            dest_items = walk(destination, dest_root, job.recursive)
        else:
            logger.info(f"Destination {dest_root} does not exist yet; treating as empty")
            dest_items = []
    except Exception as e:
        raise DiscoveryError(f"Failed to scan destination {dest_root}: {e}") from e

    source_items = filter_extensions(source_items, job.extensions)
    dest_items = filter_extensions(dest_items, job.extensions)

    source_files = [e for e in source_items if not e.is_directory]
    dest_files = [e for e in dest_items if not e.is_directory]

    items = compute_diff(source_files, dest_files)
    summary = summarize(items, source_files, dest_files)

    logger.info(
        f"Discovery complete: {summary.new} new, {summary.existing} existing, "
        f"{summary.modified} modified, {summary.orphans} orphans",
        extra=audit_extra(
            "phase",
            phase="discover",
            status="complete",
            summary=f"Found {summary.total_source} source files, "
            f"{summary.total_dest} dest files",
            details=asdict(summary),
        ),
    )

    return Manifest(
        job=job,
        source_items=source_items,
        dest_items=dest_items,
        items=items,
        summary=summary,
    )
