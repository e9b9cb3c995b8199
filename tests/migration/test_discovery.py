"""Tests for discovery and diff classification."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import pytest

from otcsmigrate.core.types import ItemStatus
from otcsmigrate.migration.discovery import compare_entries, compute_diff, discover, walk
from otcsmigrate.migration.providers import LocalProvider
from otcsmigrate.migration.types import DiscoveryError
from tests.migration.fakes import JAN_1, ROOT_ID, MemoryProvider, make_job


def statuses(manifest) -> dict[str, ItemStatus]:
    return {i.relative_path: i.status for i in manifest.items}


@pytest.fixture
def source() -> MemoryProvider:
    provider = MemoryProvider(name="source")
    provider.add_file(ROOT_ID, "a.txt", b"x" * 100)
    docs = provider.add_folder(ROOT_ID, "Docs")
    provider.add_file(docs, "b.pdf", b"x" * 200)
    provider.add_file(docs, "same.txt", b"same")
    return provider


@pytest.fixture
def dest() -> MemoryProvider:
    provider = MemoryProvider(name="dest")
    docs = provider.add_folder(ROOT_ID, "docs")
    provider.add_file(docs, "B.PDF", b"x" * 150)
    provider.add_file(docs, "same.txt", b"same", JAN_1 + timedelta(milliseconds=500))
    provider.add_file(ROOT_ID, "orphan.txt", b"o")
    return provider


class TestWalk:
    """Tests for walk()."""

    def test_recursive(self, source: MemoryProvider) -> None:
        """Should return every entry with nested relative paths."""
        paths = [e.relative_path for e in walk(source, ROOT_ID, recursive=True)]
        assert sorted(paths) == ["Docs", "Docs/b.pdf", "Docs/same.txt", "a.txt"]

    def test_non_recursive(self, source: MemoryProvider) -> None:
        """Should only see the root's immediate children."""
        paths = [e.relative_path for e in walk(source, ROOT_ID, recursive=False)]
        assert sorted(paths) == ["Docs", "a.txt"]


class TestCompareEntries:
    """Tests for compare_entries()."""

    def test_size_mismatch(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Size differences should be named with both values."""
        src = source.stat(source.find("Docs/b.pdf").id)
        dst = dest.stat(dest.find("docs/B.PDF").id)
        assert compare_entries(src, dst) == "Size mismatch: source=200, dest=150"

    def test_date_within_tolerance(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Dates closer than one second should match."""
        src = source.stat(source.find("Docs/same.txt").id)
        dst = dest.stat(dest.find("docs/same.txt").id)
        assert compare_entries(src, dst) is None

    def test_date_mismatch(self, source: MemoryProvider) -> None:
        """Dates one second apart or more should conflict."""
        other = MemoryProvider()
        node = other.add_file(ROOT_ID, "same.txt", b"same", JAN_1 + timedelta(seconds=2))
        src = source.stat(source.find("Docs/same.txt").id)
        reason = compare_entries(src, other.stat(node))
        assert reason is not None
        assert reason.startswith("Date mismatch: source=2024-01-01T00:00:00+00:00")


class TestDiscover:
    """Tests for discover()."""

    def test_classification(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Every file should get exactly one status."""
        manifest = discover(make_job(), source, ROOT_ID, dest, ROOT_ID)

        assert statuses(manifest) == {
            "a.txt": ItemStatus.NEW,
            "Docs/b.pdf": ItemStatus.MODIFIED,
            "Docs/same.txt": ItemStatus.EXISTING,
            "orphan.txt": ItemStatus.ORPHAN,
        }
        assert manifest.summary.new == 1
        assert manifest.summary.modified == 1
        assert manifest.summary.existing == 1
        assert manifest.summary.orphans == 1
        assert manifest.summary.total_source == 3
        assert manifest.summary.total_bytes == 304

    def test_case_insensitive_pairing(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Paths differing only by case should pair up."""
        manifest = discover(make_job(), source, ROOT_ID, dest, ROOT_ID)
        modified = manifest.conflicts[0]
        assert modified.dest is not None
        assert modified.dest.relative_path == "docs/B.PDF"
        assert "Size mismatch" in (modified.conflict_reason or "")

    def test_orphan_placeholder(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Orphans should carry the destination entry as source."""
        manifest = discover(make_job(), source, ROOT_ID, dest, ROOT_ID)
        orphan = manifest.with_status(ItemStatus.ORPHAN)[0]
        assert orphan.source is orphan.dest

    def test_directories_kept_out_of_items(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Directories should appear in source_items but not in items."""
        manifest = discover(make_job(), source, ROOT_ID, dest, ROOT_ID)
        assert any(e.is_directory for e in manifest.source_items)
        assert all(not i.source.is_directory for i in manifest.items)

    def test_idempotent(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Two scans of unchanged trees should produce the same manifest."""
        first = discover(make_job(), source, ROOT_ID, dest, ROOT_ID)
        second = discover(make_job(), source, ROOT_ID, dest, ROOT_ID)
        assert statuses(first) == statuses(second)

    def test_extension_filter(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Only allow-listed extensions should be compared."""
        manifest = discover(make_job(extensions=(".pdf",)), source, ROOT_ID, dest, ROOT_ID)
        assert statuses(manifest) == {"Docs/b.pdf": ItemStatus.MODIFIED}

    def test_missing_destination_is_empty(self, source: MemoryProvider) -> None:
        """A missing destination root should make every file new."""
        manifest = discover(make_job(), source, ROOT_ID, MemoryProvider(), 999999)
        assert set(statuses(manifest).values()) == {ItemStatus.NEW}

    def test_scan_failure_aborts(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """An enumeration error should abort discovery."""
        dest.list_error = OSError("listing failed")
        with pytest.raises(DiscoveryError, match="listing failed"):
            discover(make_job(), source, ROOT_ID, dest, ROOT_ID)

    def test_local_to_memory(self, tmp_path: Path) -> None:
        """Scenario: a local file absent from the destination is new."""
        (tmp_path / "a.txt").write_bytes(b"x" * 100)
        os.utime(tmp_path / "a.txt", (1704067200, 1704067200))

        manifest = discover(
            make_job(source=str(tmp_path)),
            LocalProvider(tmp_path),
            tmp_path,
            MemoryProvider(),
            ROOT_ID,
        )

        item = manifest.items[0]
        assert item.relative_path == "a.txt"
        assert item.status == ItemStatus.NEW
        assert item.source.size == 100

    def test_symlink_loop_ignored(self, tmp_path: Path) -> None:
        """A symlink back to the root should neither loop nor abort the walk."""
        root = tmp_path / "src"
        (root / "docs").mkdir(parents=True)
        (root / "docs" / "a.txt").write_bytes(b"a")
        (root / "docs" / "loop").symlink_to(root, target_is_directory=True)

        entries = walk(LocalProvider(root), root, recursive=True)

        assert [e.relative_path for e in entries if not e.is_directory] == ["docs/a.txt"]


class TestComputeDiff:
    """Tests for compute_diff() completeness."""

    def test_one_item_per_file(self, source: MemoryProvider, dest: MemoryProvider) -> None:
        """Source files and unmatched destination files each get one item."""
        src = [e for e in walk(source, ROOT_ID, True) if not e.is_directory]
        dst = [e for e in walk(dest, ROOT_ID, True) if not e.is_directory]
        items = compute_diff(src, dst)
        assert len(items) == len(src) + 1
        assert [i.relative_path for i in items[: len(src)]] == [e.relative_path for e in src]
