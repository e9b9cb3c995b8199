"""Tests for conflict resolution."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest

from otcsmigrate.core.types import ConflictStrategy, ItemStatus
from otcsmigrate.migration.conflicts import (
    AgentConflictAdvisor,
    build_rename,
    parse_decision,
    parse_decisions,
    resolve,
)
from otcsmigrate.migration.types import ConflictResolutionError, ManifestItem, RemoteEntry
from tests.migration.fakes import JAN_1, FakeGenerator, make_job

NOW = datetime(2024, 3, 5, 14, 30, 15, 123000, tzinfo=UTC)


def entry(path: str, size: int = 100) -> RemoteEntry:
    return RemoteEntry(
        relative_path=path,
        name=path.rpartition("/")[2],
        size=size,
        modified_at=JAN_1,
        mime_type="application/pdf",
        node_id=1,
    )


def modified(path: str = "docs/b.pdf") -> ManifestItem:
    return ManifestItem(
        source=entry(path, 200),
        dest=entry(path, 150),
        status=ItemStatus.MODIFIED,
        conflict_reason="Size mismatch: source=200, dest=150",
    )


class TestBuildRename:
    """Tests for build_rename()."""

    def test_timestamp_suffix(self) -> None:
        """Should insert a second-precision timestamp before the extension."""
        assert build_rename("b.pdf", NOW) == "b_2024-03-05T14-30-15.pdf"

    def test_no_extension(self) -> None:
        """Names without extension should get a plain suffix."""
        assert build_rename("README", NOW) == "README_2024-03-05T14-30-15"

    def test_converts_to_utc(self) -> None:
        """Timestamps should be rendered in UTC."""
        local = NOW.astimezone(timezone(timedelta(hours=2)))
        assert build_rename("b.pdf", local) == "b_2024-03-05T14-30-15.pdf"


class TestResolve:
    """Tests for resolve()."""

    def test_new_always_transfers(self) -> None:
        """New items should transfer even with the skip strategy."""
        item = ManifestItem(source=entry("a.txt"), status=ItemStatus.NEW)
        decision = resolve(item, ConflictStrategy.SKIP)
        assert decision.transfer is True
        assert decision.reason == "New file"

    def test_existing_never_transfers(self) -> None:
        """Existing items should never transfer."""
        item = ManifestItem(source=entry("a.txt"), dest=entry("a.txt"), status=ItemStatus.EXISTING)
        assert resolve(item, ConflictStrategy.OVERWRITE).transfer is False

    def test_orphan_never_transfers(self) -> None:
        """Orphans should never transfer."""
        e = entry("o.txt")
        item = ManifestItem(source=e, dest=e, status=ItemStatus.ORPHAN)
        decision = resolve(item, ConflictStrategy.OVERWRITE)
        assert decision.transfer is False
        assert decision.reason == "Orphan (destination only)"

    def test_skip(self) -> None:
        """The skip strategy should never transfer modified items."""
        decision = resolve(modified(), ConflictStrategy.SKIP)
        assert decision.transfer is False
        assert decision.reason == "Skipped (conflict strategy: skip)"

    def test_overwrite(self) -> None:
        """The overwrite strategy should transfer without renaming."""
        decision = resolve(modified(), ConflictStrategy.OVERWRITE)
        assert decision.transfer is True
        assert decision.rename is None

    def test_rename_scenario(self) -> None:
        """Scenario: b.pdf 200 vs 150 bytes with rename strategy."""
        decision = resolve(modified(), ConflictStrategy.RENAME, now=NOW)
        assert decision.transfer is True
        assert decision.rename == "b_2024-03-05T14-30-15.pdf"
        assert decision.reason == "Renamed (conflict strategy: rename)"

    @pytest.mark.parametrize(
        "strategy", [ConflictStrategy.SKIP, ConflictStrategy.OVERWRITE, ConflictStrategy.RENAME]
    )
    def test_deterministic(self, strategy: ConflictStrategy) -> None:
        """Identical input should always yield identical decisions."""
        assert resolve(modified(), strategy, now=NOW) == resolve(modified(), strategy, now=NOW)

    def test_agent_decisions(self) -> None:
        """Agent decisions should be looked up by relative path."""
        decisions = {
            "a.pdf": "overwrite",
            "b.pdf": "skip",
            "c.pdf": "rename:c_backup.pdf",
        }
        overwrite = resolve(modified("a.pdf"), ConflictStrategy.AGENT, decisions)
        skip = resolve(modified("b.pdf"), ConflictStrategy.AGENT, decisions)
        rename = resolve(modified("c.pdf"), ConflictStrategy.AGENT, decisions)

        assert (overwrite.transfer, overwrite.reason) == (True, "Overwriting (agent decision)")
        assert (skip.transfer, skip.reason) == (False, "Skipped (agent decision)")
        assert (rename.transfer, rename.rename) == (True, "c_backup.pdf")

    def test_agent_missing_decision_skips(self) -> None:
        """A path without decision should fail safe to skip."""
        decision = resolve(modified(), ConflictStrategy.AGENT, {})
        assert decision.transfer is False
        assert decision.reason == "No agent decision, skipping"


class TestParseDecisions:
    """Tests for parse_decision() and parse_decisions()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("skip", "skip"),
            (" overwrite ", "overwrite"),
            ("rename:new.pdf", "rename:new.pdf"),
            ("rename:../etc/passwd", None),
            ("rename:", None),
            ("delete", None),
            (42, None),
        ],
    )
    def test_parse_decision(self, raw: object, expected: str | None) -> None:
        """Only the three decision kinds with bare file names are accepted."""
        assert parse_decision(raw) == expected

    def test_code_fences_tolerated(self) -> None:
        """JSON wrapped in a markdown fence should parse."""
        text = '```json\n[{"file": "a.pdf", "decision": "overwrite"}]\n```'
        assert parse_decisions(text) == {"a.pdf": "overwrite"}

    def test_invalid_entries_dropped(self) -> None:
        """Entries with unusable decisions should be ignored."""
        text = '[{"file": "a.pdf", "decision": "explode"}, {"decision": "skip"}, {"file": "b.pdf", "decision": "skip"}]'
        assert parse_decisions(text) == {"b.pdf": "skip"}

    def test_not_json(self) -> None:
        """Free text should raise ConflictResolutionError."""
        with pytest.raises(ConflictResolutionError):
            parse_decisions("I would overwrite everything.")

    def test_not_array(self) -> None:
        """A JSON object instead of an array should be rejected."""
        with pytest.raises(ConflictResolutionError, match="array"):
            parse_decisions('{"a.pdf": "skip"}')


class TestAgentConflictAdvisor:
    """Tests for AgentConflictAdvisor."""

    def test_single_batched_call(self) -> None:
        """All conflicts should be sent in one prompt."""
        generator = FakeGenerator('[{"file": "a.pdf", "decision": "overwrite"}]')
        advisor = AgentConflictAdvisor(generator)

        decisions = advisor.decide(make_job(), [modified("a.pdf"), modified("b.pdf")])

        assert decisions == {"a.pdf": "overwrite"}
        assert len(generator.prompts) == 1
        assert '"file": "a.pdf"' in generator.prompts[0]
        assert '"file": "b.pdf"' in generator.prompts[0]
        assert '"sourceSize": 200' in generator.prompts[0]

    def test_no_conflicts_no_call(self) -> None:
        """Without conflicts the generator should not be called."""
        generator = FakeGenerator("[]")
        assert AgentConflictAdvisor(generator).decide(make_job(), []) == {}
        assert generator.prompts == []

    def test_generator_failure(self) -> None:
        """Generator errors should surface as ConflictResolutionError."""
        generator = FakeGenerator(error=RuntimeError("timeout"))
        with pytest.raises(ConflictResolutionError, match="timeout"):
            AgentConflictAdvisor(generator).decide(make_job(), [modified()])
