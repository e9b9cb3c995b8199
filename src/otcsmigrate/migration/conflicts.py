"""Conflict resolution for modified files.

A file present on both sides whose size or modification time differs is a
conflict. What happens to it depends on the job's strategy:

| Strategy  | Decision                                                    |
|-----------|-------------------------------------------------------------|
| skip      | Never transfer                                              |
| overwrite | Transfer, replacing the destination                         |
| rename    | Transfer as <base>_<timestamp><ext>, destination untouched  |
| agent     | Look up a precomputed decision; no decision means skip      |

New files always transfer; existing files and orphans never do.

resolve() does no I/O. For the agent strategy, AgentConflictAdvisor makes a
single batched call for every conflict of the job before transfer starts.
"""

from __future__ import annotations

import json
import logging
import posixpath
import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from otcsmigrate.core.types import ConflictStrategy, ItemStatus
from otcsmigrate.migration.types import ConflictResolutionError, Decision

if TYPE_CHECKING:
    from otcsmigrate.client.llm import TextGenerator
    from otcsmigrate.core.config import MigrationJob
    from otcsmigrate.migration.types import ManifestItem

logger = logging.getLogger(__name__)

RENAME_PREFIX = "rename:"
VALID_DECISIONS = ("skip", "overwrite")


def build_rename(name: str, now: datetime) -> str:
    """Timestamped name for a renamed transfer.

    >>> build_rename("b.pdf", datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC))
    'b_2024-01-02T03-04-05.pdf'
    """
    base, ext = posixpath.splitext(name)
    stamp = now.astimezone(UTC).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{base}_{stamp}{ext}"


def resolve(
    item: ManifestItem,
    strategy: ConflictStrategy,
    decisions: Mapping[str, str] | None = None,
    now: datetime | None = None,
) -> Decision:
    """Decide whether an item is transferred, and under which name.

    Args:
        item: The manifest item.
        strategy: The job's conflict strategy.
        decisions: Agent decisions keyed by relative path.
        now: Clock for rename timestamps (defaults to the current time).

    Returns:
        The transfer decision.
    """
    if item.status == ItemStatus.NEW:
        return Decision(transfer=True, reason="New file")
    if item.status == ItemStatus.ORPHAN:
        return Decision(transfer=False, reason="Orphan (destination only)")
    if item.status == ItemStatus.EXISTING:
        return Decision(transfer=False, reason="Already exists and matches")

    if strategy == ConflictStrategy.SKIP:
        return Decision(transfer=False, reason="Skipped (conflict strategy: skip)")

    if strategy == ConflictStrategy.OVERWRITE:
        return Decision(transfer=True, reason="Overwriting (conflict strategy: overwrite)")

    if strategy == ConflictStrategy.RENAME:
        return Decision(
            transfer=True,
            rename=build_rename(item.source.name, now or datetime.now(UTC)),
            reason="Renamed (conflict strategy: rename)",
        )

    decision = (decisions or {}).get(item.relative_path)
    if decision == "skip":
        return Decision(transfer=False, reason="Skipped (agent decision)")
    if decision == "overwrite":
        return Decision(transfer=True, reason="Overwriting (agent decision)")
    if decision and decision.startswith(RENAME_PREFIX):
        return Decision(
            transfer=True,
            rename=decision[len(RENAME_PREFIX):],
            reason="Renamed (agent decision)",
        )
    return Decision(transfer=False, reason="No agent decision, skipping")


def parse_decision(value: object) -> str | None:
    """Normalize one agent decision; None if it is not usable.

    A rename target must be a bare file name (no path separators).
    """
    if not isinstance(value, str):
        return None
    value = value.strip()
    if value in VALID_DECISIONS:
        return value
    if value.startswith(RENAME_PREFIX):
        new_name = value[len(RENAME_PREFIX):].strip()
        if new_name and "/" not in new_name and "\\" not in new_name and new_name not in (".", ".."):
            return f"{RENAME_PREFIX}{new_name}"
    return None


_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def parse_decisions(text: str) -> dict[str, str]:
    """Parse the agent's JSON array of {"file", "decision"} objects.

    Entries with an unknown decision are dropped (and so default to skip).

    Raises:
        ConflictResolutionError: If the text is not a JSON array.
    """
    cleaned = _FENCE.sub("", text.strip())
    try:
        raw = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ConflictResolutionError(f"Invalid agent response format: {e}") from None
    if not isinstance(raw, list):
        raise ConflictResolutionError("Invalid agent response format: expected a JSON array")

    decisions: dict[str, str] = {}
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("file"), str):
            continue
        decision = parse_decision(entry.get("decision"))
        if decision is None:
            logger.warning(f"Ignoring agent decision for {entry['file']}: {entry.get('decision')!r}")
            continue
        decisions[entry["file"]] = decision
    return decisions


def describe_conflicts(conflicts: list[ManifestItem]) -> list[dict[str, object]]:
    """Conflict descriptors handed to the agent."""
    return [
        {
            "file": c.relative_path,
            "sourceSize": c.source.size,
            "sourceDate": c.source.modified_at.isoformat(),
            "destSize": c.dest.size if c.dest else None,
            "destDate": c.dest.modified_at.isoformat() if c.dest else None,
            "reason": c.conflict_reason,
        }
        for c in conflicts
    ]


class AgentConflictAdvisor:
    """Obtains decisions for all conflicts of a job in one call."""

    def __init__(self, generator: TextGenerator, max_tokens: int = 4096) -> None:
        self._generator = generator
        self._max_tokens = max_tokens

    def build_prompt(self, job: MigrationJob, conflicts: list[ManifestItem]) -> str:
        return f"""You are a document migration specialist. Review these file conflicts and decide how to handle each one.

Migration Job: {job.name}
Direction: {job.direction.value}
Source: {job.source}
Destination: {job.destination}

Conflicts:
{json.dumps(describe_conflicts(conflicts), indent=2)}

For each file, respond with a JSON array where each entry has:
- "file": the relative file path
- "decision": one of "skip", "overwrite", or "rename:newname.ext"

Consider:
- If the source is newer, "overwrite" is usually appropriate
- If the destination is newer, "skip" preserves the newer version
- If both versions should be kept, use "rename:filename_backup.ext"
- For important documents, prefer "rename" to avoid data loss

Respond ONLY with a valid JSON array, no other text."""

    def decide(self, job: MigrationJob, conflicts: list[ManifestItem]) -> dict[str, str]:
        """Ask the generator for one decision per conflict.

        Raises:
            ConflictResolutionError: If the call fails or the answer is unusable.
        """
        if not conflicts:
            return {}
        logger.info(f"Resolving {len(conflicts)} conflicts via agent...")
        try:
            text = self._generator.generate(
                self.build_prompt(job, conflicts), max_tokens=self._max_tokens
            )
        except Exception as e:
            raise ConflictResolutionError(f"Agent call failed: {e}") from e

        decisions = parse_decisions(text)
        logger.info(f"Agent resolved {len(decisions)} of {len(conflicts)} conflicts")
        return decisions
