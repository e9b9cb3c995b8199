"""Resumable checkpoint state for a migration job.

This module provides:
- Checkpoint: Serializable per-job state (completed, failed, nodeIdMap)
- CheckpointStore: Loads and saves checkpoints as JSON files
- CheckpointRecorder: Lock-guarded single writer used by transfer workers

On-disk format (checkpoint-<slug>.json):
    {
      "jobName": "...",
      "timestamp": "2024-01-01T00:00:00+00:00",
      "completed": ["docs/a.txt", ...],
      "failed": {"docs/b.txt": "error message", ...},
      "nodeIdMap": {"docs/a.txt": 12345, ...}
    }
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from otcsmigrate.core.config import job_slug

logger = logging.getLogger(__name__)


@dataclass
class Checkpoint:
    """Per-job transfer state.

    Attributes:
        job_name: Name of the job this checkpoint belongs to.
        completed: Relative paths transferred successfully.
        failed: Relative path -> error of the last failed attempt.
        node_ids: Relative path -> remote node ID created by an upload.
        timestamp: Time of the last save.
    """

    job_name: str
    completed: set[str] = field(default_factory=set)
    failed: dict[str, str] = field(default_factory=dict)
    node_ids: dict[str, int] = field(default_factory=dict)
    timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobName": self.job_name,
            "timestamp": (self.timestamp or datetime.now(UTC)).isoformat(),
            "completed": sorted(self.completed),
            "failed": dict(sorted(self.failed.items())),
            "nodeIdMap": dict(sorted(self.node_ids.items())),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        """Create a checkpoint from its JSON form.

        Raises:
            ValueError: If a field has the wrong shape.
        """
        completed = data.get("completed", [])
        failed = data.get("failed", {})
        node_ids = data.get("nodeIdMap", {})
        if not isinstance(completed, list) or not isinstance(failed, dict) or not isinstance(node_ids, dict):
            raise ValueError("malformed checkpoint fields")

        timestamp = None
        if data.get("timestamp"):
            timestamp = datetime.fromisoformat(data["timestamp"])

        return cls(
            job_name=str(data.get("jobName", "")),
            completed={str(p) for p in completed},
            failed={str(k): str(v) for k, v in failed.items()},
            node_ids={str(k): int(v) for k, v in node_ids.items()},
            timestamp=timestamp,
        )


class CheckpointStore:
    """Reads and writes checkpoint files in a directory."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, job_name: str) -> Path:
        return self._directory / f"checkpoint-{job_slug(job_name)}.json"

    def exists(self, job_name: str) -> bool:
        return self.path_for(job_name).exists()

    def load(self, job_name: str) -> Checkpoint:
        """Load the checkpoint for a job.

        A missing file yields an empty checkpoint. An unreadable one is
        logged and also yields an empty checkpoint.
        """
        path = self.path_for(job_name)
        if not path.exists():
            return Checkpoint(job_name=job_name)

        try:
            checkpoint = Checkpoint.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {path}: {e}")
            return Checkpoint(job_name=job_name)

        checkpoint.job_name = job_name
        logger.info(
            f"Loaded checkpoint: {len(checkpoint.completed)} completed, "
            f"{len(checkpoint.failed)} failed"
        )
        return checkpoint

    def save(self, checkpoint: Checkpoint) -> Path:
        """Write a checkpoint atomically (temp file + rename)."""
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(checkpoint.job_name)
        checkpoint.timestamp = datetime.now(UTC)

        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(checkpoint.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp, path)
        logger.debug(f"Checkpoint saved: {path}")
        return path


class CheckpointRecorder:
    """Serializes checkpoint mutations from concurrent transfer workers.

    Workers only call record_success / record_failure; the executor calls
    flush. All access goes through one lock, so a flush never serializes a
    half-applied update.
    """

    def __init__(self, checkpoint: Checkpoint, store: CheckpointStore | None = None) -> None:
        self._checkpoint = checkpoint
        self._store = store
        self._lock = threading.Lock()

    def is_completed(self, relative_path: str) -> bool:
        with self._lock:
            return relative_path in self._checkpoint.completed

    def record_success(self, relative_path: str, node_id: int | None = None) -> None:
        with self._lock:
            self._checkpoint.completed.add(relative_path)
            self._checkpoint.failed.pop(relative_path, None)
            if node_id is not None:
                self._checkpoint.node_ids[relative_path] = node_id

    def record_failure(self, relative_path: str, error: str) -> None:
        with self._lock:
            self._checkpoint.failed[relative_path] = error

    def node_id(self, relative_path: str) -> int | None:
        with self._lock:
            return self._checkpoint.node_ids.get(relative_path)

    def snapshot(self) -> Checkpoint:
        """Copy of the current state."""
        with self._lock:
            return Checkpoint(
                job_name=self._checkpoint.job_name,
                completed=set(self._checkpoint.completed),
                failed=dict(self._checkpoint.failed),
                node_ids=dict(self._checkpoint.node_ids),
                timestamp=self._checkpoint.timestamp,
            )

    def flush(self) -> None:
        """Persist the current state (no-op without a store)."""
        if self._store is None:
            return
        with self._lock:
            self._store.save(self._checkpoint)
