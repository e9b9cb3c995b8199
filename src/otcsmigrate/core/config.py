"""Configuration classes for otcsmigrate.

This module defines:
- ServerConfig: Connection settings for the Content Server REST API
- MigrationJob: One job definition (read-only once loaded)
- MigrationConfig: All jobs plus credentials from the environment
- load_config: Read the jobs file and merge environment settings
"""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from otcsmigrate.core.types import ConflictStrategy, Direction

DEFAULT_CONCURRENCY = 10
DEFAULT_RETRIES = 3
MAX_CONCURRENCY = 100

CONFIG_ENV_VAR = "OTCSMIGRATE_CONFIG"


class ConfigError(Exception):
    """Invalid or missing configuration."""


@dataclass
class ServerConfig:
    """Configuration for connecting to Content Server.

    Attributes:
        base_url: Base URL of the server; normalized to end in "/api".
        username: Account used to obtain an OTCSTicket.
        password: Password for the account.
        domain: Optional authentication domain.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify TLS certificates (default True).
    """

    base_url: str
    username: str
    password: str
    domain: str | None = None
    timeout: float = 60.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize base URL."""
        self.base_url = self.base_url.rstrip("/")
        if "/api" not in self.base_url:
            self.base_url = self.base_url + "/api"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS."""
        return self.base_url.startswith("https://")


def expand_path(value: str | int | Path) -> Path:
    """Expand ~ and make a local path absolute."""
    return Path(str(value)).expanduser().resolve()


def job_slug(name: str) -> str:
    """Filesystem-safe identifier for a job name.

    Every non-alphanumeric character becomes "-", then the result is
    lower-cased ("Upload Q1 (final)" -> "upload-q1--final-").
    """
    return re.sub(r"[^a-zA-Z0-9]", "-", name).lower()


def _flag(data: Mapping[str, Any], key: str, default: bool, job_name: str) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"Job '{job_name}': '{key}' must be true or false")
    return value


def _normalize_extensions(values: list[str]) -> tuple[str, ...]:
    return tuple(
        v.lower() if v.startswith(".") else f".{v.lower()}" for v in values if v
    )


@dataclass(frozen=True)
class MigrationJob:
    """A migration job definition.

    Attributes:
        name: Unique job name (also keys the checkpoint file).
        direction: Transfer direction.
        source: Local path (upload) or remote node ID (download).
        destination: Remote node ID (upload) or local path (download).
        recursive: Descend into subfolders on both sides.
        extensions: Lower-cased, dot-prefixed extension allow-list; empty means all.
        concurrency: Requested batch size, clamped to [1, 100] by the executor.
        retries: Attempts per file I/O call.
        conflict_strategy: How modified files are handled.
        verify: Run the size verification pass after transfer.
        generate_report: Ask the text generator for an executive summary.
        report_destination: Remote folder ID the text report is uploaded to.
    """

    name: str
    direction: Direction
    source: str | int
    destination: str | int
    recursive: bool = True
    extensions: tuple[str, ...] = ()
    concurrency: int = DEFAULT_CONCURRENCY
    retries: int = DEFAULT_RETRIES
    conflict_strategy: ConflictStrategy = ConflictStrategy.SKIP
    verify: bool = True
    generate_report: bool = False
    report_destination: int | None = None

    @property
    def remote_root(self) -> int:
        """Node ID of the remote side of this job."""
        value = self.destination if self.direction.is_upload else self.source
        return int(value)

    @property
    def local_root(self) -> Path:
        """Absolute path of the local side of this job."""
        value = self.source if self.direction.is_upload else self.destination
        return expand_path(value)

    @property
    def effective_concurrency(self) -> int:
        return min(max(self.concurrency, 1), MAX_CONCURRENCY)

    def with_overrides(self, **changes: Any) -> MigrationJob:
        """Return a copy with some fields replaced (e.g. CLI overrides)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationJob:
        """Create from a job entry of the JSON config file.

        Raises:
            ConfigError: If a required key is missing or a value is invalid.
        """
        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ConfigError("Job is missing a 'name'")

        try:
            direction = Direction(data.get("direction", ""))
        except ValueError:
            raise ConfigError(
                f"Job '{name}': direction must be one of "
                f"{', '.join(d.value for d in Direction)}"
            ) from None

        try:
            strategy = ConflictStrategy(data.get("conflictStrategy", "skip"))
        except ValueError:
            raise ConfigError(
                f"Job '{name}': conflictStrategy must be one of "
                f"{', '.join(s.value for s in ConflictStrategy)}"
            ) from None

        for key in ("source", "destination"):
            if data.get(key) in (None, ""):
                raise ConfigError(f"Job '{name}': '{key}' is required")

        remote_key = "destination" if direction.is_upload else "source"
        try:
            remote_id = int(data[remote_key])
        except (TypeError, ValueError):
            raise ConfigError(
                f"Job '{name}': '{remote_key}' must be a Content Server node ID"
            ) from None

        report_destination = data.get("reportDestination")
        try:
            concurrency = int(data.get("concurrency", DEFAULT_CONCURRENCY))
            retries = int(data.get("retries", DEFAULT_RETRIES))
            if report_destination is not None:
                report_destination = int(report_destination)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Job '{name}': {e}") from None

        extensions = data.get("extensions") or []
        if not isinstance(extensions, list) or not all(isinstance(e, str) for e in extensions):
            raise ConfigError(f"Job '{name}': 'extensions' must be a list of strings")

        local_key = "source" if direction.is_upload else "destination"
        return cls(
            name=name,
            direction=direction,
            source=remote_id if remote_key == "source" else str(data[local_key]),
            destination=remote_id if remote_key == "destination" else str(data[local_key]),
            recursive=_flag(data, "recursive", True, name),
            extensions=_normalize_extensions(extensions),
            concurrency=concurrency,
            retries=retries,
            conflict_strategy=strategy,
            verify=_flag(data, "verify", True, name),
            generate_report=_flag(data, "generateReport", False, name),
            report_destination=report_destination,
        )


@dataclass
class MigrationConfig:
    """All job definitions plus environment-provided credentials."""

    server: ServerConfig
    jobs: list[MigrationJob] = field(default_factory=list)
    anthropic_api_key: str | None = None

    def get_job(self, name: str) -> MigrationJob | None:
        """Find a job by exact name."""
        for job in self.jobs:
            if job.name == name:
                return job
        return None


def _env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def load_config(
    path: Path,
    environ: Mapping[str, str] | None = None,
) -> MigrationConfig:
    """Load the jobs file and merge credentials from the environment.

    Args:
        path: JSON file of the form {"jobs": [...]}.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The loaded configuration.

    Raises:
        ConfigError: If the file is missing or invalid, or a required
            environment variable is not set.
    """
    env = os.environ if environ is None else environ

    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from None

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a JSON object with a 'jobs' list")
    entries = raw.get("jobs", [])
    if not isinstance(entries, list):
        raise ConfigError(f"{path}: 'jobs' must be a list")
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"{path}: job #{index + 1} must be an object")

    jobs = [MigrationJob.from_dict(j) for j in entries]
    names = [j.name for j in jobs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate job names: {', '.join(duplicates)}")

    required = {}
    for key in ("OTCS_BASE_URL", "OTCS_USERNAME", "OTCS_PASSWORD"):
        value = env.get(key)
        if not value:
            raise ConfigError(f"{key} env var is required")
        required[key] = value

    server = ServerConfig(
        base_url=required["OTCS_BASE_URL"],
        username=required["OTCS_USERNAME"],
        password=required["OTCS_PASSWORD"],
        domain=env.get("OTCS_DOMAIN") or None,
        verify_ssl=not _env_flag(env.get("OTCS_TLS_SKIP_VERIFY")),
    )
    return MigrationConfig(
        server=server,
        jobs=jobs,
        anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
    )
