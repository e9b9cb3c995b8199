"""Configuration utilities for the otcsmigrate CLI.

This module provides the locations shared across CLI commands.
"""

from __future__ import annotations

import os
from pathlib import Path

from otcsmigrate.core.config import CONFIG_ENV_VAR


def get_config_dir() -> Path:
    """Get the configuration directory for otcsmigrate.

    Returns:
        Path to ~/.otcsmigrate or equivalent.
    """
    return Path.home() / ".otcsmigrate"


def get_config_file(override: str | Path | None = None) -> Path:
    """Get the path to the jobs file.

    Precedence: explicit override, then $OTCSMIGRATE_CONFIG, then the
    default file in the config directory.
    """
    if override:
        return Path(override).expanduser()
    env_value = os.environ.get(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value).expanduser()
    return get_config_dir() / "migration-config.json"


def get_checkpoints_dir() -> Path:
    """Directory holding one checkpoint file per job."""
    return get_config_dir() / "checkpoints"


def get_logs_dir() -> Path:
    """Directory holding the audit log and the reports."""
    return get_config_dir() / "logs"
