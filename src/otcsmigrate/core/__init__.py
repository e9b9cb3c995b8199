"""Core module - Shared configuration and enums."""

from otcsmigrate.core.config import (
    ConfigError,
    MigrationConfig,
    MigrationJob,
    ServerConfig,
    expand_path,
    job_slug,
    load_config,
)
from otcsmigrate.core.types import (
    ConflictStrategy,
    Direction,
    ItemStatus,
    Origin,
    TransferAction,
)

__all__ = [
    # Config
    "ConfigError",
    "MigrationConfig",
    "MigrationJob",
    "ServerConfig",
    "expand_path",
    "job_slug",
    "load_config",
    # Types
    "ConflictStrategy",
    "Direction",
    "ItemStatus",
    "Origin",
    "TransferAction",
]
