"""Command-line interface for otcsmigrate.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Run one or all migration jobs
- jobs: List configured jobs
- checkpoint: Show the saved checkpoint of a job
"""

from __future__ import annotations

import click

from otcsmigrate.cli.config import (
    get_checkpoints_dir,
    get_config_dir,
    get_config_file,
    get_logs_dir,
)
from otcsmigrate.cli.jobs import checkpoint, jobs
from otcsmigrate.cli.run import run


@click.group()
@click.version_option(package_name="otcsmigrate")
def cli() -> None:
    """otcsmigrate - Migrate files between a local folder and Content Server."""


# Migration commands
cli.add_command(run)

# Inspection commands
cli.add_command(jobs)
cli.add_command(checkpoint)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_checkpoints_dir",
    "get_config_dir",
    "get_config_file",
    "get_logs_dir",
]
