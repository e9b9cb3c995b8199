"""Job inspection commands for the otcsmigrate CLI.

Commands:
- jobs: List configured jobs
- checkpoint: Show the saved checkpoint of a job
"""

from __future__ import annotations

import sys

import click

from otcsmigrate.cli.config import get_checkpoints_dir, get_config_file
from otcsmigrate.core.config import ConfigError, MigrationConfig, load_config
from otcsmigrate.migration.checkpoint import CheckpointStore


def _load(config_path: str | None) -> MigrationConfig:
    try:
        return load_config(get_config_file(config_path))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to the jobs file.")
def jobs(config_path: str | None) -> None:
    """List configured jobs."""
    config = _load(config_path)
    if not config.jobs:
        click.echo("No jobs configured.")
        return

    for job in config.jobs:
        click.echo(click.style(job.name, bold=True))
        click.echo(f"  Direction:   {job.direction.value}")
        click.echo(f"  Source:      {job.source}")
        click.echo(f"  Destination: {job.destination}")
        click.echo(
            f"  Strategy:    {job.conflict_strategy.value}, "
            f"concurrency {job.effective_concurrency}, retries {job.retries}"
        )
        if job.extensions:
            click.echo(f"  Extensions:  {', '.join(job.extensions)}")


@click.command()
@click.argument("job_name")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to the jobs file.")
def checkpoint(job_name: str, config_path: str | None) -> None:
    """Show the saved checkpoint of JOB_NAME."""
    config = _load(config_path)
    if config.get_job(job_name) is None:
        click.echo(f"Error: Job not found: {job_name}", err=True)
        sys.exit(1)

    store = CheckpointStore(get_checkpoints_dir())
    if not store.exists(job_name):
        click.echo(f"No checkpoint for job: {job_name}")
        return

    state = store.load(job_name)
    click.echo(f"Checkpoint: {store.path_for(job_name)}")
    if state.timestamp is not None:
        click.echo(f"Saved:      {state.timestamp.isoformat()}")
    click.echo(f"Completed:  {len(state.completed)}")
    click.echo(f"Failed:     {len(state.failed)}")
    if state.failed:
        click.echo(click.style("\nFailed files:", fg="red"))
        for path, error in sorted(state.failed.items()):
            click.echo(f"  ✗ {path}: {error}")
