"""Run command for the otcsmigrate CLI.

Commands:
- run: Run one job (--job) or every job (--all)
"""

from __future__ import annotations

import logging
import signal
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from otcsmigrate.cli.config import get_checkpoints_dir, get_config_file, get_logs_dir
from otcsmigrate.client.api import APIError, OTCSClient
from otcsmigrate.client.llm import AnthropicTextGenerator
from otcsmigrate.core.config import ConfigError, MigrationJob, load_config
from otcsmigrate.migration.audit import AuditLogHandler
from otcsmigrate.migration.checkpoint import CheckpointStore
from otcsmigrate.migration.providers import RemoteProvider
from otcsmigrate.migration.report import format_summary
from otcsmigrate.migration.runner import JobOutcome, MigrationRunner, RunOptions
from otcsmigrate.migration.types import MigrationError

PACKAGE_LOGGER = "otcsmigrate"


class ProgressLine:
    """Single, rewritable progress line on stdout."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.lock = threading.Lock()
        self._text = ""

    def show(self, text: str) -> None:
        if not self.enabled:
            return
        with self.lock:
            self.clear()
            self._text = text
            self.redraw()

    def clear(self) -> None:
        """Erase the line (caller holds the lock)."""
        if self._text:
            sys.stdout.write("\r" + " " * len(self._text) + "\r")
            sys.stdout.flush()

    def redraw(self) -> None:
        """Write the line again (caller holds the lock)."""
        if self._text:
            sys.stdout.write(self._text)
            sys.stdout.flush()

    def finish(self) -> None:
        with self.lock:
            if self._text:
                sys.stdout.write("\n")
                sys.stdout.flush()
                self._text = ""


class ProgressLineAwareHandler(logging.Handler):
    """Logging handler that coordinates with the progress line.

    Clears the progress line before printing log messages and restores it after.
    """

    def __init__(self, progress: ProgressLine) -> None:
        super().__init__()
        self._progress = progress

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._progress.lock:
                self._progress.clear()
                # Use stdout (same as the progress line) to prevent interleaving
                sys.stdout.write(msg + "\n")
                sys.stdout.flush()
                self._progress.redraw()
        except Exception:
            self.handleError(record)


def setup_logging(verbose: bool, progress: ProgressLine, logs_dir: Path) -> list[logging.Handler]:
    """Install the console and audit handlers on the package logger.

    Returns:
        The installed handlers (removed again by teardown_logging).
    """
    console = ProgressLineAwareHandler(progress)
    console.setFormatter(logging.Formatter("%(message)s"))
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    audit = AuditLogHandler(logs_dir)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in package_logger.handlers[:]:
        package_logger.removeHandler(handler)
    package_logger.addHandler(console)
    package_logger.addHandler(audit)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    package_logger.propagate = False
    return [console, audit]


def teardown_logging(handlers: list[logging.Handler]) -> None:
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in handlers:
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True


@contextmanager
def cancel_on_signal(event: threading.Event) -> Iterator[None]:
    """Set `event` on SIGINT/SIGTERM for the duration of the block."""

    def _handler(signum: int, frame: object) -> None:
        name = signal.Signals(signum).name
        click.echo(f"\nReceived {name}, finishing current batch and saving checkpoint...", err=True)
        event.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # Not on the main thread; leave default handling in place
            pass
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def select_jobs(jobs: list[MigrationJob], job_name: str | None, run_all: bool) -> list[MigrationJob]:
    """Pick the jobs to run; exits with an error if the selection is invalid."""
    if run_all:
        return list(jobs)
    if not job_name:
        click.echo("Error: Please specify --job <name> or --all", err=True)
        sys.exit(1)
    for job in jobs:
        if job.name == job_name:
            return [job]
    click.echo(f"Error: Job not found: {job_name}", err=True)
    click.echo("Available jobs:", err=True)
    for job in jobs:
        click.echo(f"  - {job.name}", err=True)
    sys.exit(1)


@click.command()
@click.option("--job", "-j", "job_name", help="Name of the job to run.")
@click.option("--all", "-a", "run_all", is_flag=True, help="Run every configured job.")
@click.option("--dry-run", is_flag=True, help="Show what would be transferred without transferring.")
@click.option("--concurrency", "-c", type=click.IntRange(min=1), help="Override the job's concurrency.")
@click.option("--resume", "-r", is_flag=True, help="Resume from the job's checkpoint.")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), help="Path to the jobs file.")
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def run(
    job_name: str | None,
    run_all: bool,
    dry_run: bool,
    concurrency: int | None,
    resume: bool,
    config_path: str | None,
    no_progress: bool,
    verbose: bool,
) -> None:
    """Run migration jobs.

    Discovers both sides, resolves conflicts, transfers, verifies and
    writes a report for each selected job.
    """
    try:
        config = load_config(get_config_file(config_path))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    jobs = select_jobs(config.jobs, job_name, run_all)

    progress = ProgressLine(enabled=not no_progress)
    handlers = setup_logging(verbose, progress, get_logs_dir())
    client = OTCSClient(config.server)
    generator = AnthropicTextGenerator(config.anthropic_api_key) if config.anthropic_api_key else None

    try:
        try:
            client.authenticate()
        except APIError as e:
            click.echo(f"Error: Failed to authenticate: {e}", err=True)
            sys.exit(1)
        click.echo(f"Authenticated to Content Server as {config.server.username}")

        runner = MigrationRunner(
            RemoteProvider(client),
            CheckpointStore(get_checkpoints_dir()),
            get_logs_dir(),
            generator=generator,
            client=client,
        )
        cancel_event = threading.Event()
        options = RunOptions(
            dry_run=dry_run,
            resume=resume,
            concurrency=concurrency,
            cancel_event=cancel_event,
            on_progress=progress.show,
        )

        def on_outcome(outcome: JobOutcome) -> None:
            progress.finish()
            click.echo(format_summary(outcome.report))
            if outcome.report_result is not None:
                click.echo(f"Report: {outcome.report_result.json_path}")
                if outcome.report_result.uploaded_id is not None:
                    click.echo(
                        f"Report uploaded to Content Server: node ID {outcome.report_result.uploaded_id}"
                    )

        with cancel_on_signal(cancel_event):
            try:
                runner.run_all(jobs, options, on_outcome=on_outcome)
            except (MigrationError, APIError) as e:
                progress.finish()
                click.echo(f"Error: Migration failed: {e}", err=True)
                sys.exit(1)
    finally:
        progress.finish()
        teardown_logging(handlers)
        if generator is not None:
            generator.close()
        client.close()
