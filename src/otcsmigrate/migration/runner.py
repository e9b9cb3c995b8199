"""Migration runner: orchestrates the phases of a job.

Phases:
    1. init      - Resolve providers and roots, apply overrides
    2. discover  - Scan both sides and build the manifest
    3. resolve   - Obtain agent decisions for conflicts (agent strategy only)
    4. transfer  - Bounded-concurrency transfers with checkpointing
    5. verify    - Size verification of transferred files
    6. report    - JSON and text reports, optional upload
    7. cleanup   - Logout (run_all only)

Only discovery errors and a lost session stop a job. Conflict-resolution
failures degrade the job to the skip strategy; verification and report
problems are logged and recorded in the report.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from otcsmigrate.core.types import ConflictStrategy, ItemStatus
from otcsmigrate.migration.audit import audit_extra
from otcsmigrate.migration.conflicts import AgentConflictAdvisor
from otcsmigrate.migration.discovery import discover
from otcsmigrate.migration.executor import TransferExecutor, TransferOptions
from otcsmigrate.migration.providers import LocalProvider
from otcsmigrate.migration.report import ReportWriter, build_report
from otcsmigrate.migration.types import ConflictResolutionError
from otcsmigrate.migration.verify import Verifier

if TYPE_CHECKING:
    from otcsmigrate.client.api import OTCSClient
    from otcsmigrate.client.llm import TextGenerator
    from otcsmigrate.core.config import MigrationJob
    from otcsmigrate.migration.checkpoint import CheckpointStore
    from otcsmigrate.migration.providers import StorageProvider
    from otcsmigrate.migration.report import MigrationReport, ReportResult
    from otcsmigrate.migration.types import Handle, Manifest, TransferSummary, VerificationReport

logger = logging.getLogger(__name__)

# Number of items listed per category in the dry-run preview
PREVIEW_LIMIT = 20


@dataclass
class RunOptions:
    """Command-line level options of a run."""

    dry_run: bool = False
    resume: bool = False
    concurrency: int | None = None
    cancel_event: threading.Event | None = None
    on_progress: Callable[[str], None] | None = None
    sleep: Callable[[float], None] = time.sleep


@dataclass
class JobOutcome:
    """Everything one job run produced."""

    job: MigrationJob
    manifest: Manifest
    transfer: TransferSummary
    verification: VerificationReport | None
    report: MigrationReport
    report_result: ReportResult | None = None


class MigrationRunner:
    """Runs migration jobs against one remote provider.

    Usage:
        runner = MigrationRunner(RemoteProvider(client), store, reports_dir,
                                 generator=generator, client=client)
        outcomes = runner.run_all(config.jobs, RunOptions(resume=True))
    """

    def __init__(
        self,
        remote: StorageProvider,
        store: CheckpointStore,
        reports_dir: Path,
        generator: TextGenerator | None = None,
        client: OTCSClient | None = None,
        local_factory: Callable[[Path], StorageProvider] = LocalProvider,
    ) -> None:
        self._remote = remote
        self._store = store
        self._reports_dir = Path(reports_dir)
        self._generator = generator
        self._client = client
        self._local_factory = local_factory

    def _sides(self, job: MigrationJob) -> tuple[StorageProvider, Handle, StorageProvider, Handle]:
        local = self._local_factory(job.local_root)
        if job.direction.is_upload:
            return local, job.local_root, self._remote, job.remote_root
        return self._remote, job.remote_root, local, job.local_root

    def run(self, job: MigrationJob, options: RunOptions | None = None) -> JobOutcome:
        """Run one job through all phases.

        Raises:
            DiscoveryError: If either side could not be enumerated.
            TransferAbortedError: If the session was lost during transfer.
        """
        options = options or RunOptions()
        start_time = datetime.now(UTC)
        banner = "=" * 60
        logger.info(banner)
        logger.info(f"Starting job: {job.name}")
        logger.info(f"Direction: {job.direction.value}")
        logger.info(f"Source: {job.source}")
        logger.info(f"Destination: {job.destination}")
        logger.info(banner)

        logger.info(
            "Initializing migration job",
            extra=audit_extra("phase", phase="init", status="start", summary="Initializing migration job"),
        )
        job = job.with_overrides(concurrency=options.concurrency)
        source, source_root, destination, dest_root = self._sides(job)
        logger.info(
            "Initialization complete",
            extra=audit_extra("phase", phase="init", status="complete", summary="Initialization complete"),
        )

        manifest = discover(job, source, source_root, destination, dest_root)

        if options.dry_run:
            self._log_preview(manifest)

        decisions: dict[str, str] = {}
        conflicts = manifest.conflicts
        if conflicts and not options.dry_run:
            job, decisions = self._resolve_conflicts(job, manifest)

        executor = TransferExecutor(job, source, destination, dest_root, self._store)
        transfer = executor.transfer(
            manifest,
            TransferOptions(
                resume=options.resume,
                decisions=decisions,
                dry_run=options.dry_run,
                cancel_event=options.cancel_event,
                sleep=options.sleep,
                on_progress=options.on_progress,
            ),
        )

        verification = None
        if job.verify and transfer.stats.completed > 0 and not options.dry_run:
            checkpoint = executor.checkpoint
            verification = Verifier(destination).verify(
                transfer.results, checkpoint.node_ids if checkpoint else None
            )

        report = build_report(job, manifest, transfer, verification, start_time, datetime.now(UTC))
        outcome = JobOutcome(
            job=job,
            manifest=manifest,
            transfer=transfer,
            verification=verification,
            report=report,
        )
        if options.dry_run:
            return outcome

        writer = ReportWriter(
            self._reports_dir,
            generator=self._generator,
            uploader=self._remote,
        )
        try:
            outcome.report_result = writer.write(report, job)
        except OSError as e:
            logger.error(f"Failed to write report: {e}")
        return outcome

    def _resolve_conflicts(
        self, job: MigrationJob, manifest: Manifest
    ) -> tuple[MigrationJob, dict[str, str]]:
        conflicts = manifest.conflicts
        logger.info(
            f"Resolving {len(conflicts)} conflicts",
            extra=audit_extra(
                "phase", phase="resolve", status="start", summary=f"Resolving {len(conflicts)} conflicts"
            ),
        )

        decisions: dict[str, str] = {}
        if job.conflict_strategy == ConflictStrategy.AGENT:
            if self._generator is None:
                logger.warning("ANTHROPIC_API_KEY not set, falling back to 'skip' strategy for conflicts")
                job = job.with_overrides(conflict_strategy=ConflictStrategy.SKIP)
            else:
                try:
                    decisions = AgentConflictAdvisor(self._generator).decide(job, conflicts)
                except ConflictResolutionError as e:
                    logger.warning(f"{e}; falling back to 'skip' strategy for conflicts")
                    job = job.with_overrides(conflict_strategy=ConflictStrategy.SKIP)

        logger.info(
            f"Conflict strategy: {job.conflict_strategy.value}",
            extra=audit_extra(
                "phase",
                phase="resolve",
                status="complete",
                summary=f"Conflict strategy: {job.conflict_strategy.value}",
                details={"decisions": len(decisions)},
            ),
        )
        return job, decisions

    def _log_preview(self, manifest: Manifest) -> None:
        summary = manifest.summary
        logger.info("=== DRY RUN MODE ===")
        logger.info(f"Would transfer: {summary.new} new files")
        logger.info(f"Would skip: {summary.existing} existing files")
        logger.info(f"Conflicts: {summary.modified} modified files")
        logger.info(f"Orphans: {summary.orphans} (destination only)")
        logger.info(f"Total data: {summary.total_bytes / 1024 / 1024:.1f} MB")

        new_items = manifest.with_status(ItemStatus.NEW)
        if new_items:
            logger.info(f"New files (first {PREVIEW_LIMIT}):")
            for item in new_items[:PREVIEW_LIMIT]:
                logger.info(f"  + {item.relative_path} ({item.source.size / 1024:.1f} KB)")

        if manifest.conflicts:
            logger.info(f"Conflicts (first {PREVIEW_LIMIT}):")
            for item in manifest.conflicts[:PREVIEW_LIMIT]:
                logger.info(f"  ~ {item.relative_path}: {item.conflict_reason}")

    def run_all(
        self,
        jobs: list[MigrationJob],
        options: RunOptions | None = None,
        on_outcome: Callable[[JobOutcome], None] | None = None,
    ) -> list[JobOutcome]:
        """Run jobs in sequence, then log out.

        The first job that raises stops the sequence. Jobs are not started
        once cancellation has been requested.

        Args:
            jobs: Jobs to run, in order.
            options: Options applied to every job.
            on_outcome: Called after each finished job.
        """
        options = options or RunOptions()
        outcomes: list[JobOutcome] = []
        try:
            for job in jobs:
                if options.cancel_event is not None and options.cancel_event.is_set():
                    logger.warning(f"Cancellation requested; not starting job: {job.name}")
                    break
                outcome = self.run(job, options)
                outcomes.append(outcome)
                if on_outcome is not None:
                    on_outcome(outcome)
        finally:
            self.cleanup()
        return outcomes

    def cleanup(self) -> None:
        """End the remote session, if one is attached."""
        logger.info(
            "Cleaning up",
            extra=audit_extra("phase", phase="cleanup", status="start", summary="Cleaning up"),
        )
        if self._client is not None:
            try:
                self._client.logout()
                logger.info("Logged out from Content Server")
            except Exception as e:
                logger.debug(f"Logout failed: {e}")
        logger.info(
            "Cleanup complete",
            extra=audit_extra("phase", phase="cleanup", status="complete", summary="Cleanup complete"),
        )
