"""Transfer executor: runs the resolved manifest against the destination.

Items are processed in fixed-size batches. All items of a batch run
concurrently on a thread pool and the next batch starts only once every
item of the current one has settled, so at most `concurrency` transfers are
ever in flight.

Per item:
    1. Resolve the decision (pure, see conflicts.resolve)
    2. Skip, or read from the source and write to the destination with
       per-file retry
    3. Record the outcome in the checkpoint (lock-guarded)

The checkpoint is flushed every FLUSH_INTERVAL processed items and once more
at the end. Dry runs do no I/O and write no checkpoint.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from otcsmigrate.client.api import AuthenticationError
from otcsmigrate.core.types import ItemStatus, TransferAction
from otcsmigrate.migration.audit import audit_extra
from otcsmigrate.migration.checkpoint import Checkpoint, CheckpointRecorder, CheckpointStore
from otcsmigrate.migration.conflicts import resolve
from otcsmigrate.migration.progress import ProgressTracker
from otcsmigrate.migration.retry import retry_with_backoff
from otcsmigrate.migration.types import (
    Decision,
    Handle,
    ManifestItem,
    TransferAbortedError,
    TransferResult,
    TransferSummary,
)

if TYPE_CHECKING:
    from otcsmigrate.core.config import MigrationJob
    from otcsmigrate.migration.providers import StorageProvider
    from otcsmigrate.migration.types import Manifest

logger = logging.getLogger(__name__)

# Checkpoint flush cadence, in processed items
FLUSH_INTERVAL = 100


@dataclass
class TransferOptions:
    """Per-run options of the transfer phase.

    Attributes:
        resume: Start from the saved checkpoint instead of an empty one.
        concurrency: Override of the job's concurrency (clamped to 1..100).
        decisions: Agent decisions keyed by relative path.
        dry_run: Classify and report only; no I/O, no checkpoint.
        cancel_event: When set, no further batch is started.
        sleep: Sleep used between retry attempts.
        on_progress: Receives throttled progress lines.
        now: Timestamp used for rename targets (defaults to run start).
    """

    resume: bool = False
    concurrency: int | None = None
    decisions: Mapping[str, str] = field(default_factory=dict)
    dry_run: bool = False
    cancel_event: threading.Event | None = None
    sleep: Callable[[float], None] = time.sleep
    on_progress: Callable[[str], None] | None = None
    now: datetime | None = None


class TransferExecutor:
    """Executes one job's transfers between two storage providers.

    Usage:
        executor = TransferExecutor(job, source, destination, dest_root, store)
        summary = executor.transfer(manifest, TransferOptions(resume=True))
    """

    def __init__(
        self,
        job: MigrationJob,
        source: StorageProvider,
        destination: StorageProvider,
        dest_root: Handle,
        store: CheckpointStore | None = None,
    ) -> None:
        self._job = job
        self._source = source
        self._destination = destination
        self._dest_root = dest_root
        self._store = store

        # Relative directory -> destination container, filled before transfers start
        self._folders: dict[str, Handle] = {"": dest_root}
        self._recorder: CheckpointRecorder | None = None

    @property
    def checkpoint(self) -> Checkpoint | None:
        """Checkpoint state of the last run (None before the first run)."""
        return self._recorder.snapshot() if self._recorder else None

    def transfer(self, manifest: Manifest, options: TransferOptions | None = None) -> TransferSummary:
        """Run the transfer phase for a manifest.

        Raises:
            TransferAbortedError: If the session was lost. The checkpoint is
                flushed before raising.
        """
        options = options or TransferOptions()
        job = self._job
        concurrency = (
            job.with_overrides(concurrency=options.concurrency).effective_concurrency
        )
        now = options.now or datetime.now(UTC)

        checkpoint = Checkpoint(job_name=job.name)
        if options.resume and self._store is not None:
            checkpoint = self._store.load(job.name)
        store = None if options.dry_run else self._store
        self._recorder = recorder = CheckpointRecorder(checkpoint, store)

        pending = [
            item
            for item in manifest.items
            if item.status != ItemStatus.ORPHAN and not recorder.is_completed(item.relative_path)
        ]
        if options.resume:
            logger.info(f"Resuming: {len(manifest.items) - len(pending)} items already handled")

        progress = ProgressTracker(
            total=len(pending),
            total_bytes=sum(i.source.size for i in pending),
            on_update=options.on_progress,
        )

        logger.info(
            f"Transferring {len(pending)} items with concurrency {concurrency}",
            extra=audit_extra(
                "phase",
                phase="transfer",
                status="start",
                summary=f"Transferring {len(pending)} items",
                details={"concurrency": concurrency, "dryRun": options.dry_run},
            ),
        )

        if job.direction.is_upload and job.recursive and not options.dry_run:
            self._create_folders(manifest, pending)

        results: list[TransferResult] = []
        cancelled = False
        session_lost: AuthenticationError | None = None

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="transfer") as pool:
            for start in range(0, len(pending), concurrency):
                if options.cancel_event is not None and options.cancel_event.is_set():
                    logger.warning(
                        f"Cancellation requested; stopping with {len(pending) - start} items left"
                    )
                    cancelled = True
                    break

                batch = pending[start:start + concurrency]
                futures = [
                    pool.submit(self._process, item, options, now, progress)
                    for item in batch
                ]
                wait(futures)

                for future in futures:
                    result, auth_error = future.result()
                    results.append(result)
                    if auth_error is not None:
                        session_lost = auth_error

                processed = start + len(batch)
                if processed // FLUSH_INTERVAL > start // FLUSH_INTERVAL:
                    recorder.flush()

                if session_lost is not None:
                    break

        recorder.flush()

        if session_lost is not None:
            logger.error(f"Session lost during transfer: {session_lost}")
            raise TransferAbortedError(f"Session lost during transfer: {session_lost}") from session_lost

        stats = progress.stats()
        logger.info(
            f"Transfer complete: {stats.completed} transferred, {stats.skipped} skipped, "
            f"{stats.failed} failed",
            extra=audit_extra(
                "phase",
                phase="transfer",
                status="complete",
                summary=f"{stats.completed} transferred, {stats.skipped} skipped, "
                f"{stats.failed} failed",
                details={
                    "transferredBytes": stats.transferred_bytes,
                    "durationSec": round(stats.duration_sec, 3),
                    "cancelled": cancelled,
                },
            ),
        )
        return TransferSummary(
            results=results, stats=stats, cancelled=cancelled, dry_run=options.dry_run
        )

    def _create_folders(self, manifest: Manifest, pending: list[ManifestItem]) -> None:
        """Create every destination folder once, shallowest first.

        Failures are logged and ignored; a folder still missing is created
        by the file transfer that needs it.
        """
        directories = {e.relative_path for e in manifest.source_items if e.is_directory}
        directories.update(item.source.parent_dir for item in pending)
        directories.discard("")

        for relative_dir in sorted(directories, key=lambda d: (d.count("/"), d)):
            try:
                self._folders[relative_dir] = self._destination.ensure_path(
                    self._dest_root, relative_dir
                )
            except AuthenticationError:
                raise
            except Exception as e:
                logger.debug(f"Could not pre-create folder {relative_dir}: {e}")

        logger.info(f"Prepared {len(self._folders) - 1} destination folders")

    def _container_for(self, relative_dir: str) -> Handle:
        container = self._folders.get(relative_dir)
        if container is None:
            container = self._destination.ensure_path(self._dest_root, relative_dir)
        return container

    def _process(
        self,
        item: ManifestItem,
        options: TransferOptions,
        now: datetime,
        progress: ProgressTracker,
    ) -> tuple[TransferResult, AuthenticationError | None]:
        """Handle one item. Never raises; a lost session is returned."""
        started = time.monotonic()
        path = item.relative_path
        decision = resolve(item, self._job.conflict_strategy, options.decisions, now=now)

        if not decision.transfer:
            logger.debug(f"Skipped {path}: {decision.reason}")
            progress.update(0, TransferAction.SKIPPED)
            self._audit(item, "skipped", started, reason=decision.reason)
            return TransferResult(
                item=item,
                success=True,
                action=TransferAction.SKIPPED,
                reason=decision.reason,
            ), None

        if options.dry_run:
            progress.update(item.source.size, TransferAction.TRANSFERRED)
            return TransferResult(
                item=item,
                success=True,
                action=TransferAction.TRANSFERRED,
                reason=decision.reason,
            ), None

        try:
            outcome = retry_with_backoff(
                lambda: self._copy(item, decision),
                max_attempts=self._job.retries,
                sleep=options.sleep,
                description=f"Transfer {path}",
            )
        except AuthenticationError as e:
            return self._failed(item, decision, started, progress, str(e), attempts=1), e
        except Exception as e:
            return self._failed(
                item, decision, started, progress, str(e), attempts=max(self._job.retries, 1)
            ), None

        dest_id = outcome.value
        self._recorder.record_success(
            path, dest_id if self._job.direction.is_upload and isinstance(dest_id, int) else None
        )
        progress.update(item.source.size, TransferAction.TRANSFERRED)
        self._audit(item, "success", started, dest_id=dest_id)
        return TransferResult(
            item=item,
            success=True,
            action=TransferAction.TRANSFERRED,
            dest_id=dest_id,
            duration_ms=(time.monotonic() - started) * 1000,
            reason=decision.reason,
            attempts=outcome.attempts,
        ), None

    def _copy(self, item: ManifestItem, decision: Decision) -> Handle:
        """Read the source file and write it to the destination."""
        data = self._source.read(item.source.handle)
        replace = None
        if decision.rename is None and item.dest is not None:
            replace = item.dest.handle
        parent = self._container_for(item.source.parent_dir)
        return self._destination.write(
            parent,
            decision.rename or item.source.name,
            data,
            item.source.mime_type,
            replace=replace,
        )

    def _failed(
        self,
        item: ManifestItem,
        decision: Decision,
        started: float,
        progress: ProgressTracker,
        error: str,
        attempts: int,
    ) -> TransferResult:
        self._recorder.record_failure(item.relative_path, error)
        progress.update(0, TransferAction.FAILED)
        self._audit(item, "failed", started, error=error)
        logger.error(f"Failed to transfer {item.relative_path}: {error}")
        return TransferResult(
            item=item,
            success=False,
            action=TransferAction.FAILED,
            error=error,
            duration_ms=(time.monotonic() - started) * 1000,
            reason=decision.reason,
            attempts=attempts,
        )

    def _audit(
        self,
        item: ManifestItem,
        status: str,
        started: float,
        dest_id: Handle | None = None,
        error: str | None = None,
        reason: str | None = None,
    ) -> None:
        source_id = item.source.handle
        logger.info(
            f"{status}: {item.relative_path}",
            extra=audit_extra(
                "file",
                file=item.relative_path,
                action="upload" if self._job.direction.is_upload else "download",
                status=status,
                size=item.source.size,
                duration=round((time.monotonic() - started) * 1000),
                sourceId=source_id if isinstance(source_id, int) else None,
                destId=dest_id if isinstance(dest_id, int) else None,
                error=error,
                reason=reason,
            ),
        )
