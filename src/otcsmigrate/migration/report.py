"""Migration reports.

This module provides:
- build_report: Pure aggregation of manifest, transfer and verification
- render_text_report: Plain-text "chain of custody" report
- format_summary: Short console summary block
- ReportWriter: Persists reports, asks for an executive summary and
  optionally uploads the text report to the repository

Neither the executive summary nor the upload can fail a job: errors are
logged and replaced by a placeholder text or a missing upload ID.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from otcsmigrate.core.config import job_slug
from otcsmigrate.core.types import ItemStatus, TransferAction
from otcsmigrate.migration.audit import audit_extra
from otcsmigrate.migration.progress import MEGABYTE

if TYPE_CHECKING:
    from otcsmigrate.client.llm import TextGenerator
    from otcsmigrate.core.config import MigrationJob
    from otcsmigrate.migration.providers import StorageProvider
    from otcsmigrate.migration.types import Manifest, TransferSummary, VerificationReport

logger = logging.getLogger(__name__)

VERIFIED = "verified"
TEXT_REPORT_FILE_LIMIT = 100

NO_SUMMARY_NOT_REQUESTED = "No executive summary (generateReport not enabled for this job)."
NO_SUMMARY_NO_KEY = "No executive summary (ANTHROPIC_API_KEY not configured)."
NO_SUMMARY_FAILED = "Unable to generate executive summary."


@dataclass
class ReportSummary:
    total_files: int = 0
    transferred: int = 0
    skipped: int = 0
    failed: int = 0
    orphans: int = 0
    verified: int = 0
    verification_failed: int = 0
    total_bytes: int = 0
    avg_throughput: str = "N/A"


@dataclass
class ReportFile:
    """One row of the per-file status table."""

    name: str
    source_path: str
    dest_path: str
    size: int
    status: str
    timestamp: str
    error: str | None = None
    source_id: int | None = None
    dest_id: int | str | None = None


@dataclass
class ReportConflict:
    name: str
    path: str
    resolution: str
    reason: str
    outcome: str | None = None


@dataclass
class ReportVerification:
    passed: int = 0
    failed: int = 0
    details: list[str] = field(default_factory=list)


@dataclass
class MigrationReport:
    """Structured result of one job run."""

    job_name: str
    direction: str
    start_time: datetime
    end_time: datetime
    source: str
    destination: str
    summary: ReportSummary
    files: list[ReportFile]
    conflicts: list[ReportConflict]
    verification: ReportVerification
    dry_run: bool = False
    cancelled: bool = False

    @property
    def duration(self) -> str:
        return f"{(self.end_time - self.start_time).total_seconds():.1f}s"

    def to_dict(self) -> dict[str, Any]:
        """JSON form with camelCase keys."""
        return {
            "jobName": self.job_name,
            "direction": self.direction,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "duration": self.duration,
            "source": self.source,
            "destination": self.destination,
            "dryRun": self.dry_run,
            "cancelled": self.cancelled,
            "summary": {
                "totalFiles": self.summary.total_files,
                "transferred": self.summary.transferred,
                "skipped": self.summary.skipped,
                "failed": self.summary.failed,
                "orphans": self.summary.orphans,
                "verified": self.summary.verified,
                "verificationFailed": self.summary.verification_failed,
                "totalBytes": self.summary.total_bytes,
                "avgThroughput": self.summary.avg_throughput,
            },
            "files": [
                _drop_none(
                    {
                        "name": f.name,
                        "sourcePath": f.source_path,
                        "destPath": f.dest_path,
                        "size": f.size,
                        "status": f.status,
                        "timestamp": f.timestamp,
                        "error": f.error,
                        "sourceId": f.source_id,
                        "destId": f.dest_id,
                    }
                )
                for f in self.files
            ],
            "conflicts": [
                _drop_none(
                    {
                        "name": c.name,
                        "path": c.path,
                        "resolution": c.resolution,
                        "reason": c.reason,
                        "outcome": c.outcome,
                    }
                )
                for c in self.conflicts
            ],
            "verification": {
                "passed": self.verification.passed,
                "failed": self.verification.failed,
                "details": list(self.verification.details),
            },
        }


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


def build_report(
    job: MigrationJob,
    manifest: Manifest,
    transfer: TransferSummary,
    verification: VerificationReport | None,
    start_time: datetime,
    end_time: datetime,
) -> MigrationReport:
    """Aggregate one run into a report. Does no I/O."""
    stats = transfer.stats
    avg_throughput = "N/A"
    if stats.duration_sec > 0:
        avg_throughput = f"{stats.files_per_sec:.2f} files/sec, {stats.mb_per_sec:.2f} MB/sec"

    files: list[ReportFile] = []
    outcomes: dict[str, str] = {}
    for result in transfer.results:
        source = result.item.source
        status = result.action.value
        if verification is not None and result.action == TransferAction.TRANSFERRED:
            checked = verification.for_file(source.relative_path)
            if checked is not None and checked.passed:
                status = VERIFIED
        outcomes[source.relative_path] = result.reason

        source_id = source.handle
        dest_id = result.dest_id
        files.append(
            ReportFile(
                name=source.name,
                source_path=source.relative_path,
                dest_path=source.relative_path,
                size=source.size,
                status=status,
                timestamp=end_time.isoformat(),
                error=result.error,
                source_id=source_id if isinstance(source_id, int) else None,
                dest_id=dest_id if isinstance(dest_id, int) or dest_id is None else str(dest_id),
            )
        )

    conflicts = [
        ReportConflict(
            name=item.source.name,
            path=item.relative_path,
            resolution=job.conflict_strategy.value,
            reason=item.conflict_reason or "Modified file",
            outcome=outcomes.get(item.relative_path),
        )
        for item in manifest.items
        if item.status == ItemStatus.MODIFIED
    ]

    details: list[str] = []
    if verification is not None:
        details = [f"{v.file}: {v.error}" for v in verification.items if not v.passed]

    passed = verification.summary.passed if verification else 0
    failed = verification.summary.failed if verification else 0

    return MigrationReport(
        job_name=job.name,
        direction=job.direction.value,
        start_time=start_time,
        end_time=end_time,
        source=str(job.source),
        destination=str(job.destination),
        summary=ReportSummary(
            total_files=manifest.summary.total_source,
            transferred=stats.completed,
            skipped=stats.skipped,
            failed=stats.failed,
            orphans=manifest.summary.orphans,
            verified=passed,
            verification_failed=failed,
            total_bytes=stats.transferred_bytes,
            avg_throughput=avg_throughput,
        ),
        files=files,
        conflicts=conflicts,
        verification=ReportVerification(passed=passed, failed=failed, details=details),
        dry_run=transfer.dry_run,
        cancelled=transfer.cancelled,
    )


_RULE = "=" * 80
_SECTION = "-" * 80


def _section(title: str) -> list[str]:
    return [_SECTION, title, _SECTION, ""]


def render_text_report(report: MigrationReport, executive_summary: str, generated_at: datetime) -> str:
    """Render the plain-text chain of custody report."""
    s = report.summary
    lines = [
        _RULE,
        "CHAIN OF CUSTODY REPORT",
        _RULE,
        "",
        f"Job Name: {report.job_name}",
        f"Direction: {report.direction}",
        f"Source: {report.source}",
        f"Destination: {report.destination}",
        f"Start Time: {report.start_time.isoformat()}",
        f"End Time: {report.end_time.isoformat()}",
        f"Duration: {report.duration}",
        "",
        *_section("EXECUTIVE SUMMARY"),
        executive_summary.strip(),
        "",
        *_section("DETAILED STATISTICS"),
        f"Total Files:         {s.total_files}",
        f"Transferred:         {s.transferred}",
        f"Skipped:             {s.skipped}",
        f"Failed:              {s.failed}",
        f"Orphans:             {s.orphans}",
        f"Verified:            {s.verified}",
        f"Verification Failed: {s.verification_failed}",
        f"Total Data:          {s.total_bytes / MEGABYTE:.2f} MB",
        f"Throughput:          {s.avg_throughput}",
        "",
        *_section(f"CONFLICTS ({len(report.conflicts)})"),
    ]
    if report.conflicts:
        lines.extend(f"- {c.path}: {c.resolution} ({c.reason})" for c in report.conflicts)
    else:
        lines.append("No conflicts")
    lines.append("")

    lines.extend(_section(f"VERIFICATION FAILURES ({report.verification.failed})"))
    lines.extend(report.verification.details or ["No verification failures"])
    lines.append("")

    lines.extend(_section(f"FILE MANIFEST (showing first {TEXT_REPORT_FILE_LIMIT} files)"))
    for f in report.files[:TEXT_REPORT_FILE_LIMIT]:
        line = f"[{f.status.upper():<11}] {f.source_path} ({f.size / 1024:.1f} KB)"
        if f.error:
            line += f" - ERROR: {f.error}"
        lines.append(line)
    if len(report.files) > TEXT_REPORT_FILE_LIMIT:
        lines.append("")
        lines.append(f"... and {len(report.files) - TEXT_REPORT_FILE_LIMIT} more files")

    lines.extend(["", _RULE, f"Generated: {generated_at.isoformat()}", _RULE, ""])
    return "\n".join(lines)


def format_summary(report: MigrationReport) -> str:
    """Short console summary of a run."""
    s = report.summary
    title = "Dry Run Complete" if report.dry_run else "Migration Complete"
    if report.cancelled:
        title += " (cancelled)"
    rule = "-" * 37
    return "\n".join(
        [
            "",
            f"  {title}",
            f"  {rule}",
            f"  Job:          {report.job_name}",
            f"  Direction:    {report.direction}",
            f"  Duration:     {report.duration}",
            f"  {rule}",
            f"  Transferred:  {s.transferred}",
            f"  Skipped:      {s.skipped}",
            f"  Failed:       {s.failed}",
            f"  Orphans:      {s.orphans}",
            f"  Verified:     {s.verified}/{s.transferred}",
            f"  Total Data:   {s.total_bytes / MEGABYTE:.1f} MB",
            f"  Throughput:   {s.avg_throughput}",
            f"  {rule}",
            "",
        ]
    )


def build_summary_prompt(report: MigrationReport) -> str:
    return f"""You are a document migration specialist. Generate a concise executive summary report for this migration job.

Migration Report Data:
{json.dumps(report.to_dict(), indent=2)}

Generate a professional chain of custody report that includes:
1. Executive Summary (2-3 sentences)
2. Migration Statistics (bullet points)
3. Key Findings (any issues or notable items)
4. Recommendations (if any failures or issues)

Format it as a clean text document suitable for business stakeholders. Be concise and factual."""


@dataclass
class ReportResult:
    """Where a report ended up."""

    json_path: Path
    text_path: Path
    uploaded_id: int | None = None


class ReportWriter:
    """Persists reports and handles the optional summary and upload steps.

    Args:
        reports_dir: Directory the JSON and text reports are written to.
        generator: Text generator for the executive summary, if configured.
        uploader: Provider used to upload the text report (remote side).
        clock: Source of "now" for file names and the generated stamp.
    """

    def __init__(
        self,
        reports_dir: Path,
        generator: TextGenerator | None = None,
        uploader: StorageProvider | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._reports_dir = Path(reports_dir)
        self._generator = generator
        self._uploader = uploader
        self._clock = clock

    def _base_name(self, report: MigrationReport, now: datetime) -> str:
        return f"report-{job_slug(report.job_name)}-{now.strftime('%Y-%m-%dT%H-%M-%S')}"

    def executive_summary(self, report: MigrationReport, job: MigrationJob) -> str:
        """Ask the generator for a summary; never raises."""
        if not job.generate_report:
            return NO_SUMMARY_NOT_REQUESTED
        if self._generator is None:
            return NO_SUMMARY_NO_KEY
        try:
            logger.info("Generating executive summary...")
            return self._generator.generate(build_summary_prompt(report))
        except Exception as e:
            logger.warning(f"Failed to generate executive summary: {e}")
            return NO_SUMMARY_FAILED

    def write(self, report: MigrationReport, job: MigrationJob) -> ReportResult:
        """Save the JSON and text reports, then upload the text report."""
        logger.info(
            f"Generating report for job: {job.name}",
            extra=audit_extra(
                "phase", phase="report", status="start", summary=f"Generating report for job: {job.name}"
            ),
        )
        self._reports_dir.mkdir(parents=True, exist_ok=True)
        now = self._clock()
        base = self._base_name(report, now)

        json_path = self._reports_dir / f"{base}.json"
        json_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        logger.info(f"JSON report saved: {json_path}")

        text = render_text_report(report, self.executive_summary(report, job), now)
        text_path = self._reports_dir / f"{base}.txt"
        text_path.write_text(text, encoding="utf-8")
        logger.info(f"Text report saved: {text_path}")

        result = ReportResult(json_path=json_path, text_path=text_path)
        if job.report_destination is not None and self._uploader is not None:
            result.uploaded_id = self._upload(text_path, job.report_destination)

        logger.info(
            f"Report generated at {json_path}",
            extra=audit_extra(
                "phase",
                phase="report",
                status="complete",
                summary=f"Report generated at {json_path}",
                details={"uploadedId": result.uploaded_id},
            ),
        )
        return result

    def _upload(self, path: Path, destination: int) -> int | None:
        try:
            node_id = self._uploader.write(destination, path.name, path.read_bytes(), "text/plain")
        except Exception as e:
            logger.warning(f"Failed to upload report: {e}")
            return None
        logger.info(f"Report uploaded to Content Server (node ID: {node_id})")
        return node_id if isinstance(node_id, int) else None
