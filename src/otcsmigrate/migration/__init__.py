"""Migration engine.

This package provides:
- Discovery: Scan both sides of a job and classify files
- Conflict resolution: Strategies for modified files
- Transfer: Bounded-concurrency transfers with retry and checkpoints
- Verification and reporting
- MigrationRunner: Orchestrates the phases of a job
"""

from otcsmigrate.migration.audit import AuditLogHandler, audit_extra
from otcsmigrate.migration.checkpoint import Checkpoint, CheckpointRecorder, CheckpointStore
from otcsmigrate.migration.conflicts import (
    AgentConflictAdvisor,
    build_rename,
    parse_decision,
    parse_decisions,
    resolve,
)
from otcsmigrate.migration.discovery import compute_diff, discover, walk
from otcsmigrate.migration.executor import TransferExecutor, TransferOptions
from otcsmigrate.migration.progress import ProgressStats, ProgressTracker
from otcsmigrate.migration.report import (
    MigrationReport,
    ReportResult,
    ReportWriter,
    build_report,
    format_summary,
    render_text_report,
)
from otcsmigrate.migration.retry import RetryOutcome, retry_with_backoff
from otcsmigrate.migration.runner import JobOutcome, MigrationRunner, RunOptions
from otcsmigrate.migration.types import (
    ConflictResolutionError,
    Decision,
    DiscoveryError,
    Entry,
    LocalEntry,
    Manifest,
    ManifestItem,
    ManifestSummary,
    MigrationError,
    RemoteEntry,
    TransferAbortedError,
    TransferResult,
    TransferSummary,
    VerificationItem,
    VerificationReport,
    VerificationSummary,
)
from otcsmigrate.migration.verify import Verifier

__all__ = [
    # Errors
    "ConflictResolutionError",
    "DiscoveryError",
    "MigrationError",
    "TransferAbortedError",
    # Types
    "Decision",
    "Entry",
    "LocalEntry",
    "Manifest",
    "ManifestItem",
    "ManifestSummary",
    "RemoteEntry",
    "TransferResult",
    "TransferSummary",
    "VerificationItem",
    "VerificationReport",
    "VerificationSummary",
    # Discovery
    "compute_diff",
    "discover",
    "walk",
    # Conflicts
    "AgentConflictAdvisor",
    "build_rename",
    "parse_decision",
    "parse_decisions",
    "resolve",
    # Transfer
    "Checkpoint",
    "CheckpointRecorder",
    "CheckpointStore",
    "ProgressStats",
    "ProgressTracker",
    "RetryOutcome",
    "TransferExecutor",
    "TransferOptions",
    "retry_with_backoff",
    # Verification and reports
    "MigrationReport",
    "ReportResult",
    "ReportWriter",
    "Verifier",
    "build_report",
    "format_summary",
    "render_text_report",
    # Orchestration
    "AuditLogHandler",
    "JobOutcome",
    "MigrationRunner",
    "RunOptions",
    "audit_extra",
]
