"""Post-transfer verification.

Every successfully transferred file is looked up again on the destination
and its size compared with the source size. The repository exposes no
checksum, so size is the only check. Verification never changes transfer
or checkpoint state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict
from typing import TYPE_CHECKING

from otcsmigrate.client.api import NotFoundError
from otcsmigrate.core.types import TransferAction
from otcsmigrate.migration.audit import audit_extra
from otcsmigrate.migration.types import (
    VerificationItem,
    VerificationReport,
    VerificationSummary,
)

if TYPE_CHECKING:
    from otcsmigrate.migration.providers import StorageProvider
    from otcsmigrate.migration.types import TransferResult

logger = logging.getLogger(__name__)


class Verifier:
    """Size verification against the destination provider."""

    def __init__(self, destination: StorageProvider) -> None:
        self._destination = destination

    def verify(
        self,
        results: list[TransferResult],
        node_ids: Mapping[str, int] | None = None,
    ) -> VerificationReport:
        """Verify the transferred results.

        Args:
            results: Transfer results of the run.
            node_ids: Destination IDs from the checkpoint, used when a
                result carries none.

        Returns:
            One item per transferred file; skipped and failed results are
            only counted.
        """
        logger.info(
            "Verifying transferred files",
            extra=audit_extra("phase", phase="verify", status="start", summary="Verifying transfers"),
        )

        items: list[VerificationItem] = []
        summary = VerificationSummary(total=len(results))
        for result in results:
            if not (result.success and result.action == TransferAction.TRANSFERRED):
                summary.skipped += 1
                continue

            item = self._check(result, node_ids or {})
            items.append(item)
            if item.passed:
                summary.passed += 1
            else:
                summary.failed += 1
                logger.warning(f"Verification failed for {item.file}: {item.error}")

        logger.info(
            f"Verification complete: {summary.passed} passed, {summary.failed} failed",
            extra=audit_extra(
                "phase",
                phase="verify",
                status="complete",
                summary=f"{summary.passed} passed, {summary.failed} failed",
                details=asdict(summary),
            ),
        )
        return VerificationReport(items=items, summary=summary)

    def _check(self, result: TransferResult, node_ids: Mapping[str, int]) -> VerificationItem:
        path = result.item.relative_path
        expected = result.item.source.size
        dest_id = result.dest_id if result.dest_id is not None else node_ids.get(path)

        if dest_id is None:
            return VerificationItem(
                file=path,
                expected_size=expected,
                passed=False,
                error="No destination node ID recorded",
            )

        try:
            entry = self._destination.stat(dest_id)
        except (FileNotFoundError, NotFoundError):
            return VerificationItem(
                file=path,
                expected_size=expected,
                passed=False,
                expected_id=dest_id,
                exists=False,
                error="File does not exist",
            )
        except Exception as e:
            return VerificationItem(
                file=path,
                expected_size=expected,
                passed=False,
                expected_id=dest_id,
                error=str(e),
            )

        if entry.size != expected:
            return VerificationItem(
                file=path,
                expected_size=expected,
                passed=False,
                expected_id=dest_id,
                exists=True,
                actual_size=entry.size,
                error=f"Size mismatch: expected {expected}, got {entry.size}",
            )

        return VerificationItem(
            file=path,
            expected_size=expected,
            passed=True,
            expected_id=dest_id,
            exists=True,
            actual_size=entry.size,
        )
