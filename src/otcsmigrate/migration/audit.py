"""JSON-lines audit trail for migration runs.

Stages log as usual; records that carry an "audit" extra are additionally
appended by AuditLogHandler to a daily file (migration-YYYY-MM-DD.log) in
the logs directory, one JSON object per line.

Two kinds of entries exist:
- phase: {"phase", "status", "summary", "details"}
- file: {"file", "action", "status", "size", "duration", "sourceId", "destId", "error"}

Usage:
    logger.info("...", extra=audit_extra("file", file=path, action="upload",
                                         status="success", size=123))
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

AUDIT_ATTR = "audit"


def audit_extra(kind: str, **fields: Any) -> dict[str, dict[str, Any]]:
    """Build the `extra` mapping for an audit record.

    Fields whose value is None are dropped.
    """
    entry = {"kind": kind}
    entry.update({k: v for k, v in fields.items() if v is not None})
    return {AUDIT_ATTR: entry}


class AuditLogHandler(logging.Handler):
    """Logging handler that appends audit records as JSON lines.

    Records without an "audit" extra are ignored, so the handler can be
    attached to the package logger next to the console handler.
    """

    def __init__(self, logs_dir: Path) -> None:
        super().__init__(level=logging.DEBUG)
        self._logs_dir = Path(logs_dir)
        self._logs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def log_path(self, when: datetime) -> Path:
        return self._logs_dir / f"migration-{when.strftime('%Y-%m-%d')}.log"

    def emit(self, record: logging.LogRecord) -> None:
        entry = getattr(record, AUDIT_ATTR, None)
        if not isinstance(entry, dict):
            return
        try:
            when = datetime.fromtimestamp(record.created, tz=UTC)
            line = json.dumps({"timestamp": when.isoformat(), **entry}, default=str)
            with open(self.log_path(when), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)
