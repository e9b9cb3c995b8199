"""Progress tracking for one transfer run."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from otcsmigrate.core.types import TransferAction

# Minimum delay between two progress notifications
DISPLAY_INTERVAL_SECONDS = 0.5

MEGABYTE = 1024 * 1024


@dataclass
class ProgressStats:
    """Counters and derived throughput at a point in time."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    total_bytes: int = 0
    transferred_bytes: int = 0
    duration_sec: float = 0.0
    files_per_sec: float = 0.0
    mb_per_sec: float = 0.0

    @property
    def processed(self) -> int:
        return self.completed + self.failed + self.skipped


def format_duration(seconds: float) -> str:
    """Format a duration as "1h 2m 3s", "2m 3s" or "3s"."""
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m {seconds % 60}s"


def format_progress(stats: ProgressStats, eta_seconds: float | None) -> str:
    """Single progress line, e.g. "[ 42%] 42/100 | 3.1 files/s | 12.0/30.0 MB | 1.20 MB/s | ETA: 19s"."""
    percent = int(stats.processed * 100 / stats.total) if stats.total else 100
    eta = format_duration(eta_seconds) if eta_seconds is not None else "--"
    return (
        f"[{percent:3d}%] {stats.processed}/{stats.total} | "
        f"{stats.files_per_sec:.1f} files/s | "
        f"{stats.transferred_bytes / MEGABYTE:.1f}/{stats.total_bytes / MEGABYTE:.1f} MB | "
        f"{stats.mb_per_sec:.2f} MB/s | ETA: {eta}"
    )


class ProgressTracker:
    """Running counters for one job run.

    Thread-safe: transfer workers call update() concurrently. The optional
    on_update callback receives the formatted progress line at most once
    per DISPLAY_INTERVAL_SECONDS, plus once when the last item completes.
    """

    def __init__(
        self,
        total: int,
        total_bytes: int,
        clock: Callable[[], float] = time.monotonic,
        on_update: Callable[[str], None] | None = None,
    ) -> None:
        self._total = total
        self._total_bytes = total_bytes
        self._clock = clock
        self._on_update = on_update
        self._start = clock()
        self._last_display: float | None = None
        self._lock = threading.Lock()

        self._completed = 0
        self._failed = 0
        self._skipped = 0
        self._transferred_bytes = 0

    def update(self, size: int, action: TransferAction) -> None:
        """Count one processed item.

        Args:
            size: Bytes moved (counted only for transferred items).
            action: Outcome of the item.
        """
        with self._lock:
            if action == TransferAction.TRANSFERRED:
                self._completed += 1
                self._transferred_bytes += size
            elif action == TransferAction.FAILED:
                self._failed += 1
            else:
                self._skipped += 1

            if self._on_update is None:
                return
            now = self._clock()
            done = self._completed + self._failed + self._skipped >= self._total
            if not done and self._last_display is not None and now - self._last_display < DISPLAY_INTERVAL_SECONDS:
                return
            self._last_display = now
            line = format_progress(self._stats_locked(now), self._eta_locked(now))

        self._on_update(line)

    def stats(self) -> ProgressStats:
        with self._lock:
            return self._stats_locked(self._clock())

    def eta(self) -> float | None:
        """Estimated seconds remaining, or None before the first item."""
        with self._lock:
            return self._eta_locked(self._clock())

    def _stats_locked(self, now: float) -> ProgressStats:
        elapsed = max(now - self._start, 0.0)
        return ProgressStats(
            total=self._total,
            completed=self._completed,
            failed=self._failed,
            skipped=self._skipped,
            total_bytes=self._total_bytes,
            transferred_bytes=self._transferred_bytes,
            duration_sec=elapsed,
            files_per_sec=self._completed / elapsed if elapsed > 0 else 0.0,
            mb_per_sec=self._transferred_bytes / MEGABYTE / elapsed if elapsed > 0 else 0.0,
        )

    def _eta_locked(self, now: float) -> float | None:
        processed = self._completed + self._failed + self._skipped
        elapsed = now - self._start
        if processed == 0 or elapsed <= 0:
            return None
        rate = processed / elapsed
        return max(self._total - processed, 0) / rate
