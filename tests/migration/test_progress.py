"""Tests for progress tracking."""

from __future__ import annotations

from otcsmigrate.core.types import TransferAction
from otcsmigrate.migration.progress import (
    MEGABYTE,
    ProgressTracker,
    format_duration,
    format_progress,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestProgressTracker:
    """Tests for ProgressTracker."""

    def test_counts_and_throughput(self) -> None:
        """Stats should reflect counters and elapsed time."""
        clock = FakeClock()
        tracker = ProgressTracker(total=4, total_bytes=4 * MEGABYTE, clock=clock)

        tracker.update(2 * MEGABYTE, TransferAction.TRANSFERRED)
        tracker.update(0, TransferAction.SKIPPED)
        tracker.update(0, TransferAction.FAILED)
        clock.now += 2.0

        stats = tracker.stats()
        assert (stats.completed, stats.skipped, stats.failed) == (1, 1, 1)
        assert stats.processed == 3
        assert stats.transferred_bytes == 2 * MEGABYTE
        assert stats.duration_sec == 2.0
        assert stats.files_per_sec == 0.5
        assert stats.mb_per_sec == 1.0

    def test_eta(self) -> None:
        """ETA should extrapolate the current rate."""
        clock = FakeClock()
        tracker = ProgressTracker(total=10, total_bytes=0, clock=clock)
        assert tracker.eta() is None

        tracker.update(0, TransferAction.SKIPPED)
        tracker.update(0, TransferAction.SKIPPED)
        clock.now += 4.0

        assert tracker.eta() == 16.0

    def test_throughput_ignores_skipped(self) -> None:
        """Skipped items should not count towards files per second."""
        clock = FakeClock()
        tracker = ProgressTracker(total=10, total_bytes=0, clock=clock)
        for _ in range(9):
            tracker.update(0, TransferAction.SKIPPED)
        tracker.update(0, TransferAction.TRANSFERRED)
        clock.now += 1.0

        assert tracker.stats().files_per_sec == 1.0

    def test_zero_elapsed(self) -> None:
        """Throughput should be zero before time passes."""
        tracker = ProgressTracker(total=1, total_bytes=10, clock=FakeClock())
        tracker.update(10, TransferAction.TRANSFERRED)
        assert tracker.stats().files_per_sec == 0.0

    def test_updates_throttled(self) -> None:
        """Progress lines should be emitted at most every 500ms, plus at the end."""
        clock = FakeClock()
        lines: list[str] = []
        tracker = ProgressTracker(total=4, total_bytes=0, clock=clock, on_update=lines.append)

        tracker.update(0, TransferAction.SKIPPED)  # first update is shown
        clock.now += 0.1
        tracker.update(0, TransferAction.SKIPPED)  # throttled
        clock.now += 0.5
        tracker.update(0, TransferAction.SKIPPED)  # shown
        clock.now += 0.1
        tracker.update(0, TransferAction.SKIPPED)  # last item, always shown

        assert len(lines) == 3
        assert lines[-1].startswith("[100%] 4/4")


class TestFormatting:
    """Tests for formatting helpers."""

    def test_format_duration(self) -> None:
        assert format_duration(5) == "5s"
        assert format_duration(125) == "2m 5s"
        assert format_duration(3725) == "1h 2m 5s"

    def test_format_progress_without_eta(self) -> None:
        tracker = ProgressTracker(total=2, total_bytes=0, clock=FakeClock())
        line = format_progress(tracker.stats(), None)
        assert line.startswith("[  0%] 0/2")
        assert line.endswith("ETA: --")
