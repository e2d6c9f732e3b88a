"""
Tests for progress reporting.
"""

from datetime import timedelta

import pytest

from reviewctx.models import utc_now
from reviewctx.progress import ProgressTracker


class FakeClock:
    def __init__(self):
        self.now = utc_now()

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class TestProgressTracker:
    """Test suite for ProgressTracker class."""

    def test_initial_state(self):
        """Tracker starts in the scan stage at zero."""
        tracker = ProgressTracker()

        assert tracker.current.stage == "scan"
        assert tracker.current.current == 0
        assert tracker.current.total == 100
        assert tracker.current.estimated_completion is None

    @pytest.mark.parametrize("stage,done,total,expected", [
        ("scan", 0, 0, 0),
        ("scan", 1, 1, 25),
        ("process_files", 5, 10, 38),
        ("generate_embeddings", 0, 4, 50),
        ("generate_embeddings", 4, 4, 85),
        ("store", 1, 2, 92),
        ("complete", 0, 0, 100),
    ])
    def test_stage_slices(self, stage, done, total, expected):
        """Work inside a stage maps onto the stage's slice."""
        tracker = ProgressTracker()
        assert tracker.update(stage, done, total).current == expected

    def test_never_moves_backwards(self):
        tracker = ProgressTracker()

        tracker.update("generate_embeddings", 2, 4)
        progress = tracker.update("process_files", 0, 10)

        assert progress.current == 68
        assert progress.stage == "process_files"

    def test_done_beyond_total_is_capped(self):
        tracker = ProgressTracker()
        assert tracker.update("process_files", 20, 10).current == 50

    def test_subscribers_receive_updates(self):
        tracker = ProgressTracker()
        seen = []
        tracker.subscribe(seen.append)

        tracker.update("scan", 1, 1)
        tracker.complete()

        assert [p.current for p in seen] == [25, 100]
        assert seen[-1].stage == "complete"

    def test_eta_only_after_threshold(self):
        """ETA stays unknown until overall progress passes 10%."""
        clock = FakeClock()
        tracker = ProgressTracker(now=clock)

        clock.advance(10)
        assert tracker.update("scan", 1, 10).estimated_completion is None

        clock.advance(10)
        progress = tracker.update("process_files", 0, 10)

        # 20s for 25% extrapolates to 80s in total
        assert progress.estimated_completion == tracker.start_time + timedelta(seconds=80)
        assert tracker.seconds_remaining() == pytest.approx(60)

    def test_seconds_remaining_unknown(self):
        assert ProgressTracker().seconds_remaining() is None

    def test_format_eta(self):
        assert ProgressTracker.format_eta(45) == "45s"
        assert ProgressTracker.format_eta(150) == "2m 30s"
        assert ProgressTracker.format_eta(4500) == "1h 15m"
        assert ProgressTracker.format_eta(None) == "unknown"
        assert ProgressTracker.format_eta(-5) == "0s"

    def test_format_duration(self):
        assert ProgressTracker.format_duration(2.5) == "2.5s"
        assert ProgressTracker.format_duration(90) == "1m 30s"
        assert ProgressTracker.format_duration(4500) == "1h 15m"
