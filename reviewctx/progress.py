"""
Progress tracking for indexing runs.

Each stage of a full index owns a fixed slice of 0-100; work inside a stage
is mapped linearly into its slice. An ETA is extrapolated once overall
progress passes 10%.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import IndexProgress, utc_now

logger = logging.getLogger(__name__)

STAGES: dict[str, tuple[int, int]] = {
    "scan": (0, 25),
    "process_files": (25, 50),
    "generate_embeddings": (50, 85),
    "store": (85, 100),
    "complete": (100, 100),
}

STAGE_LABELS = {
    "scan": "Scanning repository",
    "process_files": "Chunking files",
    "generate_embeddings": "Generating embeddings",
    "store": "Storing chunks",
    "complete": "Complete",
}

ETA_THRESHOLD = 0.1

ProgressCallback = Callable[[IndexProgress], None]


class ProgressTracker:
    """
    Maps per-stage work onto overall progress and notifies subscribers.

    Overall progress never moves backwards.
    """

    def __init__(self, now: Callable[[], datetime] = utc_now):
        self._now = now
        self.start_time = now()
        self._lock = threading.Lock()
        self._subscribers: list[ProgressCallback] = []
        self.current = IndexProgress(stage="scan", current=0, total=100, start_time=self.start_time)

    def subscribe(self, callback: ProgressCallback) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def update(self, stage: str, done: int = 0, total: int = 0) -> IndexProgress:
        """
        Report `done` of `total` units of work inside a stage.

        Args:
            stage: One of STAGES
            done: Units completed in this stage
            total: Units in this stage (0 means the stage has just started)
        """
        low, high = STAGES[stage]
        fraction = min(1.0, done / total) if total > 0 else 0.0
        overall = low + (high - low) * fraction

        with self._lock:
            overall = max(overall, float(self.current.current))
            self.current = IndexProgress(
                stage=stage,
                current=int(round(overall)),
                total=100,
                start_time=self.start_time,
                estimated_completion=self._estimate(overall / 100.0),
            )
            progress = self.current
            subscribers = list(self._subscribers)

        for callback in subscribers:
            callback(progress)
        return progress

    def complete(self) -> IndexProgress:
        return self.update("complete")

    def _estimate(self, fraction: float) -> Optional[datetime]:
        if fraction <= ETA_THRESHOLD:
            return None
        elapsed = (self._now() - self.start_time).total_seconds()
        return self.start_time + timedelta(seconds=elapsed / fraction)

    @staticmethod
    def format_eta(seconds: Optional[float]) -> str:
        """
        Format ETA in human-readable form.

        Returns:
            "2m 30s", "1h 15m", "45s" or "unknown"
        """
        if seconds is None:
            return "unknown"

        total_secs = max(0, int(seconds))
        minutes, secs = divmod(total_secs, 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        return f"{secs}s"

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format a duration: "2.5s", "1m 30s" or "1h 15m"."""
        if seconds < 60:
            return f"{seconds:.1f}s"

        minutes, secs = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m {secs}s"

    def seconds_remaining(self) -> Optional[float]:
        estimated = self.current.estimated_completion
        if estimated is None:
            return None
        return max(0.0, (estimated - self._now()).total_seconds())
