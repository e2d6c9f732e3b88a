"""
File system watcher for reviewctx.

Turns watchdog events in a working tree into FileChange entries and feeds
them, debounced, to the IncrementalUpdater.
"""

import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .models import FileChange, UpdateReport
from .updater import IncrementalUpdater
from .utils import is_excluded_path, is_source_file

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class ChangeCollector(FileSystemEventHandler):
    """
    Collects file events as pending FileChanges.

    A later event for a path replaces the earlier one, except that a
    modification never downgrades an addition or a rename.
    """

    def __init__(
        self,
        root: Path,
        extensions: list[str],
        exclude_dirs: list[str],
        on_change: Optional[Callable[[FileChange], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.root = Path(root).resolve()
        self.extensions = extensions
        self.exclude_dirs = exclude_dirs
        self.on_change = on_change
        self._clock = clock
        self._pending: dict[str, FileChange] = {}
        self._last_event_time = 0.0
        self._lock = threading.Lock()

    def _relative(self, path: str) -> Optional[str]:
        try:
            rel_path = Path(path).resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None
        if not is_source_file(rel_path, self.extensions) or is_excluded_path(rel_path, self.exclude_dirs):
            return None
        return rel_path

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path, "added")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path, "modified")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path, "removed")

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        source = self._relative(event.src_path)
        dest = self._relative(getattr(event, "dest_path", ""))
        if dest is None:
            if source is not None:
                self._record(FileChange(filename=source, status="removed"))
            return
        if source is None:
            self._record(FileChange(filename=dest, status="added"))
            return
        with self._lock:
            self._pending.pop(source, None)
        self._record(FileChange(filename=dest, status="renamed", previous_filename=source))

    def _queue(self, path: str, status: str) -> None:
        rel_path = self._relative(path)
        if rel_path is not None:
            self._record(FileChange(filename=rel_path, status=status))

    def _record(self, change: FileChange) -> None:
        with self._lock:
            existing = self._pending.get(change.filename)
            if change.status == "modified" and existing is not None and existing.status in ("added", "renamed"):
                change = existing
            self._pending[change.filename] = change
            self._last_event_time = self._clock()

        logger.debug(f"Queued {change.status} event for {change.filename}")
        if self.on_change:
            self.on_change(change)

    def drain(self, debounce_seconds: float) -> list[FileChange]:
        """Pending changes, once no event arrived for debounce_seconds."""
        with self._lock:
            if not self._pending or self._clock() - self._last_event_time < debounce_seconds:
                return []
            changes = list(self._pending.values())
            self._pending.clear()
        return changes


class RepositoryWatcher:
    """Watches a working tree and applies its changes to the index."""

    def __init__(self, updater: IncrementalUpdater, root: Path, config: "Config", debounce_seconds: float = 0.5):
        self.updater = updater
        self.root = Path(root).resolve()
        self.debounce_seconds = debounce_seconds
        self.collector = ChangeCollector(
            self.root,
            extensions=config.get("indexer", "extensions", default=[]),
            exclude_dirs=config.get("indexer", "exclude_dirs", default=[]),
        )
        self.observer: Optional[Observer] = None
        self._running = False

    def process_pending(self) -> Optional[UpdateReport]:
        """Apply debounced changes; None when there is nothing to do yet."""
        changes = self.collector.drain(self.debounce_seconds)
        if not changes:
            return None
        logger.info(f"Processing {len(changes)} pending changes")
        return self.updater.apply_changes(changes)

    def start(self, on_report: Optional[Callable[[UpdateReport], None]] = None, poll_interval: float = 0.1) -> None:
        """
        Watch until stop() or KeyboardInterrupt.

        Args:
            on_report: Called with the report of every applied batch
            poll_interval: Seconds between debounce checks
        """
        if self._running:
            logger.warning("Watcher is already running")
            return
        if not self.root.is_dir():
            raise ValueError(f"Path is not a directory: {self.root}")

        self.observer = Observer()
        self.observer.schedule(self.collector, str(self.root), recursive=True)
        self.observer.start()
        self._running = True
        logger.info(f"Watching {self.root}")

        try:
            while self._running:
                time.sleep(poll_interval)
                report = self.process_pending()
                if report is not None and on_report is not None:
                    on_report(report)
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()

    def stop(self) -> None:
        self._running = False
        if self.observer is not None:
            self.observer.stop()
            self.observer.join()
            self.observer = None
            logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def __repr__(self) -> str:
        status = "running" if self._running else "stopped"
        return f"RepositoryWatcher({self.root}, {status})"
