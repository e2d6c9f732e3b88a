"""
Incremental re-indexing of the files touched by a pull request.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable, Optional

from .chunkers import Chunker
from .content import ContentProvider
from .embeddings import EmbeddingGenerator
from .errors import TransientProviderError
from .logging_config import ScopedLogger
from .models import FileChange, RepoScope, UpdateReport
from .stores import VectorStore
from .utils import content_hash, is_source_file

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class IncrementalUpdater:
    """
    Applies a changed-file list to an existing index.

    Files are handled one at a time with `file_delay` seconds between them.
    A file whose content hash matches the stored one is left alone, so
    repeating the same change set is a no-op.
    """

    def __init__(
        self,
        scope: RepoScope,
        store: VectorStore,
        chunker: Chunker,
        generator: EmbeddingGenerator,
        content_provider: ContentProvider,
        config: "Config",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.scope = scope
        self.store = store
        self.chunker = chunker
        self.generator = generator
        self.content_provider = content_provider
        self.extensions = config.get("indexer", "extensions", default=[])
        self.max_file_size = config.get("indexer", "max_file_size", default=50000)
        self.file_delay = config.get("indexer", "file_delay", default=0.1)
        self._sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None
        self.log = ScopedLogger(logger, scope.key)

    def apply_changes(self, changes: list[FileChange], ref: Optional[str] = None) -> UpdateReport:
        """
        Bring the index in line with the changed files at ref.

        Args:
            changes: Changed files with their status
            ref: Commit or branch to read contents from

        Returns:
            Which files were updated, deleted and skipped
        """
        report = UpdateReport()
        self.log.info(f"Applying {len(changes)} file changes")

        for index, change in enumerate(changes):
            if index > 0 and self.file_delay > 0:
                self._sleep(self.file_delay)
            self._apply_one(change, ref, report)

        self.store.persist()
        summary = report.summary()
        self.log.info(
            f"Incremental update done: {summary['updated']} updated, "
            f"{summary['deleted']} deleted, {summary['skipped']} skipped"
        )
        return report

    def apply_changes_in_background(self, changes: list[FileChange], ref: Optional[str] = None) -> Future:
        """Run apply_changes on a worker thread; the Future yields the report."""
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="reviewctx-update")
        return self._executor.submit(self.apply_changes, changes, ref)

    def _apply_one(self, change: FileChange, ref: Optional[str], report: UpdateReport) -> None:
        path = change.filename

        if change.status == "removed":
            report.deleted_chunks += self.store.delete_by_file(path)
            report.deleted.append(path)
            return

        if change.status == "renamed" and change.previous_filename:
            removed = self.store.delete_by_file(change.previous_filename)
            report.deleted_chunks += removed
            self.log.debug(f"Renamed {change.previous_filename} -> {path}, dropped {removed} chunks")

        if not is_source_file(path, self.extensions):
            report.skipped.append(path)
            return

        try:
            content = self.content_provider.get_file(path, ref)
        except TransientProviderError as e:
            self.log.warning(f"Skipping {path}: {e}")
            report.skipped.append(path)
            return

        if content is None:
            self.log.debug(f"Skipping {path}: not found at {ref or self.scope.branch}")
            report.skipped.append(path)
            return

        size = len(content.encode("utf-8"))
        if size > self.max_file_size:
            self.log.info(f"Skipping large file {path} ({size} > {self.max_file_size} bytes)")
            report.skipped.append(path)
            return

        file_hash = content_hash(content)
        if not self.store.needs_reindex(path, file_hash):
            report.skipped.append(path)
            return

        report.deleted_chunks += self.store.delete_by_file(path)
        chunks = self.chunker.chunk_file(path, content)
        embedded = self.generator.embed_chunks(chunks, file_hashes={path: file_hash})
        if not embedded:
            self.log.warning(f"No chunks of {path} could be embedded")
            report.skipped.append(path)
            return

        self.store.put_batch(embedded)
        report.stored_chunks += len(embedded)
        report.updated.append(path)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
