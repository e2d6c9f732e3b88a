"""
Full-repository indexing for reviewctx.

Orchestrates file discovery, chunking, embedding generation and storage for
one repository, tracks progress, and owns the index state machine:

    UNINITIALIZED -> INITIALIZING -> INITIALIZED
                          |
                          +-> UNINITIALIZED (failure or cancellation)
"""

import concurrent.futures
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from .chunkers import Chunker
from .content import ContentProvider, LocalContentProvider
from .embeddings import EmbeddingGenerator
from .errors import IndexingCancelled, NotInitializedError, StorageError, TransientProviderError
from .logging_config import ScopedLogger
from .models import CodeChunk, EmbeddedChunk, IndexProgress, IndexState, IndexStatus, RepoScope, StoreStats
from .progress import ProgressCallback, ProgressTracker
from .stores import VectorStore
from .utils import content_hash, is_excluded_path, is_source_file

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


class IndexingGuard:
    """
    Process-wide set of repository keys with a full index in progress.

    Share one guard between all coordinators so that two coordinators for the
    same repository never index it at the same time.
    """

    def __init__(self):
        self._active: set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)

    def is_active(self, key: str) -> bool:
        with self._lock:
            return key in self._active


class IndexingHandle:
    """
    Task handle for one indexing run.

    Wraps a Future whose result is the store's StoreStats after the run, plus
    the run's progress stream and a cooperative cancellation flag.
    """

    def __init__(self, future: Future, tracker: ProgressTracker, cancel_event: threading.Event):
        self.future = future
        self.tracker = tracker
        self.cancel_event = cancel_event

    @classmethod
    def completed(cls, result: Optional[StoreStats]) -> "IndexingHandle":
        """A handle for a run that did no work."""
        future: Future = Future()
        future.set_result(result)
        tracker = ProgressTracker()
        tracker.complete()
        return cls(future, tracker, threading.Event())

    @property
    def progress(self) -> IndexProgress:
        return self.tracker.current

    def subscribe(self, callback: ProgressCallback) -> None:
        """Receive every subsequent progress update."""
        self.tracker.subscribe(callback)

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> Optional[StoreStats]:
        """Wait for the run; re-raises its failure."""
        return self.future.result(timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for the run without raising; True if it finished."""
        done, _ = concurrent.futures.wait([self.future], timeout=timeout)
        return bool(done)

    def cancel(self) -> None:
        """Ask the run to stop at its next checkpoint."""
        self.cancel_event.set()
        self.future.cancel()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def __repr__(self) -> str:
        state = "done" if self.done() else "running"
        return f"IndexingHandle({state}, {self.progress.stage} {self.progress.current}%)"


class IndexCoordinator:
    """
    Builds and owns the index of one repository.

    Features:
    - Idempotent initialize(): concurrent callers share one run
    - Background runs on a worker thread, foreground runs in the caller
    - File waves fetched concurrently, then chunked, embedded and stored
    - Warm start from an existing store unless a re-index is forced
    - Cleanup of chunks for files that no longer exist
    """

    def __init__(
        self,
        scope: RepoScope,
        store: VectorStore,
        chunker: Chunker,
        generator: EmbeddingGenerator,
        config: "Config",
        guard: Optional[IndexingGuard] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Args:
            scope: Repository this coordinator indexes
            store: Vector store for the repository
            chunker: Chunker used for every file
            generator: Embedding generator
            config: Configuration (indexer section)
            guard: Shared concurrency guard; a private one if None
            executor: Executor for background runs; a private single worker if None
        """
        self.scope = scope
        self.store = store
        self.chunker = chunker
        self.generator = generator
        self.config = config
        self.guard = guard or IndexingGuard()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="reviewctx-index")

        self.extensions = config.get("indexer", "extensions", default=[])
        self.exclude_dirs = config.get("indexer", "exclude_dirs", default=[])
        self.exclude_patterns = config.get("indexer", "exclude", default=[])
        self.max_file_size = config.get("indexer", "max_file_size", default=50000)
        self.max_files = config.get("indexer", "max_files", default=0)
        self.batch_size = max(1, config.get("indexer", "batch_size", default=5))
        self.batch_delay = config.get("indexer", "batch_delay", default=0.2)

        self._state = IndexState.UNINITIALIZED
        self._error: Optional[str] = None
        self._handle: Optional[IndexingHandle] = None
        self._lock = threading.Lock()
        self.log = ScopedLogger(logger, scope.key)

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def handle(self) -> Optional[IndexingHandle]:
        return self._handle

    def require_initialized(self) -> None:
        """
        Raises:
            NotInitializedError: Unless the index is INITIALIZED
        """
        if self._state != IndexState.INITIALIZED:
            raise NotInitializedError(self.scope.key, self._state.value)

    def status(self) -> IndexStatus:
        with self._lock:
            state, error, handle = self._state, self._error, self._handle

        total_chunks = 0
        if state == IndexState.INITIALIZED:
            try:
                total_chunks = self.store.count()
            except StorageError as e:
                error = str(e)

        return IndexStatus(
            state=state,
            backend=self.store.backend_name,
            scope=self.scope.key,
            progress=handle.progress if handle is not None else None,
            error=error,
            total_chunks=total_chunks,
        )

    def initialize(
        self,
        root_path: Path,
        force_reindex: bool = False,
        background: bool = True,
    ) -> IndexingHandle:
        """
        Index a local working tree.

        Args:
            root_path: Repository root on disk
            force_reindex: Ignore existing index contents and rebuild
            background: Return immediately and index on a worker thread

        Returns:
            Handle of the run (the already running or finished one if the
            index is initializing or initialized)
        """
        source = LocalContentProvider(root_path, exclude_patterns=self.exclude_patterns)
        return self.start(source, force_reindex=force_reindex, background=background)

    def start(
        self,
        source: ContentProvider,
        ref: Optional[str] = None,
        force_reindex: bool = False,
        background: bool = True,
    ) -> IndexingHandle:
        """
        Index the repository through any content provider.

        Foreground runs re-raise their own failure; callers that only joined
        an existing run never see its exception.
        """
        with self._lock:
            if self._state != IndexState.UNINITIALIZED and self._handle is not None:
                handle = self._handle
                joined = True
            elif not self.guard.try_acquire(self.scope.key):
                self.log.info("Full index already running in another coordinator; skipping")
                return IndexingHandle.completed(None)
            else:
                self._state = IndexState.INITIALIZING
                self._error = None
                handle = IndexingHandle(Future(), ProgressTracker(), threading.Event())
                self._handle = handle
                joined = False

        if joined:
            self.log.debug(f"Index is {self._state.value}; returning existing run")
            if not background:
                handle.wait()
            return handle

        if background:
            self._executor.submit(self._execute, handle, source, ref, force_reindex)
            return handle

        self._execute(handle, source, ref, force_reindex)
        handle.result()
        return handle

    def reset(self) -> int:
        """
        Cancel any in-flight run and drop the repository's chunks.

        Writes of an in-flight run that land after the delete are not rolled
        back.

        Returns:
            Number of chunks deleted
        """
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = None
            self._state = IndexState.UNINITIALIZED
            self._error = None

        deleted = self.store.delete_all()
        self.store.persist()
        self.log.info(f"Index reset, {deleted} chunks deleted")
        return deleted

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _execute(
        self,
        handle: IndexingHandle,
        source: ContentProvider,
        ref: Optional[str],
        force_reindex: bool,
    ) -> None:
        """Run one indexing job and settle its future and the state machine."""
        future = handle.future
        try:
            if not future.set_running_or_notify_cancel():
                self._settle(handle, IndexState.UNINITIALIZED, None)
                return

            try:
                stats = self._run(source, ref, force_reindex, handle.tracker, handle.cancel_event)
            except IndexingCancelled as e:
                self.log.info("Indexing cancelled")
                self._settle(handle, IndexState.UNINITIALIZED, None)
                future.set_exception(e)
            except Exception as e:
                self.log.exception(f"Indexing failed: {e}")
                self._settle(handle, IndexState.UNINITIALIZED, str(e))
                future.set_exception(e)
            else:
                final = IndexState.UNINITIALIZED if handle.cancelled else IndexState.INITIALIZED
                self._settle(handle, final, None)
                future.set_result(stats)
        finally:
            self.guard.release(self.scope.key)

    def _settle(self, handle: IndexingHandle, state: IndexState, error: Optional[str]) -> None:
        with self._lock:
            # a reset() may already have replaced this run
            if self._handle is handle:
                self._state = state
                self._error = error

    def _run(
        self,
        source: ContentProvider,
        ref: Optional[str],
        force_reindex: bool,
        tracker: ProgressTracker,
        cancel_event: threading.Event,
    ) -> StoreStats:
        start_time = time.time()
        tracker.update("scan")

        if not force_reindex:
            self.store.load()
            existing = self.store.count()
            if existing > 0:
                self.log.info(f"Using existing index with {existing} chunks")
                tracker.complete()
                return self.store.stats()

        paths = self.discover_files(source, ref)
        self.log.info(f"Found {len(paths)} files to index")
        tracker.update("scan", 1, 1)

        file_chunks, file_hashes = self._process_files(source, ref, paths, tracker, cancel_event)

        all_chunks = [chunk for chunks in file_chunks.values() for chunk in chunks]
        tracker.update("generate_embeddings", 0, len(all_chunks))
        embedded = self.generator.embed_chunks(
            all_chunks,
            file_hashes=file_hashes,
            cancel_event=cancel_event,
            on_progress=lambda done, total: tracker.update("generate_embeddings", done, total),
        )

        stored = self._store_chunks(embedded, file_hashes, set(paths), tracker, cancel_event)
        self.store.persist()
        tracker.complete()

        self.log.info(
            f"Indexing complete: {len(file_chunks)} files, {len(all_chunks)} chunks, "
            f"{stored} stored in {time.time() - start_time:.2f}s"
        )
        return self.store.stats()

    def discover_files(self, source: ContentProvider, ref: Optional[str] = None) -> list[str]:
        """Source files at ref, minus excluded and hidden directories."""
        files = [
            path for path in source.list_files(ref)
            if is_source_file(path, self.extensions) and not is_excluded_path(path, self.exclude_dirs)
        ]
        files.sort()
        if self.max_files and len(files) > self.max_files:
            self.log.warning(f"Limiting index to {self.max_files} of {len(files)} files")
            files = files[:self.max_files]
        return files

    def _fetch(self, source: ContentProvider, path: str, ref: Optional[str]) -> Optional[str]:
        try:
            return source.get_file(path, ref)
        except TransientProviderError as e:
            self.log.warning(f"Skipping {path}: {e}")
            return None

    def _process_files(
        self,
        source: ContentProvider,
        ref: Optional[str],
        paths: list[str],
        tracker: ProgressTracker,
        cancel_event: threading.Event,
    ) -> tuple[dict[str, list[CodeChunk]], dict[str, str]]:
        """Fetch files in waves of batch_size and chunk them."""
        file_chunks: dict[str, list[CodeChunk]] = {}
        file_hashes: dict[str, str] = {}
        tracker.update("process_files", 0, len(paths))

        with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix="reviewctx-fetch") as pool:
            for wave_start in range(0, len(paths), self.batch_size):
                if cancel_event.is_set():
                    raise IndexingCancelled("Indexing cancelled while processing files")
                if wave_start > 0 and self.batch_delay > 0:
                    time.sleep(self.batch_delay)

                wave = paths[wave_start:wave_start + self.batch_size]
                contents = pool.map(lambda p: self._fetch(source, p, ref), wave)
                for path, content in zip(wave, contents):
                    if content is None or not content.strip():
                        continue
                    size = len(content.encode("utf-8"))
                    if size > self.max_file_size:
                        self.log.info(f"Skipping large file {path} ({size} > {self.max_file_size} bytes)")
                        continue
                    file_chunks[path] = self.chunker.chunk_file(path, content)
                    file_hashes[path] = content_hash(content)

                tracker.update("process_files", wave_start + len(wave), len(paths))

        return file_chunks, file_hashes

    def _store_chunks(
        self,
        embedded: list[EmbeddedChunk],
        file_hashes: dict[str, str],
        current_files: set[str],
        tracker: ProgressTracker,
        cancel_event: threading.Event,
    ) -> int:
        """Replace changed files' chunks, upsert the rest, drop vanished files."""
        by_file: dict[str, list[EmbeddedChunk]] = {}
        for chunk in embedded:
            by_file.setdefault(chunk.file_path, []).append(chunk)

        total = len(by_file)
        tracker.update("store", 0, total)
        for done, (path, chunks) in enumerate(by_file.items(), 1):
            if cancel_event.is_set():
                raise IndexingCancelled("Indexing cancelled while storing chunks")
            if self.store.needs_reindex(path, file_hashes[path]):
                self.store.delete_by_file(path)
            self.store.put_batch(chunks)
            tracker.update("store", done, total)

        vanished = self.store.list_files() - current_files
        for path in sorted(vanished):
            self.store.delete_by_file(path)
        if vanished:
            self.log.info(f"Removed chunks of {len(vanished)} deleted files")

        return len(embedded)

    def __repr__(self) -> str:
        return f"IndexCoordinator(scope={self.scope}, state={self._state.value})"
