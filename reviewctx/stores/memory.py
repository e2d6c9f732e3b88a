"""
In-memory vector store with an optional JSON snapshot for warm restarts.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional

import numpy as np

from ..errors import StorageError
from ..models import EmbeddedChunk, SearchFilters, SemanticSearchResult, StoreStats, utc_now
from .base import VectorStore, stats_from_chunks, to_result

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"


class InMemoryVectorStore(VectorStore):
    """
    Dictionary keyed by natural key; search is a linear cosine scan.

    Suitable for a single process and repositories of a few thousand chunks.
    """

    backend_name = "memory"

    def __init__(self, snapshot_path: Optional[Path] = None):
        """
        Args:
            snapshot_path: JSON file used by load()/persist(); None disables snapshots
        """
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._chunks: dict[tuple[str, int, str], EmbeddedChunk] = {}
        self._dimension: Optional[int] = None
        self._lock = threading.RLock()

    def put(self, chunk: EmbeddedChunk) -> None:
        with self._lock:
            self._check_dimension(chunk)
            self._chunks[chunk.natural_key] = chunk

    def put_batch(self, chunks: list[EmbeddedChunk]) -> None:
        with self._lock:
            for chunk in chunks:
                self.put(chunk)

    def _check_dimension(self, chunk: EmbeddedChunk) -> None:
        if not self._chunks:
            self._dimension = len(chunk.embedding)
        elif len(chunk.embedding) != self._dimension:
            raise StorageError(
                f"Embedding dimension {len(chunk.embedding)} for {chunk.id} "
                f"does not match store dimension {self._dimension}"
            )

    def get_by_file(self, file_path: str) -> list[EmbeddedChunk]:
        with self._lock:
            chunks = [c for c in self._chunks.values() if c.file_path == file_path]
        return sorted(chunks, key=lambda c: c.start_line)

    def delete_by_file(self, file_path: str) -> int:
        with self._lock:
            keys = [key for key in self._chunks if key[0] == file_path]
            for key in keys:
                del self._chunks[key]
        if keys:
            logger.info(f"Deleted {len(keys)} chunks for {file_path}")
        return len(keys)

    def delete_all(self) -> int:
        with self._lock:
            deleted = len(self._chunks)
            self._chunks.clear()
        return deleted

    def count(self) -> int:
        with self._lock:
            return len(self._chunks)

    def list_files(self) -> set[str]:
        with self._lock:
            return {key[0] for key in self._chunks}

    def get_file_hash(self, file_path: str) -> Optional[str]:
        with self._lock:
            for chunk in self._chunks.values():
                if chunk.file_path == file_path:
                    return chunk.content_hash
        return None

    def stats(self) -> StoreStats:
        with self._lock:
            chunks = list(self._chunks.values())
        return stats_from_chunks(chunks)

    def search(self, query_vector: list[float], filters: SearchFilters) -> list[SemanticSearchResult]:
        with self._lock:
            candidates = [c for c in self._chunks.values() if filters.matches(c)]
        if not candidates:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        matrix = np.asarray([c.embedding for c in candidates], dtype=np.float64)
        if matrix.shape[1] != query.shape[0]:
            raise StorageError(
                f"Query dimension {query.shape[0]} does not match store dimension {matrix.shape[1]}"
            )

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)

        order = np.argsort(-similarities, kind="stable")
        results = []
        for index in order:
            similarity = float(similarities[index])
            if similarity < filters.min_similarity:
                break
            results.append(to_result(candidates[index], similarity))
            if len(results) >= filters.max_results:
                break
        return results

    def load(self) -> None:
        """Replace the in-memory state with the snapshot, if one exists."""
        if self.snapshot_path is None or not self.snapshot_path.exists():
            return
        try:
            data = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            chunks = [EmbeddedChunk.model_validate(item) for item in data.get("chunks", [])]
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to load snapshot {self.snapshot_path}: {e}") from e

        with self._lock:
            self._chunks.clear()
            self.put_batch(chunks)
        logger.info(f"Loaded {len(chunks)} chunks from {self.snapshot_path}")

    def persist(self) -> None:
        """Write the snapshot atomically."""
        if self.snapshot_path is None:
            return
        with self._lock:
            chunks = [c.model_dump(mode="json") for c in self._chunks.values()]
        data = {
            "version": SNAPSHOT_VERSION,
            "lastUpdated": utc_now().isoformat(),
            "chunks": chunks,
        }
        try:
            self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.snapshot_path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(data), encoding="utf-8")
            tmp_path.replace(self.snapshot_path)
        except OSError as e:
            raise StorageError(f"Failed to write snapshot {self.snapshot_path}: {e}") from e
        logger.info(f"Saved {len(chunks)} chunks to {self.snapshot_path}")

    def __repr__(self) -> str:
        return f"InMemoryVectorStore(chunks={self.count()}, snapshot={self.snapshot_path})"
