"""
Vector store interface shared by every backend.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..models import EmbeddedChunk, SearchFilters, SemanticSearchResult, StoreStats

logger = logging.getLogger(__name__)


class VectorStore(ABC):
    """
    Persistence and nearest-neighbour search for EmbeddedChunks.

    Every backend guarantees:
    - put is an upsert on the natural key (file_path, start_line, type)
    - similarity = 1 - cosine distance, clamped to [0, 1]
    - search never returns more than filters.max_results hits, drops hits
      below filters.min_similarity, and strips raw embeddings
    - all embeddings in one store share a dimension
    """

    backend_name: str = "abstract"

    @abstractmethod
    def put(self, chunk: EmbeddedChunk) -> None:
        """Insert or replace a chunk by its natural key."""

    def put_batch(self, chunks: list[EmbeddedChunk]) -> None:
        for chunk in chunks:
            self.put(chunk)

    @abstractmethod
    def get_by_file(self, file_path: str) -> list[EmbeddedChunk]:
        """All chunks of a file ordered by start line."""

    @abstractmethod
    def delete_by_file(self, file_path: str) -> int:
        """Delete all chunks of a file and return how many were removed."""

    @abstractmethod
    def delete_all(self) -> int:
        """Delete every chunk in the store's scope."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored chunks."""

    @abstractmethod
    def list_files(self) -> set[str]:
        """Paths of all files with at least one chunk."""

    @abstractmethod
    def get_file_hash(self, file_path: str) -> Optional[str]:
        """Stored content hash for a file, None if the file has no chunks."""

    @abstractmethod
    def stats(self) -> StoreStats:
        """Counts by type and language plus total content size."""

    @abstractmethod
    def search(self, query_vector: list[float], filters: SearchFilters) -> list[SemanticSearchResult]:
        """Nearest chunks to query_vector, best first."""

    def needs_reindex(self, file_path: str, file_hash: str) -> bool:
        """True when the file has no chunks or its stored hash differs."""
        stored = self.get_file_hash(file_path)
        return stored is None or stored != file_hash

    def load(self) -> None:
        """Restore persisted state on warm start. No-op for databases."""

    def persist(self) -> None:
        """Flush state after an indexing run. No-op for databases."""

    def close(self) -> None:
        """Release connections."""


def to_result(chunk: EmbeddedChunk, similarity: float) -> SemanticSearchResult:
    """Wrap a hit with neutral ranking; the search engine re-ranks it."""
    similarity = clamp_similarity(similarity)
    return SemanticSearchResult(
        chunk=chunk.without_embedding(),
        similarity=similarity,
        relevance_score=similarity,
        context_type="related",
    )


def clamp_similarity(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def stats_from_chunks(chunks: list[EmbeddedChunk]) -> StoreStats:
    """Compute StoreStats from materialized chunks."""
    chunks_by_type: dict[str, int] = {}
    chunks_by_language: dict[str, int] = {}
    for chunk in chunks:
        chunks_by_type[chunk.type] = chunks_by_type.get(chunk.type, 0) + 1
        chunks_by_language[chunk.language] = chunks_by_language.get(chunk.language, 0) + 1
    return StoreStats(
        total_chunks=len(chunks),
        total_files=len({chunk.file_path for chunk in chunks}),
        chunks_by_type=chunks_by_type,
        chunks_by_language=chunks_by_language,
        total_size=sum(chunk.metadata.size for chunk in chunks),
        last_updated=max((chunk.last_updated for chunk in chunks), default=None),
    )
