"""
Semantic and hybrid search over a repository index.

Semantic search embeds the query, pulls an enlarged candidate pool from the
vector store, re-ranks it with multiplicative boosts and classifies every hit
by its relationship to the files under review. Hybrid search blends that
relevance with a keyword match score.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from .embeddings import EmbeddingGenerator
from .models import CodeChunk, SearchFilters, SemanticSearchResult, VectorQuery, utc_now
from .stores import VectorStore

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

KEYWORD_WORKERS = 4


def normalize_import(module: str) -> str:
    """
    Turn an import specifier into a path fragment.

    "../utils/helpers" -> "utils/helpers", "pkg.sub.mod" -> "pkg/sub/mod"
    """
    path = module.strip()
    relative = path.startswith("./") or path.startswith("../")
    while path.startswith("./") or path.startswith("../"):
        path = path[path.index("/") + 1:]
    if not relative and "/" not in path and "." in path.strip("."):
        path = path.strip(".").replace(".", "/")
    return path


def imports_overlap(chunk: CodeChunk, file_context: list[str]) -> bool:
    """True when one of the chunk's imports points at a file in file_context."""
    for module in chunk.imports:
        fragment = normalize_import(module)
        if fragment and any(fragment in path for path in file_context):
            return True
    return False


def classify_context(chunk: CodeChunk, file_context: list[str]) -> str:
    """Relationship of a chunk to the files under review."""
    if chunk.file_path in file_context:
        return "direct"
    if chunk.type == "test":
        return "test"
    if chunk.type == "documentation":
        return "documentation"
    if file_context and imports_overlap(chunk, file_context):
        return "dependency"
    return "related"


def normalize_keywords(keywords: list[str]) -> list[str]:
    """Lowercased, stripped and deduplicated, first occurrence wins."""
    seen: dict[str, None] = {}
    for keyword in keywords:
        term = keyword.strip().lower()
        if term:
            seen.setdefault(term, None)
    return list(seen)


def keyword_score(chunk: CodeChunk, terms: list[str]) -> float:
    """Fraction of terms found in the chunk's content or path."""
    if not terms:
        return 0.0
    content = chunk.content.lower()
    path = chunk.file_path.lower()
    hits = sum(1 for term in terms if term in content or term in path)
    return hits / len(terms)


class SearchEngine:
    """Query-time ranking on top of a VectorStore."""

    def __init__(
        self,
        store: VectorStore,
        generator: EmbeddingGenerator,
        config: "Config",
        require_ready: Optional[Callable[[], None]] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            store: Store holding the repository's chunks
            generator: Embeds query text
            config: Configuration (search section)
            require_ready: Raises NotInitializedError while the index is not ready
            now: Clock used for the recency boost
        """
        self.store = store
        self.generator = generator
        self._require_ready = require_ready
        self._now = now

        search = config.search
        self.max_results = search.get("max_results", 20)
        self.min_similarity = search.get("min_similarity", 0.3)
        self.hybrid_min_similarity = search.get("hybrid_min_similarity", 0.2)
        self.semantic_weight = search.get("semantic_weight", 0.7)
        self.keyword_weight = search.get("keyword_weight", 0.3)
        self.candidate_multiplier = max(1, search.get("candidate_multiplier", 3))
        self.file_context_boost = search.get("file_context_boost", 1.5)
        self.type_boost = search.get("type_boost", 1.2)
        self.recency_boost = search.get("recency_boost", 1.1)
        self.recency_window = timedelta(days=search.get("recency_days", 7))

    def semantic_search(self, query: VectorQuery) -> list[SemanticSearchResult]:
        """
        Rank chunks by boosted similarity to the query text.

        Raises:
            NotInitializedError: If the index is not ready
        """
        self._check_ready()
        max_results = query.max_results or self.max_results
        min_similarity = self.min_similarity if query.min_similarity is None else query.min_similarity

        results = self._candidates(query, max_results, min_similarity)
        results.sort(key=lambda r: (r.relevance_score, r.similarity), reverse=True)
        logger.debug(f"Semantic search returned {min(len(results), max_results)} of {len(results)} candidates")
        return results[:max_results]

    def hybrid_search(self, query: VectorQuery, keywords: list[str]) -> list[SemanticSearchResult]:
        """
        Blend semantic relevance with keyword coverage.

        The returned relevance_score is the blended score; keyword_score holds
        the keyword component.

        Raises:
            NotInitializedError: If the index is not ready
        """
        self._check_ready()
        max_results = query.max_results or self.max_results
        min_similarity = self.hybrid_min_similarity if query.min_similarity is None else query.min_similarity

        candidates = self._candidates(query, max_results, min_similarity)
        if not candidates:
            return []

        terms = normalize_keywords(keywords)
        workers = min(KEYWORD_WORKERS, len(candidates))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reviewctx-keywords") as pool:
            scores = list(pool.map(lambda r: keyword_score(r.chunk, terms), candidates))

        results = [
            result.model_copy(update={
                "keyword_score": score,
                "relevance_score": self.semantic_weight * result.relevance_score + self.keyword_weight * score,
            })
            for result, score in zip(candidates, scores)
        ]
        results.sort(key=lambda r: (r.relevance_score, r.similarity), reverse=True)
        return results[:max_results]

    def _check_ready(self) -> None:
        if self._require_ready is not None:
            self._require_ready()

    def _candidates(
        self,
        query: VectorQuery,
        max_results: int,
        min_similarity: float,
    ) -> list[SemanticSearchResult]:
        vector = self.generator.embed_query(query.query_text)
        filters = SearchFilters(
            max_results=max_results * self.candidate_multiplier,
            min_similarity=min_similarity,
            include_types=list(query.include_types),
            exclude_types=list(query.exclude_types),
            file_paths=list(query.file_context) if query.scope_to_file_context else [],
        )
        hits = self.store.search(vector, filters)
        return [self._rank(hit, query.file_context) for hit in hits]

    def _rank(self, hit: SemanticSearchResult, file_context: list[str]) -> SemanticSearchResult:
        chunk = hit.chunk
        score = hit.similarity
        if chunk.file_path in file_context:
            score *= self.file_context_boost
        if chunk.type in ("function", "class"):
            score *= self.type_boost
        if self._is_recent(chunk.last_updated):
            score *= self.recency_boost
        return hit.model_copy(update={
            "relevance_score": score,
            "context_type": classify_context(chunk, file_context),
        })

    def _is_recent(self, last_updated: datetime) -> bool:
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)
        return self._now() - last_updated <= self.recency_window
