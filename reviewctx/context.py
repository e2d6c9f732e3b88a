"""
Pull request context assembly.

Builds one query from a pull request's title, description, changed files and
diff, runs four category searches concurrently and summarizes the result.
"""

import logging
import math
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from .models import ContextBundle, ContextSummary, SemanticSearchResult, VectorQuery
from .search import SearchEngine

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

IDENTIFIER_PATTERN = re.compile(r"\b[A-Za-z_][A-Za-z0-9_]*\b")

# category -> (default max_results, default min_similarity)
CATEGORY_DEFAULTS = {
    "direct": (15, 0.4),
    "related": (10, 0.3),
    "test": (8, 0.25),
    "documentation": (5, 0.2),
}

DEFAULT_QUALITY_LEVELS = [
    ["EXCELLENT", 30, 50000],
    ["VERY GOOD", 20, 30000],
    ["GOOD", 10, 15000],
    ["FAIR", 5, 5000],
]


def extract_diff_keywords(diff: str) -> list[str]:
    """
    Identifiers longer than two characters from added and removed lines.

    File headers (+++ / ---) are ignored; order of first appearance is kept.
    """
    keywords: dict[str, None] = {}
    for line in diff.splitlines():
        if line.startswith("+++") or line.startswith("---"):
            continue
        if not (line.startswith("+") or line.startswith("-")):
            continue
        for identifier in IDENTIFIER_PATTERN.findall(line[1:]):
            if len(identifier) > 2:
                keywords.setdefault(identifier, None)
    return list(keywords)


def build_query(title: str, description: str, changed_files: list[str], diff: str) -> str:
    """Single search text for a pull request."""
    parts = [f"{title} {description}".strip()]
    parts.extend(PurePosixPath(path).stem for path in changed_files)
    parts.extend(extract_diff_keywords(diff))
    return " ".join(part for part in parts if part)


def estimate_tokens(results: list[SemanticSearchResult]) -> int:
    """Rough token count: four characters per token, rounded up per chunk."""
    return sum(math.ceil(len(result.chunk.content) / 4) for result in results)


class ContextAssembler:
    """Gathers direct, related, test and documentation context for a pull request."""

    def __init__(self, engine: SearchEngine, config: "Config"):
        self.engine = engine
        self.categories = {
            name: (
                config.get("context", name, "max_results", default=defaults[0]),
                config.get("context", name, "min_similarity", default=defaults[1]),
            )
            for name, defaults in CATEGORY_DEFAULTS.items()
        }
        self.quality_levels = config.get("context", "quality_levels", default=DEFAULT_QUALITY_LEVELS)

    def queries(self, text: str, changed_files: list[str]) -> dict[str, VectorQuery]:
        """The four category queries for a search text."""

        def limits(name: str) -> dict:
            max_results, min_similarity = self.categories[name]
            return {"max_results": max_results, "min_similarity": min_similarity}

        return {
            "direct": VectorQuery(
                query_text=text,
                file_context=list(changed_files),
                include_types=["function", "class", "module"],
                **limits("direct"),
            ),
            "related": VectorQuery(
                query_text=text,
                exclude_types=["test", "documentation"],
                **limits("related"),
            ),
            "test": VectorQuery(query_text=text, include_types=["test"], **limits("test")),
            "documentation": VectorQuery(
                query_text=text,
                include_types=["documentation"],
                **limits("documentation"),
            ),
        }

    def assemble(
        self,
        title: str,
        description: str,
        changed_files: list[str],
        diff: str,
    ) -> ContextBundle:
        """
        Build the context bundle for a pull request.

        Raises:
            NotInitializedError: If the index is not ready
        """
        text = build_query(title, description, changed_files, diff)
        queries = self.queries(text, changed_files)
        logger.debug(f"PR context query ({len(text)} chars) for {len(changed_files)} changed files")

        with ThreadPoolExecutor(max_workers=len(queries), thread_name_prefix="reviewctx-context") as pool:
            futures = {name: pool.submit(self.engine.semantic_search, query) for name, query in queries.items()}
            results = {name: future.result() for name, future in futures.items()}

        bundle = ContextBundle(**results)
        bundle.summary = self.summarize(bundle.all_results())
        logger.info(
            f"PR context: {bundle.summary.total_chunks} chunks, "
            f"~{bundle.summary.estimated_tokens} tokens ({bundle.summary.context_quality})"
        )
        return bundle

    def summarize(self, results: list[SemanticSearchResult]) -> ContextSummary:
        distribution: dict[str, int] = {}
        for result in results:
            distribution[result.context_type] = distribution.get(result.context_type, 0) + 1
        tokens = estimate_tokens(results)
        return ContextSummary(
            total_chunks=len(results),
            relevance_distribution=distribution,
            estimated_tokens=tokens,
            context_quality=self.quality(len(results), tokens),
        )

    def quality(self, total_chunks: int, estimated_tokens: int) -> str:
        for label, min_chunks, min_tokens in self.quality_levels:
            if total_chunks > min_chunks and estimated_tokens > min_tokens:
                return label
        return "LIMITED"

