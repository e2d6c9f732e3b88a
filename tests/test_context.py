"""
Unit tests for pull request context assembly.
"""

import pytest

from conftest import make_embedded, unit
from reviewctx.context import (
    ContextAssembler,
    build_query,
    estimate_tokens,
    extract_diff_keywords,
)
from reviewctx.indexer import IndexCoordinator
from reviewctx.models import SemanticSearchResult
from reviewctx.search import SearchEngine

DIFF = """diff --git a/src/cart.js b/src/cart.js
--- a/src/cart.js
+++ b/src/cart.js
@@ -3,4 +3,5 @@
 function addItem(cart, item) {
-  cart.items.push(item);
+  cart.items.push(normalizeItem(item));
+  if (id) return cart;
 }
"""


def result(content="x", context_type="related"):
    return SemanticSearchResult(
        chunk=make_embedded("a.py", 1, unit(1, 0), content=content),
        similarity=0.5,
        relevance_score=0.5,
        context_type=context_type,
    )


def test_extract_diff_keywords():
    """Test that only changed lines contribute identifiers, in first-seen order."""
    assert extract_diff_keywords(DIFF) == ["cart", "items", "push", "item", "normalizeItem", "return"]


def test_extract_diff_keywords_empty():
    assert extract_diff_keywords("") == []


def test_build_query():
    query = build_query(
        "Fix totals",
        "Rounding issue",
        ["src/cart.js", "lib/money/format.py"],
        "+ applyDiscount(x)\n",
    )
    assert query == "Fix totals Rounding issue cart format applyDiscount"


def test_build_query_without_description():
    assert build_query("Fix", "", ["src/cart.js"], "") == "Fix cart"


def test_estimate_tokens():
    assert estimate_tokens([result("a" * 10), result("abc")]) == 4
    assert estimate_tokens([]) == 0


class TestQuality:
    """Tests for the context quality label."""

    @pytest.fixture
    def assembler(self, config):
        return ContextAssembler(engine=None, config=config)

    @pytest.mark.parametrize("chunks,tokens,label", [
        (31, 50001, "EXCELLENT"),
        (30, 60000, "VERY GOOD"),
        (21, 30001, "VERY GOOD"),
        (11, 15001, "GOOD"),
        (6, 5001, "FAIR"),
        (5, 5001, "LIMITED"),
        (100, 10, "LIMITED"),
        (0, 0, "LIMITED"),
    ])
    def test_levels(self, assembler, chunks, tokens, label):
        assert assembler.quality(chunks, tokens) == label

    def test_configured_levels(self, config):
        config.set("context", "quality_levels", value=[["PLENTY", 1, 1]])
        assembler = ContextAssembler(engine=None, config=config)

        assert assembler.quality(2, 2) == "PLENTY"
        assert assembler.quality(1, 2) == "LIMITED"


def test_summarize(config):
    assembler = ContextAssembler(engine=None, config=config)

    summary = assembler.summarize([
        result("a" * 8, "direct"),
        result("b" * 8, "direct"),
        result("c" * 4, "test"),
    ])

    assert summary.total_chunks == 3
    assert summary.relevance_distribution == {"direct": 2, "test": 1}
    assert summary.estimated_tokens == 5
    assert summary.context_quality == "LIMITED"


def test_category_queries(config):
    config.set("context", "related", "max_results", value=4)
    assembler = ContextAssembler(engine=None, config=config)

    queries = assembler.queries("fix cart", ["src/cart.js"])

    direct = queries["direct"]
    assert direct.file_context == ["src/cart.js"]
    assert direct.include_types == ["function", "class", "module"]
    assert (direct.max_results, direct.min_similarity) == (15, 0.4)
    assert queries["related"].exclude_types == ["test", "documentation"]
    assert queries["related"].max_results == 4
    assert queries["test"].include_types == ["test"]
    assert queries["documentation"].include_types == ["documentation"]
    assert queries["documentation"].min_similarity == 0.2


def test_assemble(scope, memory_store, chunker, generator, config, sample_codebase):
    """Test a full bundle over the sample repository."""
    for category in ("direct", "related", "test", "documentation"):
        config.set("context", category, "min_similarity", value=0.0)
    coordinator = IndexCoordinator(scope, memory_store, chunker, generator, config)
    coordinator.initialize(sample_codebase, background=False)
    engine = SearchEngine(memory_store, generator, config, require_ready=coordinator.require_initialized)
    assembler = ContextAssembler(engine, config)

    bundle = assembler.assemble("Normalize cart items", "", ["src/cart.js"], DIFF)
    coordinator.shutdown()

    assert len(bundle.direct) == 2
    assert all(r.chunk.file_path == "src/cart.js" for r in bundle.direct)
    assert all(r.context_type == "direct" for r in bundle.direct)
    assert bundle.related
    assert all(r.chunk.type not in ("test", "documentation") for r in bundle.related)
    assert [r.chunk.type for r in bundle.test] == ["test"]
    assert bundle.documentation
    assert all(r.chunk.type == "documentation" for r in bundle.documentation)

    summary = bundle.summary
    assert summary.total_chunks == len(bundle.all_results())
    assert sum(summary.relevance_distribution.values()) == summary.total_chunks
    assert summary.estimated_tokens == estimate_tokens(bundle.all_results())
    assert summary.context_quality == "LIMITED"
