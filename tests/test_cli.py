"""
End-to-end tests for the command-line interface.
"""

import pytest
from click.testing import CliRunner

from conftest import FakeEmbeddingProvider
from reviewctx import cli


@pytest.fixture
def runner(monkeypatch, restore_root_logger):
    monkeypatch.setattr(cli, "create_embedding_provider", lambda config: FakeEmbeddingProvider())
    return CliRunner()


def invoke(runner, repo, *args, **kwargs):
    return runner.invoke(cli.main, ["--path", str(repo), *args], catch_exceptions=False, **kwargs)


def test_init(runner, sample_codebase):
    result = invoke(runner, sample_codebase, "init")

    assert result.exit_code == 0
    assert (sample_codebase / ".reviewctx" / "config.toml").exists()
    assert "already exists" in invoke(runner, sample_codebase, "init").output


def test_search_without_index(runner, sample_codebase):
    result = runner.invoke(cli.main, ["--path", str(sample_codebase), "search", "cart"])

    assert result.exit_code == 1
    assert "No index found" in result.output


def test_index_search_and_status(runner, sample_codebase):
    """Test the index, search and status commands against one working tree."""
    indexed = invoke(runner, sample_codebase, "index")
    assert indexed.exit_code == 0
    assert "Indexing complete" in indexed.output
    assert (sample_codebase / ".reviewctx" / "vector-store-local-repo.json").exists()

    searched = invoke(runner, sample_codebase, "search", "checkout cart", "--min-score", "0")
    assert searched.exit_code == 0
    assert "src/checkout.py" in searched.output

    hybrid = invoke(runner, sample_codebase, "hybrid", "cart", "-k", "Receipt", "--min-score", "0")
    assert hybrid.exit_code == 0
    assert "keywords:" in hybrid.output

    status = invoke(runner, sample_codebase, "status")
    assert status.exit_code == 0
    assert "Total chunks" in status.output
    assert "local/repo" in status.output


def test_context_and_update(runner, sample_codebase, temp_dir):
    invoke(runner, sample_codebase, "index")
    diff_file = temp_dir / "change.diff"
    diff_file.write_text("+++ b/src/cart.js\n+  cart.items.push(normalizeItem(item));\n")

    context = invoke(
        runner, sample_codebase, "context",
        "--title", "Normalize cart items",
        "--file", "src/cart.js",
        "--diff", str(diff_file),
    )
    assert context.exit_code == 0
    assert "Direct context" in context.output
    assert "quality" in context.output

    (sample_codebase / "src" / "pricing.js").unlink()
    update = invoke(runner, sample_codebase, "update", "--removed", "src/pricing.js")
    assert update.exit_code == 0
    assert "1 deleted" in update.output


def test_reset(runner, sample_codebase):
    invoke(runner, sample_codebase, "index")

    result = invoke(runner, sample_codebase, "reset", "--yes")

    assert result.exit_code == 0
    assert "Deleted" in result.output
    assert invoke(runner, sample_codebase, "status").exit_code == 0
