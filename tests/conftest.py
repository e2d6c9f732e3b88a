"""
Pytest fixtures for reviewctx tests.

Provides temporary codebases, a deterministic fake embedding provider,
configured components and stores for every local backend.
"""

import hashlib
import logging
import re
import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest

from reviewctx.chunkers import Chunker
from reviewctx.config import Config
from reviewctx.embeddings import EmbeddingGenerator, EmbeddingProvider
from reviewctx.errors import TransientProviderError
from reviewctx.models import ChunkMetadata, EmbeddedChunk, RepoScope
from reviewctx.stores import InMemoryVectorStore, LanceVectorStore

FAKE_DIMENSION = 64

TOKEN_PATTERN = re.compile(r"[a-z0-9]+")


def fake_vector(text: str, dimension: int = FAKE_DIMENSION) -> list[float]:
    """Normalized bag-of-words vector; equal texts give equal vectors."""
    vector = np.zeros(dimension)
    for token in TOKEN_PATTERN.findall(text.lower()):
        index = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % dimension
        vector[index] += 1.0
    norm = np.linalg.norm(vector)
    if norm == 0:
        vector[0] = 1.0
        norm = 1.0
    return (vector / norm).tolist()


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic provider that records its calls and can fail on demand."""

    name = "fake"

    def __init__(self, dimension: int = FAKE_DIMENSION, fail_on: str = None):
        self._dimension = dimension
        self.fail_on = fail_on
        self.calls: list[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise TransientProviderError(f"refusing to embed text containing {self.fail_on!r}")
        return fake_vector(text, self._dimension)


def make_embedded(
    file_path: str,
    start_line: int,
    embedding: list[float],
    chunk_type: str = "function",
    content: str = "def sample():\n    return 1",
    content_hash: str = "hash",
    function_name: str = None,
    imports: list[str] = None,
    **kwargs,
) -> EmbeddedChunk:
    """EmbeddedChunk with sensible defaults for store and search tests."""
    return EmbeddedChunk(
        content=content,
        type=chunk_type,
        file_path=file_path,
        start_line=start_line,
        end_line=start_line + content.count("\n"),
        function_name=function_name,
        imports=imports or [],
        metadata=ChunkMetadata(language="python", size=len(content)),
        embedding=embedding,
        content_hash=content_hash,
        **kwargs,
    )


def unit(*components: float, dimension: int = 4) -> list[float]:
    """Unit vector from leading components, zero padded."""
    vector = np.zeros(dimension)
    vector[:len(components)] = components
    return (vector / np.linalg.norm(vector)).tolist()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    # Cleanup
    if temp_path.exists():
        shutil.rmtree(temp_path)


@pytest.fixture
def scope():
    return RepoScope(owner="octo", name="widgets", branch="main")


@pytest.fixture
def config(temp_dir):
    """Configuration with all pacing delays disabled."""
    config = Config(project_root=temp_dir)
    config.set("embeddings", "request_delay", value=0)
    config.set("indexer", "batch_delay", value=0)
    config.set("indexer", "file_delay", value=0)
    return config


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def generator(provider):
    return EmbeddingGenerator(provider, request_delay=0)


@pytest.fixture
def chunker():
    return Chunker.with_default_plugins()


@pytest.fixture
def memory_store():
    return InMemoryVectorStore()


@pytest.fixture(params=["memory", "lance"])
def store(request, temp_dir, scope):
    """A store for each local backend, sized for 4-dimensional test vectors."""
    if request.param == "memory":
        return InMemoryVectorStore(snapshot_path=temp_dir / "snapshot.json")
    return LanceVectorStore(temp_dir / "data.lance", scope, dimension=4)


@pytest.fixture
def sample_codebase(temp_dir):
    """A small repository with source, tests, docs and ignored files."""
    repo = temp_dir / "repo"
    (repo / "src").mkdir(parents=True)
    (repo / "tests").mkdir()
    (repo / "docs").mkdir()
    (repo / "node_modules" / "lib").mkdir(parents=True)
    (repo / ".hidden").mkdir()

    (repo / "src" / "cart.js").write_text(
        "import { formatPrice } from './pricing';\n"
        "\n"
        "function addItem(cart, item) {\n"
        "  cart.items.push(item);\n"
        "  return cart;\n"
        "}\n"
        "\n"
        "class Cart {\n"
        "  constructor() {\n"
        "    this.items = [];\n"
        "  }\n"
        "}\n"
    )
    (repo / "src" / "pricing.js").write_text(
        "export function formatPrice(amount) {\n"
        "  return '$' + amount.toFixed(2);\n"
        "}\n"
    )
    (repo / "src" / "checkout.py").write_text(
        "import os\n"
        "\n"
        "\n"
        "def checkout(cart):\n"
        "    \"\"\"Charge the cart total.\"\"\"\n"
        "    return sum(item.price for item in cart.items)\n"
        "\n"
        "\n"
        "class Receipt:\n"
        "    def __init__(self, total):\n"
        "        self.total = total\n"
    )
    (repo / "tests" / "test_checkout.py").write_text(
        "from src.checkout import checkout\n"
        "\n"
        "\n"
        "def test_checkout_empty():\n"
        "    assert checkout([]) == 0\n"
    )
    (repo / "docs" / "guide.md").write_text(
        "# Guide\n"
        "\n"
        "How to use the cart.\n"
        "\n"
        "## Checkout\n"
        "\n"
        "Call checkout with a cart.\n"
    )
    (repo / "src" / "empty.js").write_text("   \n")
    (repo / "src" / "notes.txt").write_text("not a source file\n")
    (repo / "node_modules" / "lib" / "index.js").write_text("function vendored() {\n}\n")
    (repo / ".hidden" / "secret.js").write_text("function hidden() {\n}\n")
    (repo / ".gitignore").write_text("generated/\n")
    (repo / "generated").mkdir()
    (repo / "generated" / "out.js").write_text("function generated() {\n}\n")
    return repo


SAMPLE_SOURCE_FILES = [
    "docs/guide.md",
    "src/cart.js",
    "src/checkout.py",
    "src/pricing.js",
    "tests/test_checkout.py",
]


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
