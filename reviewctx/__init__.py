"""
reviewctx - Embedding index and semantic search of repository code for pull request review.

This package provides:
- Language-aware chunking (heuristic brace scanner, tree-sitter for Python, Markdown sections)
- Embedding generation via sentence-transformers or the Gemini REST API
- Vector stores backed by memory snapshots, LanceDB or PostgreSQL/pgvector
- Background full indexing and incremental updates from changed-file lists
- Semantic and hybrid search plus PR context assembly
"""

from .config import Config
from .errors import (
    ConfigurationError,
    IndexingCancelled,
    NotInitializedError,
    ReviewCtxError,
    StorageError,
    TransientProviderError,
)
from .models import (
    CodeChunk,
    ContextBundle,
    EmbeddedChunk,
    FileChange,
    IndexState,
    IndexStatus,
    RepoScope,
    SemanticSearchResult,
    UpdateReport,
    VectorQuery,
)
from .service import ReviewContextService, ServiceRegistry

__version__ = "0.1.0"

__all__ = [
    # Models
    "CodeChunk",
    "EmbeddedChunk",
    "SemanticSearchResult",
    "VectorQuery",
    "RepoScope",
    "IndexState",
    "IndexStatus",
    "FileChange",
    "UpdateReport",
    "ContextBundle",
    # Errors
    "ReviewCtxError",
    "ConfigurationError",
    "TransientProviderError",
    "NotInitializedError",
    "StorageError",
    "IndexingCancelled",
    # Services
    "Config",
    "ReviewContextService",
    "ServiceRegistry",
]
