"""
Explicit backend selection from configuration.
"""

import logging
from typing import TYPE_CHECKING

from ..errors import ConfigurationError
from ..models import RepoScope
from .base import VectorStore
from .lance import LanceVectorStore
from .memory import InMemoryVectorStore
from .pgvector import PgVectorStore

if TYPE_CHECKING:
    from ..config import Config

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "lance", "pgvector")


def create_vector_store(config: "Config", scope: RepoScope, dimension: int) -> VectorStore:
    """
    Build the store named by `store.backend`.

    The in-memory snapshot path gets the repository key appended so several
    repositories can share one data directory.
    """
    backend = config.get("store", "backend", default="memory")
    table_name = config.get("store", "table_name", default="code_embeddings")

    if backend == "memory":
        snapshot_path = config.resolve_path("store", "path")
        if snapshot_path is not None:
            snapshot_path = snapshot_path.with_name(
                f"{snapshot_path.stem}-{scope.owner}-{scope.name}{snapshot_path.suffix}"
            )
        store: VectorStore = InMemoryVectorStore(snapshot_path=snapshot_path)
    elif backend == "lance":
        store = LanceVectorStore(
            db_path=config.resolve_path("store", "lance_path"),
            scope=scope,
            dimension=dimension,
            table_name=table_name,
        )
    elif backend == "pgvector":
        store = PgVectorStore(
            database_url=config.database_url(),
            scope=scope,
            dimension=dimension,
            table_name=table_name,
        )
    else:
        raise ConfigurationError(f"Unknown store backend: {backend}. Use one of {BACKENDS}")

    logger.info(f"Using {backend} vector store for {scope}")
    return store
