"""
Vector store backends.
"""

from .base import VectorStore
from .factory import BACKENDS, create_vector_store
from .lance import LanceVectorStore
from .memory import InMemoryVectorStore
from .pgvector import PgVectorStore

__all__ = [
    "BACKENDS",
    "InMemoryVectorStore",
    "LanceVectorStore",
    "PgVectorStore",
    "VectorStore",
    "create_vector_store",
]
