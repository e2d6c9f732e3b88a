"""
Chunking strategies for different file types.
"""

from .base import ChunkStrategy
from .heuristic import HeuristicChunker
from .markdown import MarkdownChunker
from .registry import Chunker, extract_exports, extract_imports
from .treesitter import TreeSitterChunker

__all__ = [
    "ChunkStrategy",
    "Chunker",
    "HeuristicChunker",
    "MarkdownChunker",
    "TreeSitterChunker",
    "extract_exports",
    "extract_imports",
]
