"""
Base chunking strategy interface for reviewctx.

Defines the abstract base class that all chunking strategies implement and
the whole-file chunk every strategy falls back to.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import ChunkMetadata, CodeChunk


class ChunkStrategy(ABC):
    """
    Abstract base class for chunking strategies.

    Different strategies can be implemented for different languages
    (line heuristics, AST-based chunking, header-based for Markdown).
    """

    @abstractmethod
    def chunk(self, content: str, path: str, language: str) -> list[CodeChunk]:
        """
        Split content into semantic chunks.

        Args:
            content: The file content to chunk
            path: Repository-relative file path
            language: Language detected from the file extension

        Returns:
            Chunks ordered by start line. Imports/exports are attached by the
            caller, so strategies may leave them empty.
        """


def make_chunk(
    lines: list[str],
    start_line: int,
    end_line: int,
    chunk_type: str,
    path: str,
    language: str,
    function_name: Optional[str] = None,
    class_name: Optional[str] = None,
) -> CodeChunk:
    """Build a CodeChunk from the 1-based inclusive line range of `lines`."""
    content = "\n".join(lines[start_line - 1:end_line])
    return CodeChunk(
        content=content,
        type=chunk_type,
        file_path=path,
        start_line=start_line,
        end_line=max(start_line, end_line),
        function_name=function_name,
        class_name=class_name,
        metadata=ChunkMetadata(language=language, size=len(content)),
    )


def whole_file_chunk(content: str, path: str, language: str, chunk_type: str = "module") -> CodeChunk:
    """A single chunk spanning the entire file."""
    lines = content.split("\n")
    return CodeChunk(
        content=content,
        type=chunk_type,
        file_path=path,
        start_line=1,
        end_line=max(1, len(lines)),
        metadata=ChunkMetadata(language=language, size=len(content)),
    )
