"""
Chunker: per-language strategy selection plus the rules shared by all
strategies (imports/exports, test-file typing and whole-file fallback).
"""

import logging
import re
from typing import Optional

from ..models import CodeChunk
from ..utils import detect_language, is_test_path
from .base import ChunkStrategy, whole_file_chunk
from .heuristic import HeuristicChunker
from .markdown import MarkdownChunker
from .treesitter import TreeSitterChunker

logger = logging.getLogger(__name__)

JS_IMPORT_PATTERNS = [
    re.compile(r"^\s*import\s+.*?\bfrom\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"^\s*import\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)"),
]
PYTHON_IMPORT_PATTERNS = [
    re.compile(r"^\s*from\s+([\w.]+)\s+import\b"),
    re.compile(r"^\s*import\s+([\w.]+)"),
]
EXPORT_PATTERN = re.compile(r"^export\s+")


class Chunker:
    """
    Splits a source file into CodeChunks.

    Strategies are registered per language; languages without one use the
    heuristic default. Chunking never raises: any strategy failure yields a
    single whole-file module chunk.
    """

    def __init__(self, default: Optional[ChunkStrategy] = None):
        self.default = default or HeuristicChunker()
        self._strategies: dict[str, ChunkStrategy] = {}

    @classmethod
    def with_default_plugins(cls) -> "Chunker":
        """Heuristic default plus the Python and Markdown plug-ins."""
        chunker = cls()
        chunker.register("python", TreeSitterChunker())
        chunker.register("markdown", MarkdownChunker())
        return chunker

    def register(self, language: str, strategy: ChunkStrategy) -> None:
        self._strategies[language] = strategy

    def strategy_for(self, language: str) -> ChunkStrategy:
        return self._strategies.get(language, self.default)

    def chunk_file(self, file_path: str, content: str) -> list[CodeChunk]:
        """
        Chunk a file's text.

        Args:
            file_path: Repository-relative path (determines the language)
            content: Full file text

        Returns:
            Chunks ordered by start line, never empty
        """
        language = detect_language(file_path)
        try:
            chunks = self.strategy_for(language).chunk(content, file_path, language)
            if not chunks:
                chunks = [whole_file_chunk(content, file_path, language)]
            imports = extract_imports(content, language)
            exports = extract_exports(content)
        except Exception as e:
            logger.warning(f"Chunking failed for {file_path}, using whole file: {e}")
            return [whole_file_chunk(content, file_path, language)]

        retype_tests = is_test_path(file_path) and language != "markdown"
        updated = []
        for chunk in sorted(chunks, key=lambda c: c.start_line):
            changes = {"imports": list(imports), "exports": list(exports)}
            if retype_tests:
                changes["type"] = "test"
            updated.append(chunk.model_copy(update=changes))
        return updated

    def __repr__(self) -> str:
        return f"Chunker(plugins={sorted(self._strategies)})"


def extract_imports(content: str, language: str) -> list[str]:
    """Module specifiers imported by a file, in order of first appearance."""
    patterns = PYTHON_IMPORT_PATTERNS if language == "python" else JS_IMPORT_PATTERNS
    imports: list[str] = []
    for line in content.split("\n"):
        for pattern in patterns:
            for match in pattern.finditer(line):
                if match.group(1) not in imports:
                    imports.append(match.group(1))
    return imports


def extract_exports(content: str) -> list[str]:
    return [line.strip() for line in content.split("\n") if EXPORT_PATTERN.match(line)]
