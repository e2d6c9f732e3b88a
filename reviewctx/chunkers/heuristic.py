"""
Line and brace-depth chunking strategy.

The default strategy for every language without a dedicated parser. It is a
heuristic, not a parser: braces are counted without regard to strings,
comments or template literals.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from ..models import CodeChunk
from .base import ChunkStrategy, make_chunk

logger = logging.getLogger(__name__)

FUNCTION_PATTERNS = [
    # function foo(...) / export default async function* foo / PHP modifiers
    re.compile(
        r"^\s*(?:export\s+)?(?:default\s+)?"
        r"(?:(?:public|private|protected|static|abstract|final)\s+)*"
        r"(?:async\s+)?function\s*\*?\s*(\w+)"
    ),
    # const foo = (...) => / const foo = async function / let foo = x =>
    re.compile(
        r"^\s*(?:export\s+)?(?:const|let|var)\s+(\w+)\s*(?::[^=]+)?=\s*"
        r"(?:async\s+)?(?:function\b|\([^)]*\)\s*(?::[^=]+)?=>|\w+\s*=>)"
    ),
    # foo: function(...) / foo = (...) =>
    re.compile(r"^\s*(\w+)\s*[:=]\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>)"),
    # Go
    re.compile(r"^\s*func\s+(?:\([^)]*\)\s*)?(\w+)"),
    # Rust
    re.compile(r"^\s*(?:pub(?:\([^)]*\))?\s+)?(?:async\s+)?(?:unsafe\s+)?fn\s+(\w+)"),
    # Ruby / Python
    re.compile(r"^\s*(?:async\s+)?def\s+(?:self\.)?(\w+)"),
]

CLASS_PATTERN = re.compile(
    r"^\s*(?:export\s+)?(?:default\s+)?"
    r"(?:(?:public|private|protected|abstract|final|static)\s+)*"
    r"class\s+(\w+)"
)

# "}", "};", "})", "});", "},"
BARE_CLOSING_LINE = re.compile(r"^\}[\s;),]*$")


@dataclass
class _OpenChunk:
    start_line: int
    chunk_type: str
    name: Optional[str]
    depth: int = 0


class HeuristicChunker(ChunkStrategy):
    """
    Single-pass line heuristic that splits source into function and class chunks.

    Rules:
    - A declaration line (function, arrow function, class, Go func, Rust fn,
      def) opens a chunk. Declarations are only recognised when no chunk is
      open or the open chunk's brace depth is zero.
    - Brace depth is counted from the chunk's first line.
    - A bare closing line that brings the depth to zero or below closes the
      chunk on that line.
    - A new declaration closes the open chunk on the last non-blank line
      before it. A chunk still open at end of file ends on the last
      non-blank line.
    - Lines outside any chunk are dropped; no chunk at all yields an empty
      list, which the Chunker turns into a module chunk.
    """

    def chunk(self, content: str, path: str, language: str) -> list[CodeChunk]:
        if not content.strip():
            return []

        lines = content.split("\n")
        chunks: list[CodeChunk] = []
        current: Optional[_OpenChunk] = None

        for line_no, line in enumerate(lines, 1):
            if current is None or current.depth == 0:
                declaration = self._match_declaration(line)
                if declaration:
                    if current is not None:
                        chunks.append(self._close(current, line_no - 1, lines, path, language))
                    chunk_type, name = declaration
                    current = _OpenChunk(start_line=line_no, chunk_type=chunk_type, name=name)

            if current is None:
                continue

            current.depth += line.count("{") - line.count("}")

            if current.depth <= 0 and BARE_CLOSING_LINE.match(line.strip()):
                chunks.append(self._close(current, line_no, lines, path, language))
                current = None

        if current is not None:
            chunks.append(self._close(current, len(lines), lines, path, language))

        logger.debug(f"Heuristic chunking found {len(chunks)} chunks in {path}")
        return chunks

    def _match_declaration(self, line: str) -> Optional[tuple[str, str]]:
        """Return (chunk_type, name) when the line starts a function or class."""
        class_match = CLASS_PATTERN.match(line)
        if class_match:
            return "class", class_match.group(1)
        for pattern in FUNCTION_PATTERNS:
            match = pattern.match(line)
            if match:
                return "function", match.group(1)
        return None

    def _close(
        self,
        open_chunk: _OpenChunk,
        end_line: int,
        lines: list[str],
        path: str,
        language: str,
    ) -> CodeChunk:
        while end_line > open_chunk.start_line and not lines[end_line - 1].strip():
            end_line -= 1
        is_class = open_chunk.chunk_type == "class"
        return make_chunk(
            lines,
            open_chunk.start_line,
            end_line,
            open_chunk.chunk_type,
            path,
            language,
            function_name=None if is_class else open_chunk.name,
            class_name=open_chunk.name if is_class else None,
        )
