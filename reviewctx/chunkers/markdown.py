"""
Markdown chunking strategy.

Splits Markdown documents into one documentation chunk per header section.
"""

import logging
import re

from ..models import CodeChunk
from .base import ChunkStrategy, make_chunk

logger = logging.getLogger(__name__)

HEADER_PATTERN = re.compile(r"^(#{1,6})\s+(.+)$")
FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker(ChunkStrategy):
    """
    Header-based chunking for Markdown files.

    Each chunk runs from an ATX header (# through ######) to the line before
    the next header. Text before the first header forms its own section.
    Header-like lines inside fenced code blocks are ignored.
    """

    def chunk(self, content: str, path: str, language: str) -> list[CodeChunk]:
        if not content.strip():
            return []

        lines = content.split("\n")
        sections: list[tuple[int, int]] = []
        section_start = 1
        in_fence = False

        for line_no, line in enumerate(lines, 1):
            if FENCE_PATTERN.match(line):
                in_fence = not in_fence
                continue
            if in_fence or not HEADER_PATTERN.match(line):
                continue
            if line_no > section_start:
                sections.append((section_start, line_no - 1))
            section_start = line_no

        sections.append((section_start, len(lines)))

        chunks = []
        for start, end in sections:
            while end > start and not lines[end - 1].strip():
                end -= 1
            if not "\n".join(lines[start - 1:end]).strip():
                continue
            chunks.append(make_chunk(lines, start, end, "documentation", path, language))

        logger.debug(f"Extracted {len(chunks)} sections from {path}")
        return chunks
