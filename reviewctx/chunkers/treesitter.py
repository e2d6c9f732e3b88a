"""
Tree-sitter based chunking strategy for Python.

Uses the AST to extract top-level functions and classes as chunks.
"""

import logging
from typing import Optional

import tree_sitter_python
from tree_sitter import Language, Node, Parser

from ..models import CodeChunk
from .base import ChunkStrategy, make_chunk

logger = logging.getLogger(__name__)

DEFINITION_TYPES = {
    "function_definition": "function",
    "class_definition": "class",
}


class TreeSitterChunker(ChunkStrategy):
    """
    AST chunking for Python source.

    Emits one chunk per top-level function or class, decorators included.
    Methods stay inside their class chunk. A file without top-level
    definitions produces no chunks (the Chunker then emits a module chunk).
    """

    _language: Optional[Language] = None

    @classmethod
    def _get_language(cls) -> Language:
        if cls._language is None:
            cls._language = Language(tree_sitter_python.language())
        return cls._language

    def __init__(self):
        self.parser = Parser(self._get_language())

    def chunk(self, content: str, path: str, language: str) -> list[CodeChunk]:
        if not content.strip():
            return []

        tree = self.parser.parse(content.encode("utf8"))
        root_node = tree.root_node
        if root_node.has_error:
            logger.debug(f"Parse warnings in {path}, extracting definitions anyway")

        lines = content.split("\n")
        chunks = []
        for node in root_node.children:
            definition = self._unwrap(node)
            if definition is None:
                continue
            chunk_type = DEFINITION_TYPES[definition.type]
            name = self._extract_name(definition)
            # node spans the decorators when the definition is decorated
            chunks.append(make_chunk(
                lines,
                node.start_point[0] + 1,
                node.end_point[0] + 1,
                chunk_type,
                path,
                language,
                function_name=name if chunk_type == "function" else None,
                class_name=name if chunk_type == "class" else None,
            ))

        logger.debug(f"Extracted {len(chunks)} definitions from {path} using tree-sitter")
        return chunks

    def _unwrap(self, node: Node) -> Optional[Node]:
        """Return the definition node for a top-level statement, or None."""
        if node.type in DEFINITION_TYPES:
            return node
        if node.type == "decorated_definition":
            definition = node.child_by_field_name("definition")
            if definition is not None and definition.type in DEFINITION_TYPES:
                return definition
        return None

    def _extract_name(self, node: Node) -> Optional[str]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        return name_node.text.decode("utf8")
