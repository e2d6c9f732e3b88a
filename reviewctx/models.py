"""
Data models for reviewctx.

Defines Pydantic models for code chunks, embedded chunks, queries, search
results, indexing progress/status, store statistics and PR context bundles.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

ChunkType = Literal["function", "class", "module", "documentation", "test"]
ContextType = Literal["direct", "related", "dependency", "test", "documentation"]
ChangeStatus = Literal["added", "modified", "removed", "renamed"]

CHUNK_TYPES: tuple[str, ...] = ("function", "class", "module", "documentation", "test")
CONTEXT_TYPES: tuple[str, ...] = ("direct", "related", "dependency", "test", "documentation")


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def make_chunk_id(file_path: str, chunk_type: str, start_line: int) -> str:
    """Build the stable chunk identifier from its natural key."""
    return f"{file_path}:{chunk_type}:{start_line}"


class ChunkMetadata(BaseModel):
    """Per-chunk metadata."""
    language: str = "text"
    size: int = 0


class CodeChunk(BaseModel):
    """
    A semantically meaningful segment of a source file.

    The natural key (file_path, start_line, type) identifies a chunk within a
    repository; `id` is derived from it.
    """
    content: str = Field(description="Raw text of the chunk")
    type: ChunkType = Field(description="function, class, module, documentation or test")
    file_path: str = Field(description="Path relative to the repository root")
    start_line: int = Field(ge=1, description="1-based first line")
    end_line: int = Field(ge=1, description="1-based last line, inclusive")
    function_name: Optional[str] = None
    class_name: Optional[str] = None
    imports: list[str] = Field(default_factory=list)
    exports: list[str] = Field(default_factory=list)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        return make_chunk_id(self.file_path, self.type, self.start_line)

    @property
    def natural_key(self) -> tuple[str, int, str]:
        return (self.file_path, self.start_line, self.type)

    @property
    def language(self) -> str:
        return self.metadata.language

    def __str__(self) -> str:
        name = self.function_name or self.class_name
        label = f" {name}" if name else ""
        return f"{self.file_path}:{self.start_line}-{self.end_line} [{self.type}{label}]"


class EmbeddedChunk(CodeChunk):
    """A CodeChunk plus its embedding vector and change-detection hash."""
    embedding: list[float] = Field(default_factory=list)
    content_hash: str = Field(description="MD5 of the source file the chunk came from")
    last_updated: datetime = Field(default_factory=utc_now)

    def without_embedding(self) -> "EmbeddedChunk":
        """Copy of this chunk with the raw vector stripped."""
        return self.model_copy(update={"embedding": []})


class SemanticSearchResult(BaseModel):
    """A ranked search hit."""
    chunk: EmbeddedChunk
    similarity: float = Field(ge=0, le=1, description="Cosine similarity (0-1)")
    relevance_score: float = Field(ge=0, description="Similarity after boosts")
    context_type: ContextType = "related"
    keyword_score: Optional[float] = Field(default=None, ge=0, le=1)

    def __str__(self) -> str:
        return (
            f"{self.chunk.file_path}:{self.chunk.start_line}-{self.chunk.end_line} "
            f"[{self.context_type}] ({self.relevance_score:.3f})"
        )


class VectorQuery(BaseModel):
    """
    A search request.

    When max_results/min_similarity are left unset the search engine applies
    its configured defaults (which differ between semantic and hybrid search).
    """
    query_text: str
    file_context: list[str] = Field(default_factory=list)
    max_results: Optional[int] = Field(default=None, ge=1)
    min_similarity: Optional[float] = Field(default=None, ge=0, le=1)
    include_types: list[ChunkType] = Field(default_factory=list)
    exclude_types: list[ChunkType] = Field(default_factory=list)
    scope_to_file_context: bool = True


class SearchFilters(BaseModel):
    """Store-level search predicates."""
    max_results: int = Field(default=20, ge=1)
    min_similarity: float = Field(default=0.0, ge=0, le=1)
    include_types: list[str] = Field(default_factory=list)
    exclude_types: list[str] = Field(default_factory=list)
    file_paths: list[str] = Field(default_factory=list)

    def matches(self, chunk: CodeChunk) -> bool:
        """Apply the non-similarity predicates to a chunk."""
        if self.include_types and chunk.type not in self.include_types:
            return False
        if self.exclude_types and chunk.type in self.exclude_types:
            return False
        if self.file_paths and chunk.file_path not in self.file_paths:
            return False
        return True


class RepoScope(BaseModel):
    """Identifies the repository an index belongs to."""
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str
    branch: str = "main"

    @property
    def key(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.key


class IndexState(str, Enum):
    """Lifecycle of a repository index."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


class IndexProgress(BaseModel):
    """Snapshot of a running indexing job."""
    stage: str
    current: int = 0
    total: int = 100
    start_time: datetime = Field(default_factory=utc_now)
    estimated_completion: Optional[datetime] = None

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(100.0 * self.current / self.total, 1)

    @property
    def elapsed_seconds(self) -> float:
        return (utc_now() - self.start_time).total_seconds()


class IndexStatus(BaseModel):
    """Externally visible state of a repository index."""
    state: IndexState
    backend: str
    scope: str
    progress: Optional[IndexProgress] = None
    error: Optional[str] = None
    total_chunks: int = 0

    @property
    def status(self) -> str:
        return "ERROR" if self.error else "OK"

    @property
    def is_ready(self) -> bool:
        return self.state == IndexState.INITIALIZED


class StoreStats(BaseModel):
    """Statistics about the indexed content of a store."""
    total_chunks: int = 0
    total_files: int = 0
    chunks_by_type: dict[str, int] = Field(default_factory=dict)
    chunks_by_language: dict[str, int] = Field(default_factory=dict)
    total_size: int = 0
    last_updated: Optional[datetime] = None

    def __str__(self) -> str:
        lines = [
            f"Total files: {self.total_files}",
            f"Total chunks: {self.total_chunks}",
            f"Content size: {self.total_size / 1024:.1f} KB",
        ]
        if self.chunks_by_type:
            lines.append("Chunk types:")
            for chunk_type, count in sorted(self.chunks_by_type.items(), key=lambda x: -x[1]):
                lines.append(f"  {chunk_type}: {count}")
        if self.chunks_by_language:
            lines.append("Languages:")
            for lang, count in sorted(self.chunks_by_language.items(), key=lambda x: -x[1]):
                lines.append(f"  {lang}: {count}")
        if self.last_updated:
            lines.append(f"Last updated: {self.last_updated.strftime('%Y-%m-%d %H:%M:%S')}")
        return "\n".join(lines)


class FileChange(BaseModel):
    """One entry of a pull request's changed-file list."""
    filename: str
    status: ChangeStatus = "modified"
    previous_filename: Optional[str] = None


class UpdateReport(BaseModel):
    """Outcome of applying a batch of file changes."""
    updated: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    deleted_chunks: int = 0
    stored_chunks: int = 0

    def summary(self) -> dict[str, int]:
        return {
            "updated": len(self.updated),
            "deleted": len(self.deleted),
            "skipped": len(self.skipped),
        }


class ContextSummary(BaseModel):
    """Aggregate figures for a PR context bundle."""
    total_chunks: int = 0
    relevance_distribution: dict[str, int] = Field(default_factory=dict)
    estimated_tokens: int = 0
    context_quality: str = "LIMITED"


class ContextBundle(BaseModel):
    """Categorized search results assembled for a pull request review."""
    direct: list[SemanticSearchResult] = Field(default_factory=list)
    related: list[SemanticSearchResult] = Field(default_factory=list)
    test: list[SemanticSearchResult] = Field(default_factory=list)
    documentation: list[SemanticSearchResult] = Field(default_factory=list)
    summary: ContextSummary = Field(default_factory=ContextSummary)

    def all_results(self) -> list[SemanticSearchResult]:
        return self.direct + self.related + self.test + self.documentation
