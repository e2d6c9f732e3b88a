"""
Persistent vector store on PostgreSQL with the pgvector extension.

Statements are built with SQLAlchemy Core so they can be inspected without a
database; the store executes them on an Engine.
"""

import json
import logging
import threading
from typing import Any, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    func,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Select

from ..errors import StorageError
from ..models import (
    ChunkMetadata,
    EmbeddedChunk,
    RepoScope,
    SearchFilters,
    SemanticSearchResult,
    StoreStats,
    utc_now,
)
from .base import VectorStore, to_result

logger = logging.getLogger(__name__)

NATURAL_KEY = ["repo_owner", "repo_name", "file_path", "start_line", "chunk_type"]
UPDATABLE_COLUMNS = [
    "function_name", "class_name", "end_line", "content", "embedding",
    "content_hash", "language", "file_size", "imports", "exports", "branch", "updated_at",
]


def build_table(metadata: MetaData, dimension: int, table_name: str = "code_embeddings") -> Table:
    """Define the embeddings table for a given vector dimension."""
    return Table(
        table_name,
        metadata,
        Column("id", BigInteger, primary_key=True, autoincrement=True),
        Column("file_path", String(500), nullable=False),
        Column("chunk_type", String(50), nullable=False),
        Column("function_name", String(200)),
        Column("class_name", String(200)),
        Column("start_line", Integer, nullable=False),
        Column("end_line", Integer, nullable=False),
        Column("content", Text, nullable=False),
        Column("embedding", Vector(dimension), nullable=False),
        Column("content_hash", String(64), nullable=False),
        Column("language", String(50), nullable=False),
        Column("file_size", Integer, nullable=False),
        Column("imports", Text, nullable=False, default="[]"),
        Column("exports", Text, nullable=False, default="[]"),
        Column("repo_owner", String(200), nullable=False),
        Column("repo_name", String(200), nullable=False),
        Column("branch", String(200), nullable=False, default="main"),
        Column("created_at", DateTime(timezone=True), nullable=False, default=utc_now),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=utc_now),
        Index(f"idx_{table_name}_file_path", "file_path"),
        Index(f"idx_{table_name}_repo", "repo_owner", "repo_name"),
        Index(f"idx_{table_name}_content_hash", "content_hash"),
        Index(f"idx_{table_name}_chunk_type", "chunk_type"),
        Index(f"uq_{table_name}_natural_key", *NATURAL_KEY, unique=True),
    )


def scope_clause(table: Table, scope: RepoScope):
    return and_(table.c.repo_owner == scope.owner, table.c.repo_name == scope.name)


def search_statement(
    table: Table,
    scope: RepoScope,
    query_vector: list[float],
    filters: SearchFilters,
) -> Select:
    """Nearest-neighbour query: predicates first, then ORDER BY distance LIMIT n."""
    distance = table.c.embedding.cosine_distance(query_vector)
    conditions = [scope_clause(table, scope)]
    if filters.include_types:
        conditions.append(table.c.chunk_type.in_(filters.include_types))
    if filters.exclude_types:
        conditions.append(table.c.chunk_type.not_in(filters.exclude_types))
    if filters.file_paths:
        conditions.append(table.c.file_path.in_(filters.file_paths))

    columns = [c for c in table.c if c.name != "embedding"]
    return (
        select(*columns, (1 - distance).label("similarity"))
        .where(and_(*conditions))
        .order_by(distance)
        .limit(filters.max_results)
    )


def upsert_statement(table: Table, rows: list[dict[str, Any]]):
    """INSERT ... ON CONFLICT (natural key) DO UPDATE."""
    stmt = pg_insert(table).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=NATURAL_KEY,
        set_={name: stmt.excluded[name] for name in UPDATABLE_COLUMNS},
    )


class PgVectorStore(VectorStore):
    """
    PostgreSQL/pgvector-backed store.

    The schema (extension, table and indexes) is created on first use.
    """

    backend_name = "pgvector"

    def __init__(
        self,
        database_url: Optional[str],
        scope: RepoScope,
        dimension: int,
        table_name: str = "code_embeddings",
        engine: Optional[Engine] = None,
    ):
        """
        Args:
            database_url: SQLAlchemy URL, e.g. postgresql+psycopg2://user:pw@host/db
            scope: Repository whose chunks this store reads and writes
            dimension: Embedding dimension of the vector column
            table_name: Table to use
            engine: Optional existing Engine (takes precedence over database_url)
        """
        if engine is None and not database_url:
            raise StorageError("A database URL or engine is required for the pgvector store")
        self.scope = scope
        self.dimension = dimension
        self.engine = engine or create_engine(database_url, pool_pre_ping=True)
        self.metadata = MetaData()
        self.table = build_table(self.metadata, dimension, table_name)
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                with self.engine.begin() as conn:
                    conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                    self.metadata.create_all(conn)
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to create schema for {self.table.name}: {e}") from e
            self._schema_ready = True
            logger.info(f"Schema ready: {self.table.name} (vector({self.dimension}))")

    def _query(self, stmt) -> list[Any]:
        self.ensure_schema()
        try:
            with self.engine.connect() as conn:
                return list(conn.execute(stmt).mappings().all())
        except SQLAlchemyError as e:
            raise StorageError(f"Database query failed: {e}") from e

    def _write(self, stmt) -> int:
        """Execute a DML statement in its own transaction and return the row count."""
        self.ensure_schema()
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as e:
            raise StorageError(f"Database write failed: {e}") from e

    def _to_row(self, chunk: EmbeddedChunk) -> dict[str, Any]:
        if len(chunk.embedding) != self.dimension:
            raise StorageError(
                f"Embedding dimension {len(chunk.embedding)} for {chunk.id} "
                f"does not match store dimension {self.dimension}"
            )
        return {
            "file_path": chunk.file_path,
            "chunk_type": chunk.type,
            "function_name": chunk.function_name,
            "class_name": chunk.class_name,
            "start_line": chunk.start_line,
            "end_line": chunk.end_line,
            "content": chunk.content,
            "embedding": chunk.embedding,
            "content_hash": chunk.content_hash,
            "language": chunk.language,
            "file_size": chunk.metadata.size,
            "imports": json.dumps(chunk.imports),
            "exports": json.dumps(chunk.exports),
            "repo_owner": self.scope.owner,
            "repo_name": self.scope.name,
            "branch": self.scope.branch,
            "created_at": chunk.last_updated,
            "updated_at": chunk.last_updated,
        }

    @staticmethod
    def _from_row(row: Any, embedding: Optional[list[float]] = None) -> EmbeddedChunk:
        return EmbeddedChunk(
            content=row["content"],
            type=row["chunk_type"],
            file_path=row["file_path"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            function_name=row["function_name"],
            class_name=row["class_name"],
            imports=json.loads(row["imports"] or "[]"),
            exports=json.loads(row["exports"] or "[]"),
            metadata=ChunkMetadata(language=row["language"], size=row["file_size"]),
            embedding=embedding or [],
            content_hash=row["content_hash"],
            last_updated=row["updated_at"],
        )

    def put(self, chunk: EmbeddedChunk) -> None:
        self.put_batch([chunk])

    def put_batch(self, chunks: list[EmbeddedChunk]) -> None:
        if not chunks:
            return
        # ON CONFLICT cannot touch the same row twice in one statement
        rows = list({chunk.id: self._to_row(chunk) for chunk in chunks}.values())
        self._write(upsert_statement(self.table, rows))
        logger.debug(f"Upserted {len(rows)} chunks into {self.table.name}")

    def get_by_file(self, file_path: str) -> list[EmbeddedChunk]:
        stmt = (
            select(self.table)
            .where(scope_clause(self.table, self.scope), self.table.c.file_path == file_path)
            .order_by(self.table.c.start_line)
        )
        return [self._from_row(row, [float(v) for v in row["embedding"]]) for row in self._query(stmt)]

    def delete_by_file(self, file_path: str) -> int:
        stmt = delete(self.table).where(
            scope_clause(self.table, self.scope), self.table.c.file_path == file_path
        )
        deleted = self._write(stmt)
        if deleted:
            logger.info(f"Deleted {deleted} chunks for {file_path}")
        return deleted

    def delete_all(self) -> int:
        stmt = delete(self.table).where(scope_clause(self.table, self.scope))
        deleted = self._write(stmt)
        logger.info(f"Deleted {deleted} chunks for {self.scope}")
        return deleted

    def count(self) -> int:
        stmt = select(func.count().label("n")).select_from(self.table).where(scope_clause(self.table, self.scope))
        return int(self._query(stmt)[0]["n"])

    def list_files(self) -> set[str]:
        stmt = select(self.table.c.file_path).distinct().where(scope_clause(self.table, self.scope))
        return {row["file_path"] for row in self._query(stmt)}

    def get_file_hash(self, file_path: str) -> Optional[str]:
        stmt = (
            select(self.table.c.content_hash)
            .where(scope_clause(self.table, self.scope), self.table.c.file_path == file_path)
            .limit(1)
        )
        rows = self._query(stmt)
        return rows[0]["content_hash"] if rows else None

    def _grouped_counts(self, column) -> dict[str, int]:
        stmt = (
            select(column, func.count().label("n"))
            .where(scope_clause(self.table, self.scope))
            .group_by(column)
        )
        return {row[column.name]: int(row["n"]) for row in self._query(stmt)}

    def stats(self) -> StoreStats:
        totals = select(
            func.count().label("chunks"),
            func.count(func.distinct(self.table.c.file_path)).label("files"),
            func.coalesce(func.sum(self.table.c.file_size), 0).label("size"),
            func.max(self.table.c.updated_at).label("last_updated"),
        ).where(scope_clause(self.table, self.scope))
        row = self._query(totals)[0]
        if not row["chunks"]:
            return StoreStats()
        return StoreStats(
            total_chunks=int(row["chunks"]),
            total_files=int(row["files"]),
            chunks_by_type=self._grouped_counts(self.table.c.chunk_type),
            chunks_by_language=self._grouped_counts(self.table.c.language),
            total_size=int(row["size"]),
            last_updated=row["last_updated"],
        )

    def search(self, query_vector: list[float], filters: SearchFilters) -> list[SemanticSearchResult]:
        if len(query_vector) != self.dimension:
            raise StorageError(
                f"Query dimension {len(query_vector)} does not match store dimension {self.dimension}"
            )
        rows = self._query(search_statement(self.table, self.scope, query_vector, filters))
        results = []
        for row in rows:
            similarity = float(row["similarity"])
            if similarity < filters.min_similarity:
                continue
            results.append(to_result(self._from_row(row), similarity))
        return results

    def close(self) -> None:
        self.engine.dispose()

    def __repr__(self) -> str:
        return f"PgVectorStore(table={self.table.name}, scope={self.scope})"
