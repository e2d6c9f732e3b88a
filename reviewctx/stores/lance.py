"""
Persistent vector store on LanceDB.

One table holds the chunks of any number of repositories; every query is
scoped to the store's repository by predicate.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import lancedb
import pyarrow as pa
from lancedb.table import Table

from ..errors import StorageError
from ..models import (
    ChunkMetadata,
    EmbeddedChunk,
    RepoScope,
    SearchFilters,
    SemanticSearchResult,
    StoreStats,
)
from .base import VectorStore, to_result

logger = logging.getLogger(__name__)

CHUNK_COLUMNS = [
    "chunk_id", "repo_owner", "repo_name", "branch", "file_path", "chunk_type",
    "function_name", "class_name", "start_line", "end_line", "content",
    "content_hash", "language", "file_size", "imports", "exports",
    "created_at", "updated_at",
]


def build_schema(dimension: int) -> pa.Schema:
    """Arrow schema of the code_embeddings table."""
    return pa.schema([
        pa.field("chunk_id", pa.string()),
        pa.field("repo_owner", pa.string()),
        pa.field("repo_name", pa.string()),
        pa.field("branch", pa.string()),
        pa.field("file_path", pa.string()),
        pa.field("chunk_type", pa.string()),
        pa.field("function_name", pa.string()),
        pa.field("class_name", pa.string()),
        pa.field("start_line", pa.int32()),
        pa.field("end_line", pa.int32()),
        pa.field("content", pa.string()),
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("content_hash", pa.string()),
        pa.field("language", pa.string()),
        pa.field("file_size", pa.int64()),
        pa.field("imports", pa.string()),   # JSON array
        pa.field("exports", pa.string()),   # JSON array
        pa.field("created_at", pa.float64()),  # unix seconds
        pa.field("updated_at", pa.float64()),
    ])


def quote(value: str) -> str:
    """SQL string literal for LanceDB predicates."""
    return "'" + value.replace("'", "''") + "'"


def quote_list(values: list[str]) -> str:
    return "(" + ", ".join(quote(v) for v in values) + ")"


class LanceVectorStore(VectorStore):
    """
    LanceDB-backed store.

    Features:
    - Lazy connection and table creation
    - Upserts through merge_insert on (repo_owner, repo_name, chunk_id)
    - Cosine search with prefiltered scope/type/file predicates
    """

    backend_name = "lance"

    def __init__(
        self,
        db_path: Path,
        scope: RepoScope,
        dimension: int,
        table_name: str = "code_embeddings",
    ):
        """
        Args:
            db_path: LanceDB database directory
            scope: Repository whose chunks this store reads and writes
            dimension: Embedding dimension of the table
            table_name: Table to use
        """
        self.db_path = Path(db_path)
        self.scope = scope
        self.dimension = dimension
        self.table_name = table_name
        self.schema = build_schema(dimension)
        self._db: Optional[lancedb.DBConnection] = None
        self._table: Optional[Table] = None

    @property
    def db(self) -> lancedb.DBConnection:
        """Lazy-load the database connection."""
        if self._db is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self.db_path))
            logger.info(f"Connected to LanceDB at {self.db_path}")
        return self._db

    @property
    def table(self) -> Table:
        """Get or create the embeddings table."""
        if self._table is None:
            try:
                table = self.db.open_table(self.table_name)
            except (FileNotFoundError, ValueError):
                table = self._create_table()
            else:
                logger.debug(f"Opened existing table: {self.table_name}")
            self._check_dimension(table)
            self._table = table
        return self._table

    def _create_table(self) -> Table:
        try:
            table = self.db.create_table(self.table_name, schema=self.schema, mode="create")
            logger.info(f"Created new table: {self.table_name}")
            return table
        except (OSError, ValueError) as e:
            # another store may have created it concurrently
            if "already exists" not in str(e):
                raise StorageError(f"Failed to create table {self.table_name}: {e}") from e
            return self.db.open_table(self.table_name)

    def _check_dimension(self, table: Table) -> None:
        vector_type = table.schema.field("vector").type
        size = getattr(vector_type, "list_size", None)
        if size is not None and size != self.dimension:
            raise StorageError(
                f"Table {self.table_name} stores {size}-dimensional vectors, "
                f"provider produces {self.dimension}"
            )

    def _scope_predicate(self) -> str:
        return f"repo_owner = {quote(self.scope.owner)} AND repo_name = {quote(self.scope.name)}"

    def _file_predicate(self, file_path: str) -> str:
        return f"{self._scope_predicate()} AND file_path = {quote(file_path)}"

    def _to_row(self, chunk: EmbeddedChunk) -> dict[str, Any]:
        if len(chunk.embedding) != self.dimension:
            raise StorageError(
                f"Embedding dimension {len(chunk.embedding)} for {chunk.id} "
                f"does not match store dimension {self.dimension}"
            )
        updated_at = chunk.last_updated.timestamp()
        return {
            "chunk_id": chunk.id,
            "repo_owner": self.scope.owner,
            "repo_name": self.scope.name,
            "branch": self.scope.branch,
            "file_path": chunk.file_path,
            "chunk_type": chunk.type,
            "function_name": chunk.function_name,
            "class_name": chunk.class_name,
            "start_line": chunk.start_line,
            "end_line": chunk.end_line,
            "content": chunk.content,
            "vector": [float(v) for v in chunk.embedding],
            "content_hash": chunk.content_hash,
            "language": chunk.language,
            "file_size": chunk.metadata.size,
            "imports": json.dumps(chunk.imports),
            "exports": json.dumps(chunk.exports),
            "created_at": updated_at,
            "updated_at": updated_at,
        }

    @staticmethod
    def _from_row(row: dict[str, Any]) -> EmbeddedChunk:
        vector = row.get("vector")
        return EmbeddedChunk(
            content=row["content"],
            type=row["chunk_type"],
            file_path=row["file_path"],
            start_line=int(row["start_line"]),
            end_line=int(row["end_line"]),
            function_name=row.get("function_name"),
            class_name=row.get("class_name"),
            imports=json.loads(row.get("imports") or "[]"),
            exports=json.loads(row.get("exports") or "[]"),
            metadata=ChunkMetadata(language=row["language"], size=int(row["file_size"])),
            embedding=[float(v) for v in vector] if vector is not None else [],
            content_hash=row["content_hash"],
            last_updated=datetime.fromtimestamp(float(row["updated_at"]), tz=timezone.utc),
        )

    def put(self, chunk: EmbeddedChunk) -> None:
        self.put_batch([chunk])

    def put_batch(self, chunks: list[EmbeddedChunk]) -> None:
        if not chunks:
            return
        # last write wins for duplicate keys inside one batch
        rows = {chunk.id: self._to_row(chunk) for chunk in chunks}
        data = pa.Table.from_pylist(list(rows.values()), schema=self.schema)
        try:
            (
                self.table.merge_insert(["repo_owner", "repo_name", "chunk_id"])
                .when_matched_update_all()
                .when_not_matched_insert_all()
                .execute(data)
            )
        except (OSError, ValueError, RuntimeError) as e:
            raise StorageError(f"Failed to upsert {len(rows)} chunks: {e}") from e
        logger.debug(f"Upserted {len(rows)} chunks into {self.table_name}")

    def _select(self, predicate: str, with_vectors: bool = True) -> list[dict[str, Any]]:
        total = self.table.count_rows(predicate)
        if total == 0:
            return []
        columns = CHUNK_COLUMNS + (["vector"] if with_vectors else [])
        return self.table.search().where(predicate).select(columns).limit(total).to_list()

    def get_by_file(self, file_path: str) -> list[EmbeddedChunk]:
        rows = self._select(self._file_predicate(file_path))
        return sorted((self._from_row(row) for row in rows), key=lambda c: c.start_line)

    def delete_by_file(self, file_path: str) -> int:
        predicate = self._file_predicate(file_path)
        deleted = self.table.count_rows(predicate)
        if deleted:
            self.table.delete(predicate)
            logger.info(f"Deleted {deleted} chunks for {file_path}")
        return deleted

    def delete_all(self) -> int:
        predicate = self._scope_predicate()
        deleted = self.table.count_rows(predicate)
        if deleted:
            self.table.delete(predicate)
            logger.info(f"Deleted {deleted} chunks for {self.scope}")
        return deleted

    def count(self) -> int:
        return self.table.count_rows(self._scope_predicate())

    def list_files(self) -> set[str]:
        df = self._dataframe()
        if df.empty:
            return set()
        return set(df["file_path"].unique())

    def get_file_hash(self, file_path: str) -> Optional[str]:
        results = (
            self.table.search()
            .where(self._file_predicate(file_path))
            .select(["content_hash"])
            .limit(1)
            .to_list()
        )
        if results:
            return results[0]["content_hash"]
        return None

    def _dataframe(self):
        predicate = self._scope_predicate()
        total = self.table.count_rows(predicate)
        query = self.table.search().where(predicate).select(CHUNK_COLUMNS)
        return query.limit(max(total, 1)).to_pandas()

    def stats(self) -> StoreStats:
        df = self._dataframe()
        if df.empty:
            return StoreStats()
        return StoreStats(
            total_chunks=len(df),
            total_files=int(df["file_path"].nunique()),
            chunks_by_type={k: int(v) for k, v in df["chunk_type"].value_counts().items()},
            chunks_by_language={k: int(v) for k, v in df["language"].value_counts().items()},
            total_size=int(df["file_size"].sum()),
            last_updated=datetime.fromtimestamp(float(df["updated_at"].max()), tz=timezone.utc),
        )

    def _search_predicate(self, filters: SearchFilters) -> str:
        conditions = [self._scope_predicate()]
        if filters.include_types:
            conditions.append(f"chunk_type IN {quote_list(filters.include_types)}")
        if filters.exclude_types:
            conditions.append(f"chunk_type NOT IN {quote_list(filters.exclude_types)}")
        if filters.file_paths:
            conditions.append(f"file_path IN {quote_list(filters.file_paths)}")
        return " AND ".join(conditions)

    def search(self, query_vector: list[float], filters: SearchFilters) -> list[SemanticSearchResult]:
        if len(query_vector) != self.dimension:
            raise StorageError(
                f"Query dimension {len(query_vector)} does not match store dimension {self.dimension}"
            )
        predicate = self._search_predicate(filters)
        logger.debug(f"Vector search where {predicate}")
        rows = (
            self.table.search(query_vector, vector_column_name="vector")
            .distance_type("cosine")
            .where(predicate, prefilter=True)
            .select(CHUNK_COLUMNS)
            .limit(filters.max_results)
            .to_list()
        )

        results = []
        for row in rows:
            similarity = 1.0 - float(row.get("_distance", 1.0))
            if similarity < filters.min_similarity:
                continue
            results.append(to_result(self._from_row(row), similarity))
        return results[:filters.max_results]

    def __repr__(self) -> str:
        return f"LanceVectorStore(db_path={self.db_path}, table={self.table_name}, scope={self.scope})"
