"""
Vector Store implementations.

Exhaustive cosine-similarity search over stored embeddings. Every
search scores every (optionally pre-filtered) document; there is no
approximate index. Two backends share the scoring logic:

- InMemoryVectorStore: dict-backed, for tests and single-process demos
- PostgresVectorStore: asyncpg table with JSONB embedding/metadata
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import abstractmethod
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import asyncpg
import numpy as np

from ..domain.entities import SearchResult, VectorDocument
from ..domain.ports import IVectorStore

logger = logging.getLogger(__name__)


class VectorStoreError(Exception):
    """Raised when the vector store backend fails."""


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors.

    Vectors of different length are both truncated to the shorter one.
    A zero-norm vector (or an empty overlap) scores 0.0.
    """
    size = min(len(a), len(b))
    if size == 0:
        return 0.0

    va = np.asarray(a[:size], dtype=np.float64)
    vb = np.asarray(b[:size], dtype=np.float64)
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0

    score = float(np.dot(va, vb) / denominator)
    # NaN/inf components make the score meaningless, not a perfect match
    if not np.isfinite(score):
        return 0.0
    # Clamp float error so identical vectors never exceed 1
    return max(-1.0, min(1.0, score))


def matches_filter(metadata: dict[str, Any], filter: Optional[dict[str, Any]]) -> bool:
    """Exact-match every key of ``filter`` against ``metadata``."""
    if not filter:
        return True
    return all(
        key in metadata and metadata[key] == value for key, value in filter.items()
    )


def rank_documents(
    query_embedding: list[float],
    documents: Iterable[VectorDocument],
    top_k: int,
) -> list[SearchResult]:
    """Score documents against the query and keep the best ``top_k``."""
    if top_k <= 0:
        return []

    results = [
        SearchResult(
            id=doc.id,
            content=doc.content,
            metadata=doc.metadata,
            score=cosine_similarity(query_embedding, doc.embedding),
        )
        for doc in documents
    ]
    results.sort(key=lambda r: r.score, reverse=True)
    return results[:top_k]


class BaseVectorStore(IVectorStore):
    """Common behaviour for vector stores.

    Writes are serialized through a single asyncio.Lock so concurrent
    turns cannot interleave upserts and deletes.
    """

    def __init__(self):
        self._write_lock = asyncio.Lock()

    async def search(
        self,
        query_embedding: list[float],
        top_k: int = 5,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        documents = await self._candidates(filter)
        return rank_documents(query_embedding, documents, top_k)

    @abstractmethod
    async def _candidates(
        self, filter: Optional[dict[str, Any]]
    ) -> list[VectorDocument]:
        """Return every stored document matching the metadata filter."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryVectorStore(BaseVectorStore):
    """Dict-backed vector store.

    Usage:
        store = InMemoryVectorStore()
        await store.add(VectorDocument(id="product-1", content="...", embedding=vec))
        hits = await store.search(query_vec, top_k=5, filter={"category": "Audio"})
    """

    def __init__(self):
        super().__init__()
        self._documents: dict[str, VectorDocument] = {}

    async def add(self, document: VectorDocument) -> None:
        async with self._write_lock:
            self._documents[document.id] = document

    async def add_batch(self, documents: list[VectorDocument]) -> None:
        async with self._write_lock:
            for document in documents:
                self._documents[document.id] = document

    async def _candidates(
        self, filter: Optional[dict[str, Any]]
    ) -> list[VectorDocument]:
        return [
            doc for doc in list(self._documents.values())
            if matches_filter(doc.metadata, filter)
        ]

    async def get(self, doc_id: str) -> Optional[VectorDocument]:
        return self._documents.get(doc_id)

    async def delete(self, doc_id: str) -> bool:
        async with self._write_lock:
            return self._documents.pop(doc_id, None) is not None

    async def clear(self) -> None:
        async with self._write_lock:
            self._documents.clear()

    async def count(self) -> int:
        return len(self._documents)


class PostgresVectorStore(BaseVectorStore):
    """asyncpg-backed vector store.

    Embeddings and metadata are stored as JSONB. Metadata filters are
    pushed down as a JSONB containment predicate; scoring happens in
    Python over the filtered rows.

    Usage:
        pool = await asyncpg.create_pool(database_url)
        store = PostgresVectorStore(pool)
        await store.initialize()
    """

    def __init__(self, pool: Any, table: str = "embeddings", owns_pool: bool = False):
        """Initialize with database connection pool.

        Args:
            pool: asyncpg connection pool
            table: Table holding the documents
            owns_pool: Close the pool in close()
        """
        super().__init__()
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")
        self.pool = pool
        self.table = table
        self.owns_pool = owns_pool

    async def initialize(self) -> None:
        """Create the documents table if it does not exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT PRIMARY KEY,
                    content TEXT NOT NULL,
                    embedding JSONB NOT NULL,
                    metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                )
                """
            )
        logger.info(f"Vector store table '{self.table}' ready")

    def _upsert_sql(self) -> str:
        return f"""
            INSERT INTO {self.table} (id, content, embedding, metadata, created_at)
            VALUES ($1, $2, $3::jsonb, $4::jsonb, $5)
            ON CONFLICT (id) DO UPDATE SET
                content = EXCLUDED.content,
                embedding = EXCLUDED.embedding,
                metadata = EXCLUDED.metadata,
                created_at = EXCLUDED.created_at
        """

    @staticmethod
    def _to_params(document: VectorDocument) -> tuple:
        return (
            document.id,
            document.content,
            json.dumps(document.embedding),
            json.dumps(document.metadata, default=str),
            document.created_at or datetime.now(timezone.utc),
        )

    @staticmethod
    def _row_to_document(row: Any) -> VectorDocument:
        embedding = row["embedding"]
        metadata = row["metadata"]
        return VectorDocument(
            id=row["id"],
            content=row["content"],
            embedding=json.loads(embedding) if isinstance(embedding, str) else embedding,
            metadata=json.loads(metadata) if isinstance(metadata, str) else (metadata or {}),
            created_at=row["created_at"],
        )

    async def add(self, document: VectorDocument) -> None:
        async with self._write_lock:
            try:
                async with self.pool.acquire() as conn:
                    await conn.execute(self._upsert_sql(), *self._to_params(document))
            except asyncpg.PostgresError as e:
                raise VectorStoreError(f"Upsert of {document.id} failed: {e}") from e

    async def add_batch(self, documents: list[VectorDocument]) -> None:
        if not documents:
            return
        async with self._write_lock:
            try:
                async with self.pool.acquire() as conn:
                    async with conn.transaction():
                        await conn.executemany(
                            self._upsert_sql(),
                            [self._to_params(doc) for doc in documents],
                        )
            except asyncpg.PostgresError as e:
                raise VectorStoreError(f"Batch upsert failed: {e}") from e
        logger.debug(f"Upserted {len(documents)} documents into {self.table}")

    async def _candidates(
        self, filter: Optional[dict[str, Any]]
    ) -> list[VectorDocument]:
        query = f"SELECT id, content, embedding, metadata, created_at FROM {self.table}"
        args: list[Any] = []
        if filter:
            query += " WHERE metadata @> $1::jsonb"
            args.append(json.dumps(filter, default=str))

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(query, *args)
        except asyncpg.PostgresError as e:
            raise VectorStoreError(f"Vector search failed: {e}") from e

        return [self._row_to_document(row) for row in rows]

    async def get(self, doc_id: str) -> Optional[VectorDocument]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT id, content, embedding, metadata, created_at "
                    f"FROM {self.table} WHERE id = $1",
                    doc_id,
                )
        except asyncpg.PostgresError as e:
            raise VectorStoreError(f"Lookup of {doc_id} failed: {e}") from e
        return self._row_to_document(row) if row else None

    async def delete(self, doc_id: str) -> bool:
        async with self._write_lock:
            try:
                async with self.pool.acquire() as conn:
                    status = await conn.execute(
                        f"DELETE FROM {self.table} WHERE id = $1", doc_id
                    )
            except asyncpg.PostgresError as e:
                raise VectorStoreError(f"Delete of {doc_id} failed: {e}") from e
        # asyncpg returns the command tag, e.g. "DELETE 1"
        return status.endswith(" 1")

    async def clear(self) -> None:
        async with self._write_lock:
            try:
                async with self.pool.acquire() as conn:
                    await conn.execute(f"DELETE FROM {self.table}")
            except asyncpg.PostgresError as e:
                raise VectorStoreError(f"Clear failed: {e}") from e
        logger.info(f"Cleared vector store table '{self.table}'")

    async def count(self) -> int:
        try:
            async with self.pool.acquire() as conn:
                value = await conn.fetchval(f"SELECT COUNT(*) FROM {self.table}")
        except asyncpg.PostgresError as e:
            raise VectorStoreError(f"Count failed: {e}") from e
        return int(value or 0)

    async def close(self) -> None:
        if self.owns_pool:
            await self.pool.close()
