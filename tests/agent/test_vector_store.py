"""
Tests for cosine similarity and the vector stores.

The in-memory store is tested directly; the Postgres store is tested
against a mocked asyncpg pool to check the SQL it issues.
"""

import asyncpg
import json
import math
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from src.smartshop.agent.domain.entities import VectorDocument
from src.smartshop.agent.rag.vector_store import (
    InMemoryVectorStore,
    PostgresVectorStore,
    VectorStoreError,
    cosine_similarity,
    matches_filter,
)


def doc(doc_id, embedding, **metadata):
    return VectorDocument(id=doc_id, content=f"content {doc_id}", embedding=embedding, metadata=metadata)


class TestCosineSimilarity:
    """Tests for cosine_similarity."""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_symmetric(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, 1.0]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_in_range(self):
        score = cosine_similarity([1e-8, 3.0, -2.0], [5.0, -0.1, 9.0])
        assert -1.0 <= score <= 1.0

    def test_zero_norm_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([], [1.0]) == 0.0

    def test_length_mismatch_truncates(self):
        """Only the common prefix is compared."""
        assert cosine_similarity([1.0, 0.0, 5.0], [1.0, 0.0]) == pytest.approx(1.0)

    def test_non_finite_components_score_zero(self):
        assert cosine_similarity([math.nan, 1.0], [1.0, 0.0]) == 0.0
        assert cosine_similarity([1.0, 0.0], [math.inf, 1.0]) == 0.0


class TestMatchesFilter:
    def test_empty_filter_matches(self):
        assert matches_filter({"a": 1}, None) is True
        assert matches_filter({"a": 1}, {}) is True

    def test_all_keys_must_match(self):
        metadata = {"category": "Audio", "inStock": True}
        assert matches_filter(metadata, {"category": "Audio"}) is True
        assert matches_filter(metadata, {"category": "Audio", "inStock": False}) is False
        assert matches_filter(metadata, {"missing": None}) is False


class TestInMemoryVectorStore:
    """Tests for the dict-backed store."""

    @pytest_asyncio.fixture
    async def store(self):
        store = InMemoryVectorStore()
        await store.add_batch([
            doc("a", [1.0, 0.0], category="Audio"),
            doc("b", [0.7, 0.7], category="Audio"),
            doc("c", [0.0, 1.0], category="Furniture"),
            doc("d", [-1.0, 0.0], category="Furniture"),
        ])
        return store

    @pytest.mark.asyncio
    async def test_search_sorted_and_bounded(self, store):
        results = await store.search([1.0, 0.1], top_k=3)

        assert [r.id for r in results] == ["a", "b", "c"]
        assert results[0].score >= results[1].score >= results[2].score

    @pytest.mark.asyncio
    async def test_search_top_k_larger_than_store(self, store):
        assert len(await store.search([1.0, 0.0], top_k=50)) == 4

    @pytest.mark.asyncio
    async def test_search_zero_top_k(self, store):
        assert await store.search([1.0, 0.0], top_k=0) == []

    @pytest.mark.asyncio
    async def test_filter_applied_before_ranking(self, store):
        results = await store.search([1.0, 0.0], top_k=5, filter={"category": "Furniture"})
        assert [r.id for r in results] == ["c", "d"]

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store):
        await store.add(doc("a", [0.0, 1.0], category="Audio"))

        assert await store.count() == 4
        assert (await store.get("a")).embedding == [0.0, 1.0]

    @pytest.mark.asyncio
    async def test_corrupt_embedding_does_not_rank_first(self, store):
        await store.add(doc("bad", [math.nan, 1.0], category="Audio"))

        results = await store.search([1.0, 0.0], top_k=2)

        assert [r.id for r in results] == ["a", "b"]
        scores = {r.id: r.score for r in await store.search([1.0, 0.0], top_k=5)}
        assert scores["bad"] == 0.0

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, store):
        assert await store.delete("a") is True
        assert await store.delete("a") is False
        assert await store.count() == 3

        await store.clear()
        assert await store.count() == 0


class TestPostgresVectorStore:
    """Tests for the asyncpg-backed store with a mocked pool."""

    @pytest.fixture
    def conn(self):
        conn = MagicMock()
        conn.execute = AsyncMock(return_value="DELETE 1")
        conn.executemany = AsyncMock()
        conn.fetch = AsyncMock(return_value=[])
        conn.fetchrow = AsyncMock(return_value=None)
        conn.fetchval = AsyncMock(return_value=3)
        transaction = MagicMock()
        transaction.__aenter__ = AsyncMock(return_value=None)
        transaction.__aexit__ = AsyncMock(return_value=False)
        conn.transaction = MagicMock(return_value=transaction)
        return conn

    @pytest.fixture
    def pool(self, conn):
        pool = MagicMock()
        acquire = MagicMock()
        acquire.__aenter__ = AsyncMock(return_value=conn)
        acquire.__aexit__ = AsyncMock(return_value=False)
        pool.acquire = MagicMock(return_value=acquire)
        pool.close = AsyncMock()
        return pool

    def test_rejects_unsafe_table_name(self, pool):
        with pytest.raises(ValueError):
            PostgresVectorStore(pool, table="embeddings; DROP TABLE users")

    @pytest.mark.asyncio
    async def test_filter_pushed_down_as_containment(self, pool, conn):
        conn.fetch.return_value = [
            {
                "id": "product-1",
                "content": "x",
                "embedding": json.dumps([1.0, 0.0]),
                "metadata": json.dumps({"category": "Audio"}),
                "created_at": None,
            },
        ]
        store = PostgresVectorStore(pool)

        results = await store.search([1.0, 0.0], top_k=5, filter={"category": "Audio"})

        query, param = conn.fetch.call_args.args
        assert "metadata @> $1::jsonb" in query
        assert json.loads(param) == {"category": "Audio"}
        assert results[0].id == "product-1"
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_add_batch_uses_transaction(self, pool, conn):
        store = PostgresVectorStore(pool)

        await store.add_batch([doc("a", [1.0]), doc("b", [0.5])])

        conn.transaction.assert_called_once()
        sql, rows = conn.executemany.call_args.args
        assert "ON CONFLICT (id) DO UPDATE" in sql
        assert [row[0] for row in rows] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_delete_and_count(self, pool, conn):
        store = PostgresVectorStore(pool)

        assert await store.delete("a") is True
        assert await store.count() == 3

    @pytest.mark.asyncio
    async def test_database_errors_wrapped(self, pool, conn):
        error = asyncpg.PostgresError("connection lost")
        conn.execute.side_effect = error
        conn.fetchrow.side_effect = error
        conn.fetchval.side_effect = error
        store = PostgresVectorStore(pool)

        for operation in (
            store.add(doc("a", [1.0])),
            store.get("a"),
            store.delete("a"),
            store.clear(),
            store.count(),
        ):
            with pytest.raises(VectorStoreError, match="connection lost"):
                await operation

    @pytest.mark.asyncio
    async def test_close_leaves_shared_pool_open(self, pool):
        await PostgresVectorStore(pool).close()
        pool.close.assert_not_awaited()

        await PostgresVectorStore(pool, owns_pool=True).close()
        pool.close.assert_awaited_once()
