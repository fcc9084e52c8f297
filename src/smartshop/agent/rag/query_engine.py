"""
RAG Query Engine.

Performs semantic search over the product catalog and renders the
surviving hits as a context block for the language model.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..domain.entities import RetrievalResult, SearchResult
from ..domain.ports import IEmbeddingProvider, IVectorStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = 0.5


def product_doc_id(product_id: Any) -> str:
    """Stable vector document id for a product."""
    return f"product-{product_id}"


def _format_price(price: Any) -> str:
    if isinstance(price, (int, float)) and not isinstance(price, bool):
        return f"${price:.2f}"
    return "$N/A"


def _description_line(content: str) -> str:
    for line in content.split("\n"):
        if line.startswith("Description:"):
            return line.replace("Description: ", "", 1)
    return ""


def build_context(query: str, results: list[SearchResult]) -> str:
    """Render a numbered, human-readable summary of search results."""
    if not results:
        return f'No relevant products found for: "{query}"'

    entries = []
    for i, result in enumerate(results, start=1):
        meta = result.metadata
        entries.append(
            f"{i}. {meta.get('name')} ({meta.get('category')}) - "
            f"{_format_price(meta.get('price'))}\n"
            f"   {_description_line(result.content)}\n"
            f"   Relevance: {result.score * 100:.1f}%"
        )

    product_list = "\n\n".join(entries)
    return f'Found {len(results)} relevant products for "{query}":\n\n{product_list}'


class ProductNotIndexedError(LookupError):
    """Raised when a product has no document in the vector store."""


class RAGQueryEngine:
    """Semantic product search with a minimum relevance threshold.

    Usage:
        engine = RAGQueryEngine(embedder, store, min_score=0.5)
        result = await engine.search("noise cancelling headphones", top_k=5)
        prompt_context = result.context
    """

    def __init__(
        self,
        embedder: IEmbeddingProvider,
        store: IVectorStore,
        min_score: float = DEFAULT_MIN_SCORE,
    ):
        self.embedder = embedder
        self.store = store
        self.min_score = min_score

    async def search(
        self,
        query: str,
        top_k: int = 5,
        filter: Optional[dict[str, Any]] = None,
    ) -> RetrievalResult:
        """Embed the query, search, and drop hits below ``min_score``."""
        query_embedding = await self.embedder.embed_query(query)
        hits = await self.store.search(query_embedding, top_k, filter)

        results = [hit for hit in hits if hit.score >= self.min_score]
        logger.debug(
            f"RAG search {query!r}: {len(hits)} hits, "
            f"{len(results)} above {self.min_score}"
        )

        return RetrievalResult(
            query=query,
            results=results,
            context=build_context(query, results),
        )

    async def search_by_category(
        self, query: str, category: str, top_k: int = 5
    ) -> RetrievalResult:
        return await self.search(query, top_k, {"category": category})

    async def search_in_stock(self, query: str, top_k: int = 5) -> RetrievalResult:
        return await self.search(query, top_k, {"inStock": True})

    async def get_similar_products(
        self, product_id: Any, top_k: int = 5
    ) -> list[SearchResult]:
        """Products closest to an indexed product, excluding the product itself.

        Raises:
            ProductNotIndexedError: If the product has no stored document
        """
        doc_id = product_doc_id(product_id)
        document = await self.store.get(doc_id)
        if document is None:
            raise ProductNotIndexedError(
                f"Product {product_id} not found in vector store"
            )

        hits = await self.store.search(document.embedding, top_k + 1)
        return [hit for hit in hits if hit.id != doc_id][:top_k]
