"""
Document Loader.

Loads products from the commerce store and indexes their embeddings.
Run once to initialize the vector store, then incrementally when
products are added, updated or removed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..domain.entities import VectorDocument
from ..domain.ports import ICommerceRepository, IEmbeddingProvider, IVectorStore
from .embedding import EmbeddingTask
from .query_engine import product_doc_id

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """Outcome of a bulk index run."""

    loaded: int
    skipped: int


def product_to_text(product: dict[str, Any]) -> str:
    """Searchable text representation of a product."""
    stock = "In Stock" if (product.get("stock") or 0) > 0 else "Out of Stock"
    return (
        f"Product: {product['name']}\n"
        f"Category: {product.get('category')}\n"
        f"Price: ${float(product.get('price') or 0):.2f}\n"
        f"{stock}\n"
        f"Description: {product.get('description') or ''}"
    )


def product_metadata(product: dict[str, Any]) -> dict[str, Any]:
    """Scalar metadata used for equality filters."""
    return {
        "type": "product",
        "productId": product["id"],
        "name": product["name"],
        "category": product.get("category"),
        "price": float(product.get("price") or 0),
        "inStock": (product.get("stock") or 0) > 0,
    }


def product_to_document(
    product: dict[str, Any], embedding: list[float], text: str
) -> VectorDocument:
    return VectorDocument(
        id=product_doc_id(product["id"]),
        content=text,
        embedding=embedding,
        metadata=product_metadata(product),
    )


async def load_products_to_vector_store(
    repository: ICommerceRepository,
    embedder: IEmbeddingProvider,
    store: IVectorStore,
    force_reload: bool = False,
    batch_size: int = 5,
    batch_delay: float = 1.0,
) -> LoadResult:
    """Embed every product and upsert it into the vector store.

    Skips the run when the store already holds documents, unless
    ``force_reload`` is set, in which case the store is cleared first.
    """
    existing = await store.count()
    if existing > 0 and not force_reload:
        logger.info(
            f"Vector store already has {existing} documents. "
            f"Use force_reload=True to reload."
        )
        return LoadResult(loaded=0, skipped=existing)

    if force_reload:
        logger.info("Clearing existing embeddings...")
        await store.clear()

    products = await repository.list_products()
    logger.info(f"Loading {len(products)} products into vector store...")

    loaded = 0
    for start in range(0, len(products), batch_size):
        batch = products[start:start + batch_size]
        texts = [product_to_text(p) for p in batch]
        embeddings = await asyncio.gather(
            *(embedder.embed(text, task=EmbeddingTask.RETRIEVAL_DOCUMENT) for text in texts)
        )

        await store.add_batch([
            product_to_document(product, embedding, text)
            for product, embedding, text in zip(batch, embeddings, texts)
        ])
        loaded += len(batch)
        logger.info(f"Loaded {loaded}/{len(products)} products")

        if start + batch_size < len(products) and batch_delay:
            await asyncio.sleep(batch_delay)

    logger.info(f"Loaded {loaded} products into vector store")
    return LoadResult(loaded=loaded, skipped=0)


async def update_product_embedding(
    product_id: int,
    repository: ICommerceRepository,
    embedder: IEmbeddingProvider,
    store: IVectorStore,
) -> VectorDocument:
    """Re-embed a single product after it changed.

    Raises:
        LookupError: If the product does not exist
    """
    product = await repository.get_product(product_id)
    if product is None:
        raise LookupError(f"Product {product_id} not found")

    text = product_to_text(product)
    embedding = await embedder.embed(text, task=EmbeddingTask.RETRIEVAL_DOCUMENT)
    document = product_to_document(product, embedding, text)
    await store.add(document)
    return document


async def remove_product_from_vector_store(product_id: int, store: IVectorStore) -> bool:
    return await store.delete(product_doc_id(product_id))
