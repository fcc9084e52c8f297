"""Retrieval engine: embeddings, vector store and RAG context assembly."""

from .document_loader import (
    LoadResult,
    load_products_to_vector_store,
    product_to_text,
    remove_product_from_vector_store,
    update_product_embedding,
)
from .embedding import (
    EmbeddingConfig,
    EmbeddingError,
    EmbeddingTask,
    GeminiEmbeddingProvider,
    OpenAIEmbeddingProvider,
)
from .query_engine import ProductNotIndexedError, RAGQueryEngine, build_context
from .vector_store import (
    InMemoryVectorStore,
    PostgresVectorStore,
    VectorStoreError,
    cosine_similarity,
)

__all__ = [
    "LoadResult",
    "load_products_to_vector_store",
    "product_to_text",
    "remove_product_from_vector_store",
    "update_product_embedding",
    "EmbeddingConfig",
    "EmbeddingError",
    "EmbeddingTask",
    "GeminiEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "ProductNotIndexedError",
    "RAGQueryEngine",
    "build_context",
    "InMemoryVectorStore",
    "PostgresVectorStore",
    "VectorStoreError",
    "cosine_similarity",
]
