"""
Embedding Providers.

Turn text into fixed-length vectors for semantic product search.
Each embedding is tagged with a task intent so the backend can
optimize documents and queries differently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import numpy as np

from ..domain.entities import ErrorType
from ..domain.ports import IEmbeddingProvider
from ..providers.base import LLMProviderError
from ..providers.retry import RetryPolicy

logger = logging.getLogger(__name__)

# Lazy imports to avoid requiring backends that are not used
try:
    import httpx

    HTTPX_AVAILABLE = True
except ImportError:
    HTTPX_AVAILABLE = False
    httpx = None

try:
    from openai import AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    AsyncOpenAI = None


class EmbeddingTask(str, Enum):
    """Intent the embedding will be used for."""

    RETRIEVAL_DOCUMENT = "RETRIEVAL_DOCUMENT"
    RETRIEVAL_QUERY = "RETRIEVAL_QUERY"
    SEMANTIC_SIMILARITY = "SEMANTIC_SIMILARITY"
    CLASSIFICATION = "CLASSIFICATION"
    CLUSTERING = "CLUSTERING"


class EmbeddingError(LLMProviderError):
    """Raised when an embedding cannot be produced."""


@dataclass
class EmbeddingConfig:
    """Configuration for embedding providers.

    Attributes:
        api_key: Backend API key
        model: Embedding model name
        dimensions: Length of every vector returned
        batch_size: Texts embedded concurrently per batch
        batch_delay: Seconds to pause between batches
    """

    api_key: str
    model: str
    dimensions: int = 768
    base_url: Optional[str] = None
    timeout: float = 30.0
    batch_size: int = 5
    batch_delay: float = 0.2


def normalize(vector: list[float]) -> list[float]:
    """Scale a vector to unit L2 norm. Zero vectors are returned as-is."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr.tolist()
    return (arr / norm).tolist()


def fit_dimensions(vector: list[float], dimensions: int) -> list[float]:
    """Truncate an over-long vector and re-normalize it."""
    if len(vector) <= dimensions:
        return list(vector)
    return normalize(vector[:dimensions])


def _task_value(task: Optional[str]) -> str:
    if task is None:
        return EmbeddingTask.RETRIEVAL_DOCUMENT.value
    return task.value if isinstance(task, EmbeddingTask) else str(task)


class BaseEmbeddingProvider(IEmbeddingProvider):
    """Shared batching for embedding providers."""

    def __init__(self, config: EmbeddingConfig):
        self.config = config

    @property
    def model_name(self) -> str:
        return self.config.model

    @property
    def dimension(self) -> int:
        return self.config.dimensions

    async def embed_batch(
        self, texts: list[str], task: Optional[str] = None
    ) -> list[list[float]]:
        """Embed texts in small concurrent batches.

        Pauses between batches to stay under per-minute quotas.
        """
        results: list[list[float]] = []
        batch_size = max(1, self.config.batch_size)

        for start in range(0, len(texts), batch_size):
            batch = texts[start:start + batch_size]
            embeddings = await asyncio.gather(
                *(self.embed(text, task=task) for text in batch)
            )
            results.extend(embeddings)

            if start + batch_size < len(texts) and self.config.batch_delay:
                await asyncio.sleep(self.config.batch_delay)

        return results

    async def close(self) -> None:
        """Release any network resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class GeminiEmbeddingProvider(BaseEmbeddingProvider):
    """Gemini embedContent over REST.

    Usage:
        config = EmbeddingConfig(api_key="AIza...", model="gemini-embedding-001")
        provider = GeminiEmbeddingProvider(config)
        vector = await provider.embed_query("wireless headphones")
    """

    DEFAULT_MODEL = "gemini-embedding-001"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        config: EmbeddingConfig,
        retry_policy: Optional[RetryPolicy] = None,
        client: Any = None,
    ):
        if client is None and not HTTPX_AVAILABLE:
            raise ImportError(
                "httpx package is required for GeminiEmbeddingProvider. "
                "Install with: pip install httpx"
            )

        super().__init__(config)
        self.retry_policy = retry_policy or RetryPolicy()
        self.client = client or httpx.AsyncClient(
            base_url=(config.base_url or self.DEFAULT_BASE_URL).rstrip("/"),
            timeout=config.timeout,
            headers={"x-goog-api-key": config.api_key},
        )

    async def embed(self, text: str, task: Optional[str] = None) -> list[float]:
        body = {
            "model": f"models/{self.config.model}",
            "content": {"parts": [{"text": text}]},
            "taskType": _task_value(task),
            "outputDimensionality": self.config.dimensions,
        }

        async def operation() -> list[float]:
            try:
                response = await self.client.post(
                    f"/models/{self.config.model}:embedContent", json=body
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                raise EmbeddingError(
                    f"Gemini embedding API error: {status} - {e.response.text}",
                    error_type=(
                        ErrorType.RATE_LIMIT if status == 429 else ErrorType.RECOVERABLE
                    ),
                    original_error=e,
                    status_code=status,
                ) from e
            except httpx.RequestError as e:
                raise EmbeddingError(
                    f"Gemini embedding connection error: {e}",
                    error_type=ErrorType.FATAL,
                    original_error=e,
                ) from e

            values = (response.json().get("embedding") or {}).get("values") or []
            if not values:
                raise EmbeddingError("No embedding returned from Gemini")
            return fit_dimensions(values, self.config.dimensions)

        return await self.retry_policy.run(operation, "embed")

    async def close(self) -> None:
        await self.client.aclose()


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """OpenAI embeddings (text-embedding-3-*) with reduced dimensions."""

    DEFAULT_MODEL = "text-embedding-3-small"

    def __init__(self, config: EmbeddingConfig, client: Any = None):
        if client is None and not OPENAI_AVAILABLE:
            raise ImportError(
                "openai package is required for OpenAIEmbeddingProvider. "
                "Install with: pip install openai"
            )

        super().__init__(config)
        self.client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    async def embed(self, text: str, task: Optional[str] = None) -> list[float]:
        # OpenAI embeddings are task-agnostic
        try:
            response = await self.client.embeddings.create(
                model=self.config.model,
                input=text,
                dimensions=self.config.dimensions,
            )
        except Exception as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise EmbeddingError(
                f"Embedding failed: {e}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
                status_code=getattr(e, "status_code", None),
            ) from e

        return fit_dimensions(response.data[0].embedding, self.config.dimensions)

    async def close(self) -> None:
        await self.client.close()
