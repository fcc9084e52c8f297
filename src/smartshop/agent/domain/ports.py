"""
Port interfaces (abstract base classes) for the SmartShop assistant.

These define the contracts that adapters must implement.
Following the Ports & Adapters (Hexagonal) architecture pattern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

if TYPE_CHECKING:
    from .entities import (
        ChatContext,
        Message,
        SearchResult,
        StreamChunk,
        ToolDefinition,
        ToolResult,
        UserRole,
        VectorDocument,
    )

# Callback invoked once per incremental piece of provider output.
ChunkCallback = Callable[["StreamChunk"], Union[None, Awaitable[None]]]


# ============================================
# LLM Provider Interface
# ============================================


class ILLMProvider(ABC):
    """Interface for LLM providers (GPT, Gemini, etc.).

    Implementations translate the backend-neutral Message/Tool vocabulary
    to a specific API and back. Both operations are stateless with
    respect to the transcript: it is re-sent in full on every call.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model identifier (e.g., 'gpt-4o-mini')."""
        pass

    @property
    @abstractmethod
    def supports_native_deltas(self) -> bool:
        """Return True if text arrives as token-level deltas."""
        pass

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
    ) -> Message:
        """Generate a single assistant message.

        Args:
            messages: Full transcript, system message first
            tools: Tools the model may request

        Returns:
            Assistant message, possibly carrying tool calls
        """
        pass

    @abstractmethod
    async def chat_stream(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> Message:
        """Generate an assistant message while reporting progress.

        ``on_chunk`` is invoked once per piece of output before the
        aggregated message is returned.
        """
        pass


# ============================================
# Embedding Provider Interface
# ============================================


class IEmbeddingProvider(ABC):
    """Interface for embedding providers."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    @abstractmethod
    async def embed(self, text: str, task: Optional[str] = None) -> list[float]:
        """Embed a single text tagged with a task intent."""
        pass

    async def embed_query(self, text: str) -> list[float]:
        return await self.embed(text, task="RETRIEVAL_QUERY")

    async def embed_document(self, text: str) -> list[float]:
        return await self.embed(text, task="RETRIEVAL_DOCUMENT")

    async def embed_batch(
        self, texts: list[str], task: Optional[str] = None
    ) -> list[list[float]]:
        """Embed several texts. Default implementation is sequential."""
        return [await self.embed(text, task=task) for text in texts]


# ============================================
# Vector Store Interface
# ============================================


class IVectorStore(ABC):
    """Interface for an exhaustive cosine-similarity vector store."""

    @abstractmethod
    async def add(self, document: VectorDocument) -> None:
        """Insert or replace a document by id."""
        pass

    @abstractmethod
    async def add_batch(self, documents: list[VectorDocument]) -> None:
        pass

    @abstractmethod
    async def search(
        self,
        query_embedding: list[float],
        top_k: int = 5,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[SearchResult]:
        """Return at most ``top_k`` hits sorted by descending score."""
        pass

    @abstractmethod
    async def get(self, doc_id: str) -> Optional[VectorDocument]:
        pass

    @abstractmethod
    async def delete(self, doc_id: str) -> bool:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass


# ============================================
# Tool Backend Interface
# ============================================


class IToolBackend(ABC):
    """Interface shared by the local registry and the remote gateway."""

    @abstractmethod
    async def list_tools(self, role: UserRole) -> list[ToolDefinition]:
        """Return the tools visible to the given role."""
        pass

    @abstractmethod
    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ChatContext,
        tool_call_id: str = "",
    ) -> ToolResult:
        """Run a tool. Failures are rendered into the result, not raised."""
        pass


# ============================================
# Commerce Data Interface
# ============================================


class ICommerceRepository(ABC):
    """Read-only queries against the shop's relational store.

    Rows are returned as plain dicts. Money values are floats.
    """

    @abstractmethod
    async def search_products(
        self,
        query: str,
        category: Optional[str] = None,
        max_price: Optional[float] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def list_products(
        self, limit: Optional[int] = None
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_product(self, product_id: int) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_product_reviews(
        self, product_id: int, limit: int = 5
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def list_orders(
        self, user_id: int, status: Optional[str] = None, limit: int = 10
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_order(
        self, order_id: int, user_id: int
    ) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_order_items(self, order_id: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_cart(self, user_id: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_spending_summary(self, user_id: int, days: int) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get_spending_by_category(
        self, user_id: int, days: int
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_sales_dashboard(self) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get_daily_sales(self, days: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_top_products(self, limit: int) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_inventory_status(
        self, low_stock_threshold: int
    ) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def get_revenue_by_category(self) -> list[dict[str, Any]]:
        pass
