"""Domain entities and port interfaces for the SmartShop assistant."""

from .entities import (
    ChatContext,
    ErrorType,
    Message,
    MessageRole,
    RetrievalResult,
    SearchResult,
    StreamChunk,
    StreamChunkType,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    ToolResult,
    UserRole,
    VectorDocument,
)
from .ports import (
    ChunkCallback,
    ICommerceRepository,
    IEmbeddingProvider,
    ILLMProvider,
    IToolBackend,
    IVectorStore,
)

__all__ = [
    # Entities
    "ChatContext",
    "ErrorType",
    "Message",
    "MessageRole",
    "RetrievalResult",
    "SearchResult",
    "StreamChunk",
    "StreamChunkType",
    "ToolCall",
    "ToolDefinition",
    "ToolParameter",
    "ToolResult",
    "UserRole",
    "VectorDocument",
    # Ports
    "ChunkCallback",
    "ICommerceRepository",
    "IEmbeddingProvider",
    "ILLMProvider",
    "IToolBackend",
    "IVectorStore",
]
