"""
SmartShop AI Assistant Agent Module.

This module provides the conversational tool-orchestration engine behind
the SmartShop shopping assistant.

Architecture:
- Domain: Core entities and port interfaces
- Providers: LLM provider implementations (GPT, Gemini) and retry policy
- RAG: Embeddings, vector store and retrieval context assembly
- Tools: Local tool registry and remote MCP tool gateway
- Orchestrator: Main agent loop, dispatch boundary and SSE framing
- Adapters: asyncpg commerce repository

Key Features:
- Bounded tool-calling loop with a graceful fallback
- Role-gated tools (customer and admin tiers)
- Brute-force cosine similarity product search
- Rate-limit aware retries for Gemini
"""

# Domain entities
from .domain.entities import (
    ChatContext,
    ErrorType,
    Message,
    MessageRole,
    StreamChunk,
    StreamChunkType,
    ToolCall,
    ToolDefinition,
    ToolResult,
    UserRole,
)

# Orchestrator
from .orchestrator import (
    AgentConfig,
    AgentOrchestrator,
    ConversationManager,
    EventStreamer,
    ToolExecutor,
)

# Tools
from .tools import RemoteToolGateway, ToolRegistry

# Providers
from .providers import (
    BaseLLMProvider,
    GeminiProvider,
    LLMProviderConfig,
    OpenAIProvider,
)

# Runtime
from .config import AgentSettings, configure_logging
from .factory import AgentRuntime, build_runtime, create_llm_provider

__all__ = [
    # Domain
    "ChatContext",
    "ErrorType",
    "Message",
    "MessageRole",
    "StreamChunk",
    "StreamChunkType",
    "ToolCall",
    "ToolDefinition",
    "ToolResult",
    "UserRole",
    # Orchestrator
    "AgentConfig",
    "AgentOrchestrator",
    "ConversationManager",
    "EventStreamer",
    "ToolExecutor",
    # Tools
    "RemoteToolGateway",
    "ToolRegistry",
    # Providers
    "BaseLLMProvider",
    "GeminiProvider",
    "LLMProviderConfig",
    "OpenAIProvider",
    # Runtime
    "AgentSettings",
    "configure_logging",
    "AgentRuntime",
    "build_runtime",
    "create_llm_provider",
]
