"""
Component factories and the process runtime.

Every long-lived component (LLM provider, embedding provider, vector
store, tool backend, conversation history) is built once here and
handed to its consumers explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .adapters.postgres_commerce import PostgresCommerceRepository, close_pool, create_pool
from .config import AgentSettings
from .domain.ports import (
    ICommerceRepository,
    IEmbeddingProvider,
    ILLMProvider,
    IToolBackend,
    IVectorStore,
)
from .orchestrator import (
    AgentConfig,
    AgentOrchestrator,
    ConversationManager,
    EventStreamer,
    ToolExecutor,
)
from .providers import GeminiProvider, LLMProviderConfig, OpenAIProvider
from .rag import (
    EmbeddingConfig,
    GeminiEmbeddingProvider,
    InMemoryVectorStore,
    OpenAIEmbeddingProvider,
    PostgresVectorStore,
    RAGQueryEngine,
)
from .tools import RemoteToolGateway, create_tool_registry, get_default_server_configs

logger = logging.getLogger(__name__)


def create_llm_provider(settings: AgentSettings) -> ILLMProvider:
    """Build the configured LLM provider.

    Raises:
        ValueError: If the provider's API key is missing
    """
    if settings.llm_provider == "gemini":
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY or GOOGLE_AI_API_KEY is required")
        logger.info(f"Using Gemini provider ({settings.gemini_model})")
        return GeminiProvider(
            LLMProviderConfig(api_key=settings.gemini_api_key, model=settings.gemini_model)
        )

    if not settings.openai_api_key:
        raise ValueError("OPENAI_API_KEY is required")
    logger.info(f"Using OpenAI provider ({settings.openai_model})")
    return OpenAIProvider(
        LLMProviderConfig(api_key=settings.openai_api_key, model=settings.openai_model)
    )


def create_embedding_provider(settings: AgentSettings) -> Optional[IEmbeddingProvider]:
    """Build the configured embedding provider, or None without an API key."""
    if settings.embedding_provider == "openai":
        if not settings.openai_api_key:
            logger.warning("OPENAI_API_KEY not set, semantic search disabled")
            return None
        return OpenAIEmbeddingProvider(
            EmbeddingConfig(
                api_key=settings.openai_api_key,
                model=settings.embedding_model or OpenAIEmbeddingProvider.DEFAULT_MODEL,
                dimensions=settings.embedding_dimensions,
            )
        )

    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY not set, semantic search disabled")
        return None
    return GeminiEmbeddingProvider(
        EmbeddingConfig(
            api_key=settings.gemini_api_key,
            model=settings.embedding_model or GeminiEmbeddingProvider.DEFAULT_MODEL,
            dimensions=settings.embedding_dimensions,
        )
    )


async def _close_clients(
    llm: Optional[ILLMProvider], embedder: Optional[IEmbeddingProvider]
) -> None:
    """Close provider HTTP clients; a failing close is logged, not raised."""
    for name, resource in (("llm provider", llm), ("embedder", embedder)):
        close = getattr(resource, "close", None)
        if close is None:
            continue
        try:
            await close()
        except Exception as e:
            logger.error(f"Error closing {name}: {e}")


@dataclass
class AgentRuntime:
    """Owns the process-wide components and releases them on exit.

    Usage:
        async with await build_runtime(AgentSettings.from_env()) as runtime:
            async for chunk in runtime.conversations.run_turn(
                runtime.orchestrator, user_id, message, context
            ):
                ...
    """

    settings: AgentSettings
    llm: ILLMProvider
    orchestrator: AgentOrchestrator
    conversations: ConversationManager
    streamer: EventStreamer
    tool_backend: IToolBackend
    vector_store: IVectorStore
    repository: Optional[ICommerceRepository] = None
    embedder: Optional[IEmbeddingProvider] = None
    rag_engine: Optional[RAGQueryEngine] = None
    gateway: Optional[RemoteToolGateway] = None
    pool: Any = None
    _closed: bool = field(default=False, repr=False)

    async def close(self) -> None:
        """Release every owned resource; later failures do not mask earlier ones."""
        if self._closed:
            return
        self._closed = True

        if self.gateway is not None:
            await self.gateway.disconnect_all()

        await _close_clients(self.llm, self.embedder)
        await close_pool(self.pool)

    async def __aenter__(self) -> AgentRuntime:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


async def build_runtime(
    settings: AgentSettings,
    llm_provider: Optional[ILLMProvider] = None,
    embedder: Optional[IEmbeddingProvider] = None,
    repository: Optional[ICommerceRepository] = None,
    vector_store: Optional[IVectorStore] = None,
    tool_backend: Optional[IToolBackend] = None,
) -> AgentRuntime:
    """Construct every component once.

    Injected components take precedence over the ones built from
    settings (tests pass fakes here).

    Raises:
        ValueError: If local tool mode has no commerce repository
        RemoteToolError: If a tool server fails to start
    """
    pool = None
    if settings.database_url and (repository is None or vector_store is None):
        pool = await create_pool(settings.database_url)

    llm: Optional[ILLMProvider] = None
    try:
        if repository is None and pool is not None:
            repository = PostgresCommerceRepository(pool)

        if vector_store is None:
            if pool is not None:
                store = PostgresVectorStore(pool, table=settings.vector_table)
                await store.initialize()
                vector_store = store
            else:
                vector_store = InMemoryVectorStore()

        llm = llm_provider or create_llm_provider(settings)
        embedder = embedder or create_embedding_provider(settings)
        rag_engine = (
            RAGQueryEngine(embedder, vector_store, min_score=settings.rag_min_score)
            if embedder is not None
            else None
        )

        gateway = None
        remote = settings.tool_mode == "remote"
        if tool_backend is None:
            if remote:
                env = {"DATABASE_URL": settings.database_url} if settings.database_url else {}
                gateway = RemoteToolGateway(get_default_server_configs(env=env))
                await gateway.connect_all()
                tool_backend = gateway
            else:
                if repository is None:
                    raise ValueError("DATABASE_URL is required for local tool mode")
                tool_backend = create_tool_registry(repository, rag_engine, vector_store)
    except BaseException:
        await _close_clients(llm, embedder)
        await close_pool(pool)
        raise

    orchestrator = AgentOrchestrator(
        llm_provider=llm,
        tool_executor=ToolExecutor(tool_backend),
        config=AgentConfig(
            max_iterations=settings.max_tool_iterations,
            emit_tool_results=remote,
        ),
    )

    logger.info(
        f"Runtime ready (llm={llm.model_name}, tools={settings.tool_mode}, "
        f"rag={'on' if rag_engine else 'off'})"
    )

    return AgentRuntime(
        settings=settings,
        llm=llm,
        orchestrator=orchestrator,
        conversations=ConversationManager(history_limit=settings.chat_history_limit),
        streamer=EventStreamer(source="mcp" if remote else None),
        tool_backend=tool_backend,
        vector_store=vector_store,
        repository=repository,
        embedder=embedder,
        rag_engine=rag_engine,
        gateway=gateway,
        pool=pool,
    )
