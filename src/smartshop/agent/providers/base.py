"""
Base LLM Provider Implementation.

Provides common functionality for all LLM providers.
"""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Optional

from ..domain.entities import ErrorType, Message, StreamChunk, ToolDefinition
from ..domain.ports import ChunkCallback, ILLMProvider

logger = logging.getLogger(__name__)


class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        original_error: Optional[Exception] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.original_error = original_error
        self.status_code = status_code


@dataclass
class LLMProviderConfig:
    """Configuration for LLM providers.

    Attributes:
        api_key: API key for the provider
        model: Model name to use
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: Maximum attempts for rate-limited calls
        temperature: Default temperature
        max_tokens: Default max tokens
    """

    api_key: str
    model: str
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 3
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)


def parse_tool_arguments(raw: Optional[str]) -> dict[str, Any]:
    """Decode a JSON argument string produced by the model.

    Malformed JSON is preserved under ``raw`` so the tool can report it.
    """
    if not raw:
        return {}
    try:
        arguments = json.loads(raw)
    except json.JSONDecodeError:
        return {"raw": raw}
    return arguments if isinstance(arguments, dict) else {"value": arguments}


class BaseLLMProvider(ILLMProvider, ABC):
    """Base class for LLM provider implementations.

    Subclasses implement ``chat`` and ``chat_stream`` for a specific API.
    """

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    @property
    def supports_native_deltas(self) -> bool:
        return False

    async def _emit(
        self, on_chunk: Optional[ChunkCallback], chunk: StreamChunk
    ) -> None:
        """Deliver a chunk to the caller's callback, sync or async."""
        if on_chunk is None:
            return
        result = on_chunk(chunk)
        if inspect.isawaitable(result):
            await result

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        """Convert tool definitions to API format.

        Subclasses should override for provider-specific formatting.
        """
        raise NotImplementedError("Subclass must implement _format_tools_for_api")

    def _log_request(self, operation: str, messages: list[Message]) -> None:
        last = messages[-1].content if messages else ""
        logger.debug(
            f"{type(self).__name__}.{operation} model={self.model_name} "
            f"messages={len(messages)} last={last[:100]!r}"
        )

    async def close(self) -> None:
        """Release any network resources."""

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
