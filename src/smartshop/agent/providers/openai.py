"""
OpenAI GPT LLM Provider.

Implements the ILLMProvider interface for OpenAI's chat completions API.
Text arrives as native token deltas; tool calls arrive as argument
fragments keyed by index and are finalized when the stream ends.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..domain.entities import (
    ErrorType,
    Message,
    MessageRole,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)
from ..domain.ports import ChunkCallback
from .base import (
    BaseLLMProvider,
    LLMProviderConfig,
    LLMProviderError,
    parse_tool_arguments,
)

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring openai if not used
try:
    import openai
    from openai import AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    openai = None
    AsyncOpenAI = None


class OpenAIProvider(BaseLLMProvider):
    """OpenAI GPT provider implementation.

    Usage:
        config = LLMProviderConfig(api_key="sk-...", model="gpt-4o-mini")
        provider = OpenAIProvider(config)

        reply = await provider.chat_stream(messages, tools, on_chunk=print)
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(self, config: LLMProviderConfig, client: Any = None):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration
            client: Pre-built AsyncOpenAI client (tests inject a mock)

        Raises:
            ImportError: If openai package is not installed
        """
        if client is None and not OPENAI_AVAILABLE:
            raise ImportError(
                "openai package is required for OpenAIProvider. "
                "Install with: pip install openai"
            )

        super().__init__(config)

        self.client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    @property
    def supports_native_deltas(self) -> bool:
        return True

    def _format_messages_for_api(
        self, messages: list[Message]
    ) -> list[dict[str, Any]]:
        """Convert messages to OpenAI format.

        OpenAI includes system messages in the messages array.
        """
        api_messages = []

        for msg in messages:
            if msg.role == MessageRole.TOOL:
                api_messages.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content,
                })
            elif msg.role == MessageRole.ASSISTANT and msg.tool_calls:
                api_messages.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.name,
                                "arguments": json.dumps(tc.arguments),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                api_messages.append({
                    "role": msg.role.value,
                    "content": msg.content,
                })

        return api_messages

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        """Convert tools to OpenAI format."""
        return [tool.to_openai_format() for tool in tools]

    def _build_request(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
        stream: bool,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": self._format_messages_for_api(messages),
        }
        if stream:
            kwargs["stream"] = True
        if self.config.max_tokens:
            kwargs["max_tokens"] = self.config.max_tokens
        if tools:
            kwargs["tools"] = self._format_tools_for_api(tools)
            kwargs["tool_choice"] = "auto"
        return kwargs

    def _translate_error(self, e: Exception) -> LLMProviderError:
        """Map SDK exceptions onto LLMProviderError."""
        if isinstance(e, LLMProviderError):
            return e
        if openai is not None:
            if isinstance(e, openai.RateLimitError):
                logger.warning(f"Rate limited by OpenAI: {e}")
                return LLMProviderError(
                    f"Rate limited: {e}",
                    error_type=ErrorType.RATE_LIMIT,
                    original_error=e,
                    status_code=429,
                )
            if isinstance(e, openai.APITimeoutError):
                logger.error(f"OpenAI API timeout: {e}")
                return LLMProviderError(
                    f"Request timed out: {e}",
                    error_type=ErrorType.TIMEOUT,
                    original_error=e,
                )
            if isinstance(e, openai.APIError):
                logger.error(f"OpenAI API error: {e}")
                return LLMProviderError(
                    f"API error: {e}",
                    error_type=ErrorType.RECOVERABLE,
                    original_error=e,
                    status_code=getattr(e, "status_code", None),
                )
        logger.exception(f"Unexpected error in OpenAI chat: {e}")
        return LLMProviderError(str(e), error_type=ErrorType.FATAL, original_error=e)

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
    ) -> Message:
        """Generate a single (non-streamed) assistant message."""
        self._log_request("chat", messages)

        try:
            response = await self.client.chat.completions.create(
                **self._build_request(messages, tools, stream=False)
            )
        except Exception as e:
            raise self._translate_error(e) from e

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=parse_tool_arguments(tc.function.arguments),
            )
            for tc in (message.tool_calls or [])
        ]

        return Message.assistant(message.content or "", tool_calls)

    async def chat_stream(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> Message:
        """Stream a response using GPT.

        Text deltas are reported as they arrive. Tool-call fragments are
        buffered per index and reported once the stream has ended.
        """
        self._log_request("chat_stream", messages)

        content_parts: list[str] = []
        # Track tool calls being assembled, keyed by stream index
        tool_calls_in_progress: dict[int, dict[str, str]] = {}

        try:
            stream_response = await self.client.chat.completions.create(
                **self._build_request(messages, tools, stream=True)
            )

            async for chunk in stream_response:
                choice = chunk.choices[0] if chunk.choices else None
                if not choice:
                    continue

                delta = choice.delta

                if delta.content:
                    content_parts.append(delta.content)
                    await self._emit(on_chunk, StreamChunk.text(delta.content))

                for tc in delta.tool_calls or []:
                    buffer = tool_calls_in_progress.setdefault(
                        tc.index, {"id": "", "name": "", "arguments": ""}
                    )
                    if tc.id:
                        buffer["id"] = tc.id
                    if tc.function and tc.function.name:
                        buffer["name"] = tc.function.name
                    if tc.function and tc.function.arguments:
                        buffer["arguments"] += tc.function.arguments

        except Exception as e:
            raise self._translate_error(e) from e

        tool_calls = []
        for index in sorted(tool_calls_in_progress):
            buffer = tool_calls_in_progress[index]
            if not (buffer["id"] and buffer["name"]):
                logger.warning(f"Dropping incomplete tool call at index {index}")
                continue
            tool_call = ToolCall(
                id=buffer["id"],
                name=buffer["name"],
                arguments=parse_tool_arguments(buffer["arguments"]),
            )
            tool_calls.append(tool_call)
            await self._emit(on_chunk, StreamChunk.tool_call_chunk(tool_call))

        await self._emit(on_chunk, StreamChunk.done())

        return Message.assistant("".join(content_parts), tool_calls)

    async def close(self) -> None:
        """Close the client."""
        await self.client.close()
