"""
Google Gemini LLM Provider.

Implements the ILLMProvider interface against the Gemini REST API.
Gemini has no system role and no token-level tool deltas: the system
message becomes ``systemInstruction`` and streamed responses arrive as
whole chunks. The free tier rate limits aggressively, so every call is
wrapped in a RetryPolicy.
"""

from __future__ import annotations

import json
import logging
import time
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
from .base import BaseLLMProvider, LLMProviderConfig, LLMProviderError
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring httpx if not used
try:
    import httpx

    HTTPX_AVAILABLE = True
except ImportError:
    HTTPX_AVAILABLE = False
    httpx = None


class GeminiProvider(BaseLLMProvider):
    """Gemini provider implementation.

    Usage:
        config = LLMProviderConfig(api_key="AIza...", model="gemini-2.5-flash")
        async with GeminiProvider(config) as provider:
            reply = await provider.chat(messages, tools)
    """

    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        config: LLMProviderConfig,
        retry_policy: Optional[RetryPolicy] = None,
        client: Any = None,
    ):
        """Initialize the Gemini provider.

        Args:
            config: Provider configuration
            retry_policy: Policy for rate-limited calls
            client: Pre-built httpx.AsyncClient (tests inject a mock)

        Raises:
            ImportError: If httpx package is not installed
        """
        if client is None and not HTTPX_AVAILABLE:
            raise ImportError(
                "httpx package is required for GeminiProvider. "
                "Install with: pip install httpx"
            )

        super().__init__(config)

        self.base_url = (config.base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.max_retries
        )
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
            headers={"x-goog-api-key": config.api_key},
        )

    # ------------------------------------------------------------------
    # Format conversion
    # ------------------------------------------------------------------

    def _format_messages_for_api(
        self, messages: list[Message]
    ) -> tuple[Optional[dict[str, Any]], list[dict[str, Any]]]:
        """Split the transcript into systemInstruction and contents.

        Assistant turns map to the ``model`` role. Tool results are sent
        back as ``functionResponse`` parts, consecutive results grouped
        into a single user turn.
        """
        system_instruction = None
        contents: list[dict[str, Any]] = []
        call_names: dict[str, str] = {}

        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                if system_instruction is None:
                    system_instruction = {"parts": [{"text": msg.content}]}
                continue

            if msg.role == MessageRole.ASSISTANT:
                parts: list[dict[str, Any]] = []
                if msg.content:
                    parts.append({"text": msg.content})
                for tc in msg.tool_calls or []:
                    call_names[tc.id] = tc.name
                    parts.append(
                        {"functionCall": {"name": tc.name, "args": tc.arguments}}
                    )
                contents.append({"role": "model", "parts": parts or [{"text": ""}]})

            elif msg.role == MessageRole.TOOL:
                part = {
                    "functionResponse": {
                        "name": call_names.get(msg.tool_call_id or "", "tool"),
                        "response": _tool_response_payload(msg.content),
                    }
                }
                previous = contents[-1] if contents else None
                if previous and previous["role"] == "user" and all(
                    "functionResponse" in p for p in previous["parts"]
                ):
                    previous["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})

            else:
                contents.append({"role": "user", "parts": [{"text": msg.content}]})

        return system_instruction, contents

    def _format_tools_for_api(
        self, tools: list[ToolDefinition]
    ) -> list[dict[str, Any]]:
        """Convert tools to a single Gemini function declaration block."""
        return [{"functionDeclarations": [t.to_gemini_format() for t in tools]}]

    def _build_body(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]],
    ) -> dict[str, Any]:
        system_instruction, contents = self._format_messages_for_api(messages)

        body: dict[str, Any] = {"contents": contents}
        if system_instruction:
            body["systemInstruction"] = system_instruction
        if tools:
            body["tools"] = self._format_tools_for_api(tools)

        generation_config: dict[str, Any] = {"temperature": self.config.temperature}
        if self.config.max_tokens:
            generation_config["maxOutputTokens"] = self.config.max_tokens
        body["generationConfig"] = generation_config
        return body

    def _parse_candidate(
        self, payload: dict[str, Any], call_index: int = 0
    ) -> tuple[str, list[ToolCall]]:
        """Extract text and function calls from one response payload."""
        candidates = payload.get("candidates") or []
        if not candidates:
            return "", []

        parts = (candidates[0].get("content") or {}).get("parts") or []
        text_parts = []
        tool_calls = []
        stamp = int(time.time() * 1000)

        for part in parts:
            if part.get("text"):
                text_parts.append(part["text"])
            function_call = part.get("functionCall")
            if function_call and function_call.get("name"):
                tool_calls.append(
                    ToolCall(
                        id=f"gemini_{stamp}_{call_index + len(tool_calls)}",
                        name=function_call["name"],
                        arguments=function_call.get("args") or {},
                    )
                )

        return "".join(text_parts), tool_calls

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------

    def _translate_error(self, e: Exception) -> LLMProviderError:
        if isinstance(e, LLMProviderError):
            return e

        if isinstance(e, httpx.HTTPStatusError):
            status = e.response.status_code
            error_msg = f"Gemini API error: {status} - {e.response.text}"
            error_type = (
                ErrorType.RATE_LIMIT if status == 429 else ErrorType.RECOVERABLE
            )
            logger.error(error_msg)
            return LLMProviderError(
                error_msg,
                error_type=error_type,
                original_error=e,
                status_code=status,
            )

        if isinstance(e, httpx.TimeoutException):
            logger.error(f"Gemini request timeout: {e}")
            return LLMProviderError(
                f"Gemini request timeout: {e}",
                error_type=ErrorType.TIMEOUT,
                original_error=e,
            )

        if isinstance(e, httpx.RequestError):
            logger.error(f"Gemini connection error: {e}")
            return LLMProviderError(
                f"Gemini connection error: {e}",
                error_type=ErrorType.FATAL,
                original_error=e,
            )

        logger.exception(f"Unexpected error in Gemini provider: {e}")
        return LLMProviderError(str(e), error_type=ErrorType.FATAL, original_error=e)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def chat(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
    ) -> Message:
        """Generate a single assistant message with generateContent."""
        self._log_request("chat", messages)
        body = self._build_body(messages, tools)

        async def operation() -> Message:
            try:
                response = await self.client.post(
                    f"/models/{self.config.model}:generateContent",
                    json=body,
                )
                response.raise_for_status()
                text, tool_calls = self._parse_candidate(response.json())
            except Exception as e:
                raise self._translate_error(e) from e

            return Message.assistant(text, tool_calls)

        return await self.retry_policy.run(operation, "chat")

    async def chat_stream(
        self,
        messages: list[Message],
        tools: Optional[list[ToolDefinition]] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> Message:
        """Stream a response with streamGenerateContent over SSE.

        Each server event carries a whole chunk of text and any complete
        function calls; nothing needs to be reassembled.
        """
        self._log_request("chat_stream", messages)
        body = self._build_body(messages, tools)

        async def operation() -> Message:
            content_parts: list[str] = []
            tool_calls: list[ToolCall] = []

            try:
                async with self.client.stream(
                    "POST",
                    f"/models/{self.config.model}:streamGenerateContent",
                    params={"alt": "sse"},
                    json=body,
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                    response.raise_for_status()

                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if not data:
                            continue

                        try:
                            payload = json.loads(data)
                        except json.JSONDecodeError as e:
                            logger.warning(f"Failed to parse Gemini stream event: {e}")
                            continue

                        text, calls = self._parse_candidate(payload, len(tool_calls))
                        if text:
                            content_parts.append(text)
                            await self._emit(on_chunk, StreamChunk.text(text))
                        for tool_call in calls:
                            tool_calls.append(tool_call)
                            await self._emit(
                                on_chunk, StreamChunk.tool_call_chunk(tool_call)
                            )

            except Exception as e:
                raise self._translate_error(e) from e

            await self._emit(on_chunk, StreamChunk.done())
            return Message.assistant("".join(content_parts), tool_calls)

        return await self.retry_policy.run(operation, "chat_stream")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def _tool_response_payload(content: str) -> dict[str, Any]:
    """functionResponse.response must be an object."""
    try:
        parsed = json.loads(content)
    except (TypeError, ValueError):
        return {"result": content}
    return parsed if isinstance(parsed, dict) else {"result": parsed}
