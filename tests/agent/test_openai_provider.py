"""
Tests for the OpenAI provider.

The AsyncOpenAI client is replaced with a MagicMock whose streaming
responses are async generators of fake chunks.
"""

import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from src.smartshop.agent.domain.entities import (
    ErrorType,
    Message,
    StreamChunkType,
    ToolCall,
    ToolDefinition,
    ToolParameter,
)
from src.smartshop.agent.providers.base import LLMProviderConfig, LLMProviderError
from src.smartshop.agent.providers.openai import OPENAI_AVAILABLE, OpenAIProvider


pytestmark = pytest.mark.skipif(
    not OPENAI_AVAILABLE,
    reason="openai package not installed"
)


def text_chunk(content, finish_reason=None):
    chunk = MagicMock()
    chunk.choices = [MagicMock()]
    chunk.choices[0].delta.content = content
    chunk.choices[0].delta.tool_calls = None
    chunk.choices[0].finish_reason = finish_reason
    return chunk


def tool_chunk(index, call_id=None, name=None, arguments=None):
    tc = MagicMock()
    tc.index = index
    tc.id = call_id
    tc.function.name = name
    tc.function.arguments = arguments

    chunk = MagicMock()
    chunk.choices = [MagicMock()]
    chunk.choices[0].delta.content = None
    chunk.choices[0].delta.tool_calls = [tc]
    chunk.choices[0].finish_reason = None
    return chunk


def stream_of(*chunks):
    async def generator():
        for chunk in chunks:
            yield chunk
    return generator()


@pytest.fixture
def openai_config():
    return LLMProviderConfig(api_key="test-api-key", model="gpt-4o-mini")


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def search_tool():
    return ToolDefinition(
        name="search_products",
        description="Search",
        properties={"query": ToolParameter("string", "Query")},
        required=["query"],
    )


class TestOpenAIProviderInit:
    """Tests for construction."""

    def test_builds_sdk_client(self, openai_config):
        with patch("src.smartshop.agent.providers.openai.AsyncOpenAI") as mock_cls:
            provider = OpenAIProvider(openai_config)

        mock_cls.assert_called_once()
        assert mock_cls.call_args.kwargs["api_key"] == "test-api-key"
        assert provider.model_name == "gpt-4o-mini"
        assert provider.supports_native_deltas is True


class TestOpenAIFormatting:
    """Tests for message and tool translation."""

    def test_tool_messages(self, openai_config, mock_client):
        provider = OpenAIProvider(openai_config, client=mock_client)
        call = ToolCall(name="get_my_cart", arguments={"x": 1}, id="call_1")
        messages = [
            Message.system("sys"),
            Message.user("cart?"),
            Message.assistant("", [call]),
            Message.tool('{"items": []}', "call_1"),
        ]

        formatted = provider._format_messages_for_api(messages)

        assert formatted[0] == {"role": "system", "content": "sys"}
        assert formatted[2]["content"] is None
        assert formatted[2]["tool_calls"][0]["function"] == {
            "name": "get_my_cart",
            "arguments": json.dumps({"x": 1}),
        }
        assert formatted[3] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": '{"items": []}',
        }

    def test_tools_format(self, openai_config, mock_client, search_tool):
        provider = OpenAIProvider(openai_config, client=mock_client)
        tools = provider._format_tools_for_api([search_tool])

        assert tools[0]["type"] == "function"
        assert tools[0]["function"]["parameters"]["required"] == ["query"]


class TestOpenAIChatStream:
    """Tests for streaming chat."""

    @pytest.mark.asyncio
    async def test_text_deltas(self, openai_config, mock_client):
        mock_client.chat.completions.create = AsyncMock(
            return_value=stream_of(text_chunk("Hello"), text_chunk(" world", "stop"))
        )
        provider = OpenAIProvider(openai_config, client=mock_client)
        chunks = []

        reply = await provider.chat_stream([Message.user("Hi")], on_chunk=chunks.append)

        assert reply.content == "Hello world"
        assert not reply.has_tool_calls
        assert [c.content for c in chunks if c.type == StreamChunkType.TEXT] == [
            "Hello",
            " world",
        ]
        assert chunks[-1].type == StreamChunkType.DONE
        assert mock_client.chat.completions.create.call_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_tool_call_fragments_reassembled(
        self, openai_config, mock_client, search_tool
    ):
        """Argument fragments are concatenated per index."""
        mock_client.chat.completions.create = AsyncMock(
            return_value=stream_of(
                tool_chunk(0, "call_a", "search_products", '{"que'),
                tool_chunk(0, None, None, 'ry": "desk"}'),
                tool_chunk(1, "call_b", "get_my_cart", ""),
            )
        )
        provider = OpenAIProvider(openai_config, client=mock_client)
        chunks = []

        reply = await provider.chat_stream(
            [Message.user("desk")], [search_tool], on_chunk=chunks.append
        )

        assert [(tc.id, tc.name, tc.arguments) for tc in reply.tool_calls] == [
            ("call_a", "search_products", {"query": "desk"}),
            ("call_b", "get_my_cart", {}),
        ]
        tool_chunks = [c for c in chunks if c.type == StreamChunkType.TOOL_CALL]
        assert len(tool_chunks) == 2
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_malformed_arguments_preserved(self, openai_config, mock_client):
        mock_client.chat.completions.create = AsyncMock(
            return_value=stream_of(tool_chunk(0, "call_a", "search_products", "{bad"))
        )
        provider = OpenAIProvider(openai_config, client=mock_client)

        reply = await provider.chat_stream([Message.user("x")])

        assert reply.tool_calls[0].arguments == {"raw": "{bad"}

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, openai_config, mock_client):
        mock_client.chat.completions.create = AsyncMock(side_effect=RuntimeError("boom"))
        provider = OpenAIProvider(openai_config, client=mock_client)

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.chat_stream([Message.user("x")])

        assert exc_info.value.error_type == ErrorType.FATAL


class TestOpenAIChat:
    """Tests for non-streaming chat."""

    @pytest.mark.asyncio
    async def test_chat_with_tool_calls(self, openai_config, mock_client):
        tc = MagicMock()
        tc.id = "call_1"
        tc.function.name = "get_my_orders"
        tc.function.arguments = '{"limit": 3}'
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = None
        response.choices[0].message.tool_calls = [tc]
        mock_client.chat.completions.create = AsyncMock(return_value=response)
        provider = OpenAIProvider(openai_config, client=mock_client)

        reply = await provider.chat([Message.user("orders")])

        assert reply.content == ""
        assert reply.tool_calls[0].arguments == {"limit": 3}

    @pytest.mark.asyncio
    async def test_close(self, openai_config, mock_client):
        provider = OpenAIProvider(openai_config, client=mock_client)
        await provider.close()
        mock_client.close.assert_awaited_once()
