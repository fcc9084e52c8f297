"""
Tests for SSE framing, conversation history and chat input validation.
"""

import json
import pytest
from datetime import date
from pydantic import ValidationError

from src.smartshop.agent.api.schemas import (
    MAX_MESSAGE_LENGTH,
    ChatRequest,
    ServerStatusResponse,
    ToolListResponse,
)
from src.smartshop.agent.domain.entities import (
    ChatContext,
    Message,
    MessageRole,
    StreamChunk,
    ToolCall,
    ToolDefinition,
    UserRole,
)
from src.smartshop.agent.orchestrator.agent import AgentConfig, AgentOrchestrator
from src.smartshop.agent.orchestrator.conversation_manager import ConversationManager
from src.smartshop.agent.orchestrator.event_streamer import (
    EventStreamer,
    format_sse,
)
from src.smartshop.agent.orchestrator.prompt_builder import PromptBuilder
from src.smartshop.agent.orchestrator.tool_executor import ToolExecutor
from src.smartshop.agent.providers.base import LLMProviderError
from src.smartshop.agent.tools.catalog import create_tool_registry


def parse_frame(frame):
    event_line, data_line, blank, end = frame.split("\n")
    assert event_line.startswith("event: ")
    assert data_line.startswith("data: ")
    assert blank == "" and end == ""
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


async def agen(*items):
    for item in items:
        yield item


class TestEventStreamer:
    """Tests for SSE wire frames."""

    @pytest.fixture
    def streamer(self):
        return EventStreamer(message_id_factory=lambda: "msg-1")

    def test_format_sse(self):
        assert format_sse("text", {"content": "hi"}) == 'event: text\ndata: {"content": "hi"}\n\n'

    def test_multiline_text_stays_on_one_data_line(self, streamer):
        frame = streamer.encode(StreamChunk.text("line one\nline two"))
        assert parse_frame(frame) == ("text", {"content": "line one\nline two"})

    def test_tool_call_event(self, streamer):
        call = ToolCall(name="get_my_orders", arguments={"limit": 2}, id="c")
        assert parse_frame(streamer.encode(StreamChunk.tool_call_chunk(call))) == (
            "tool",
            {"name": "get_my_orders", "args": {"limit": 2}},
        )

    def test_tool_call_source_tag(self):
        streamer = EventStreamer(source="mcp")
        call = ToolCall(name="search_products", arguments={}, id="c")

        _, data = parse_frame(streamer.encode(StreamChunk.tool_call_chunk(call)))

        assert data["source"] == "mcp"

    def test_other_events(self, streamer):
        chart = {"chartType": "bar", "data": []}
        assert parse_frame(streamer.encode(StreamChunk.tool_result("t", '{"a": 1}'))) == (
            "tool_result",
            {"name": "t", "result": '{"a": 1}'},
        )
        assert parse_frame(streamer.encode(StreamChunk.chart_chunk(chart))) == (
            "chart",
            {"chart": chart},
        )
        assert parse_frame(streamer.encode(StreamChunk.done())) == (
            "done",
            {"messageId": "msg-1"},
        )
        assert parse_frame(streamer.encode(StreamChunk.error_chunk("boom"))) == (
            "error",
            {"error": "boom"},
        )

    @pytest.mark.asyncio
    async def test_stream_stops_after_terminal(self, streamer):
        chunks = agen(
            StreamChunk.text("a"),
            StreamChunk.done(),
            StreamChunk.text("late"),
        )

        frames = [frame async for frame in streamer.stream(chunks)]

        assert [parse_frame(f)[0] for f in frames] == ["text", "done"]


class TestPromptBuilder:
    def test_customer_prompt(self):
        prompt = PromptBuilder().build(
            ChatContext(user_id=7, user_name="Ana"), today=date(2025, 3, 1)
        )

        assert "Current user: Ana (customer)" in prompt
        assert "Current date: 2025-03-01" in prompt
        assert "As an admin" not in prompt

    def test_admin_prompt(self):
        prompt = PromptBuilder().build(ChatContext(user_id=1, user_role=UserRole.ADMIN))
        assert "As an admin, you also have access" in prompt


class TestConversationManager:
    """Tests for bounded per-conversation history."""

    @pytest.fixture
    def make_orchestrator(self, repository):
        def factory(llm):
            return AgentOrchestrator(
                llm, ToolExecutor(create_tool_registry(repository)), config=AgentConfig()
            )
        return factory

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            ConversationManager(history_limit=0)

    @pytest.mark.asyncio
    async def test_window_bounded(self):
        manager = ConversationManager(history_limit=20)

        for i in range(15):
            await manager.record_turn(7, f"q{i}", f"a{i}")

        history = await manager.get_history(7)
        assert len(history) == 20
        assert history[0].content == "q5"
        assert history[-1].content == "a14"

    @pytest.mark.asyncio
    async def test_history_copy(self):
        manager = ConversationManager()
        await manager.record_turn(7, "q", "a")

        history = await manager.get_history(7)
        history.clear()

        assert manager.history_length(7) == 2

    @pytest.mark.asyncio
    async def test_completed_turn_recorded(
        self, make_orchestrator, scripted_llm, customer_context
    ):
        manager = ConversationManager()
        llm = scripted_llm([Message.assistant("Hello Ana"), Message.assistant("Again")])
        orchestrator = make_orchestrator(llm)

        [c async for c in manager.run_turn(orchestrator, 7, "hi", customer_context)]
        [c async for c in manager.run_turn(orchestrator, 7, "more", customer_context)]

        history = await manager.get_history(7)
        assert [(m.role, m.content) for m in history] == [
            (MessageRole.USER, "hi"),
            (MessageRole.ASSISTANT, "Hello Ana"),
            (MessageRole.USER, "more"),
            (MessageRole.ASSISTANT, "Again"),
        ]
        # The second call saw the first exchange between system and user
        assert [m.content for m in llm.calls[1][1:]] == ["hi", "Hello Ana", "more"]

    @pytest.mark.asyncio
    async def test_failed_turn_not_recorded(
        self, make_orchestrator, scripted_llm, customer_context
    ):
        manager = ConversationManager()
        orchestrator = make_orchestrator(scripted_llm([LLMProviderError("boom")]))

        chunks = [c async for c in manager.run_turn(orchestrator, 7, "hi", customer_context)]

        assert chunks[-1].error == "boom"
        assert await manager.get_history(7) == []
        assert manager.history_length(7) is None

    @pytest.mark.asyncio
    async def test_clear_history(self, make_orchestrator, scripted_llm, customer_context):
        manager = ConversationManager()
        await manager.record_turn(7, "old", "reply")
        llm = scripted_llm([Message.assistant("fresh")])

        [
            c async for c in manager.run_turn(
                make_orchestrator(llm), 7, "new", customer_context, clear_history=True
            )
        ]

        assert len(llm.calls[0]) == 2
        assert [m.content for m in await manager.get_history(7)] == ["new", "fresh"]

    @pytest.mark.asyncio
    async def test_conversations_isolated(self):
        manager = ConversationManager()
        await manager.record_turn(7, "mine", "a")
        await manager.record_turn(8, "theirs", "b")

        assert manager.conversation_count() == 2
        assert (await manager.get_history(7))[0].content == "mine"


class TestChatRequest:
    """Tests for chat input validation."""

    def test_valid(self):
        request = ChatRequest(message="Any desks?")
        assert request.clear_history is False

    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    def test_blank_rejected(self, message):
        with pytest.raises(ValidationError):
            ChatRequest(message=message)

    def test_length_limit(self):
        ChatRequest(message="x" * MAX_MESSAGE_LENGTH)
        with pytest.raises(ValidationError):
            ChatRequest(message="x" * (MAX_MESSAGE_LENGTH + 1))

    def test_missing_message(self):
        with pytest.raises(ValidationError):
            ChatRequest()


class TestResponseSchemas:
    def test_tool_list(self):
        response = ToolListResponse.from_definitions([
            ToolDefinition(name="get_my_cart", description="Cart"),
            ToolDefinition(name="get_my_orders", description="Orders"),
        ])

        assert response.count == 2
        assert response.tools[0].name == "get_my_cart"

    def test_server_status(self):
        response = ServerStatusResponse(
            servers={"products": {"connected": True, "tool_count": 4}},
            mode="remote",
        )
        assert response.servers["products"].tool_count == 4
