"""
Agent Orchestrator.

Main orchestration logic for the SmartShop assistant. Coordinates:
- LLM calls with streaming
- Tool execution and result handling
- Chart forwarding for analytics tools
- Bounded tool-calling loop with a graceful fallback
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Optional

from ..domain.entities import (
    ChatContext,
    Message,
    StreamChunk,
    StreamChunkType,
    ToolDefinition,
)
from ..domain.ports import ILLMProvider
from .prompt_builder import PromptBuilder
from .tool_executor import ToolExecutor

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "I apologize, but I encountered an issue processing your request. "
    "Please try again with a simpler question."
)


class TurnState(str, Enum):
    """States of a single user turn."""

    COLLECTING_TURN = "collecting_turn"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS = {
    TurnState.COLLECTING_TURN: {
        TurnState.DISPATCHING_TOOLS,
        TurnState.DONE,
        TurnState.ERROR,
    },
    TurnState.DISPATCHING_TOOLS: {
        TurnState.COLLECTING_TURN,
        TurnState.DONE,
        TurnState.ERROR,
    },
    TurnState.DONE: set(),
    TurnState.ERROR: set(),
}


class TurnStateMachine:
    """Tracks a turn's state; terminal states are entered exactly once."""

    def __init__(self) -> None:
        self.state = TurnState.COLLECTING_TURN
        self.history: list[TurnState] = [self.state]

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    def transition(self, new_state: TurnState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid turn transition: {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"Turn state: {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)


@dataclass
class AgentConfig:
    """Configuration for the agent orchestrator.

    Attributes:
        max_iterations: Maximum LLM calls per user turn
        emit_tool_results: Emit a tool_result chunk after each dispatch
        incremental_streaming: Forward text chunks as the provider produces
            them instead of replaying them after the LLM call completes
        stream_queue_size: Bound of the incremental streaming queue
    """

    max_iterations: int = 5
    emit_tool_results: bool = False
    incremental_streaming: bool = False
    stream_queue_size: int = 64


@dataclass
class _TurnOutcome:
    message: Optional[Message] = None
    chunks: list[StreamChunk] = field(default_factory=list)


class AgentOrchestrator:
    """Main agent orchestration logic.

    Manages the conversation loop:
    1. Build the transcript (system prompt, history, user message)
    2. Call the LLM with the tools visible to the caller
    3. Execute tool calls if any, in call order
    4. Loop back to the LLM with results
    5. Stop on a natural answer or after max_iterations LLM calls

    Every stream ends with exactly one ``done`` or ``error`` chunk.

    Usage:
        orchestrator = AgentOrchestrator(
            llm_provider=openai_provider,
            tool_executor=ToolExecutor(registry),
        )

        async for chunk in orchestrator.chat_stream(
            user_message="Show me my recent orders",
            context=ChatContext(user_id=7),
            history=[],
        ):
            print(chunk.to_dict())
    """

    def __init__(
        self,
        llm_provider: ILLMProvider,
        tool_executor: ToolExecutor,
        prompt_builder: Optional[PromptBuilder] = None,
        config: Optional[AgentConfig] = None,
    ):
        """Initialize the agent orchestrator.

        Args:
            llm_provider: LLM provider for response generation
            tool_executor: Dispatch boundary for tool calls
            prompt_builder: System prompt renderer
            config: Agent configuration
        """
        self.llm = llm_provider
        self.tools = tool_executor
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.config = config or AgentConfig()

    def build_transcript(
        self,
        user_message: str,
        context: ChatContext,
        history: Optional[list[Message]] = None,
    ) -> list[Message]:
        """System message first, then history, then the new user message."""
        return [
            Message.system(self.prompt_builder.build(context)),
            *(history or []),
            Message.user(user_message),
        ]

    async def available_tools(self, context: ChatContext) -> list[ToolDefinition]:
        """Tools the caller may use."""
        return await self.tools.list_tools(context.user_role)

    # ============================================
    # Streaming
    # ============================================

    async def chat_stream(
        self,
        user_message: str,
        context: ChatContext,
        history: Optional[list[Message]] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Process a user message and stream the response.

        Args:
            user_message: User's input message
            context: Caller identity
            history: Prior conversation, oldest first

        Yields:
            StreamChunk objects, ending in a single done or error chunk
        """
        turn = TurnStateMachine()
        transcript = self.build_transcript(user_message, context, history)
        max_iterations = self.config.max_iterations
        tools_pending = False

        try:
            tools = await self.available_tools(context)

            for iteration in range(1, max_iterations + 1):
                logger.info(
                    f"Iteration {iteration}/{max_iterations}, "
                    f"transcript length: {len(transcript)}"
                )

                outcome = _TurnOutcome()
                async for chunk in self._turn_chunks(transcript, tools, outcome):
                    yield chunk
                response = outcome.message

                if response is None or not response.has_tool_calls:
                    tools_pending = False
                    break

                tools_pending = True
                turn.transition(TurnState.DISPATCHING_TOOLS)
                transcript.append(response)

                for tool_call in response.tool_calls:
                    yield StreamChunk.tool_call_chunk(tool_call)

                    result = await self.tools.execute(tool_call, context)

                    if self.config.emit_tool_results:
                        yield StreamChunk.tool_result(tool_call.name, result.content)
                    if result.chart:
                        yield StreamChunk.chart_chunk(result.chart)

                    transcript.append(Message.tool(result.content, tool_call.id))

                turn.transition(TurnState.COLLECTING_TURN)

        except Exception as e:
            logger.exception(f"Chat error: {e}")
            turn.transition(TurnState.ERROR)
            yield StreamChunk.error_chunk(str(e))
            return

        if tools_pending:
            logger.warning(
                f"Reached {max_iterations} iterations with tool calls still pending"
            )
            yield StreamChunk.text(APOLOGY_MESSAGE)

        turn.transition(TurnState.DONE)
        yield StreamChunk.done()

    async def _turn_chunks(
        self,
        transcript: list[Message],
        tools: list[ToolDefinition],
        outcome: _TurnOutcome,
    ) -> AsyncIterator[StreamChunk]:
        """Run one LLM call, yielding its text chunks.

        The assistant message is stored on ``outcome`` once the call
        completes; provider errors propagate after any yielded text.
        """
        if not self.config.incremental_streaming:
            outcome.message = await self.llm.chat_stream(
                transcript, tools or None, on_chunk=outcome.chunks.append
            )
            for chunk in outcome.chunks:
                if chunk.type == StreamChunkType.TEXT:
                    yield chunk
            return

        queue: asyncio.Queue[StreamChunk] = asyncio.Queue(
            maxsize=self.config.stream_queue_size
        )

        async def on_chunk(chunk: StreamChunk) -> None:
            if chunk.type == StreamChunkType.TEXT:
                await queue.put(chunk)

        task = asyncio.create_task(
            self.llm.chat_stream(transcript, tools or None, on_chunk=on_chunk)
        )
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter.done():
                    yield getter.result()
                    continue
                getter.cancel()
                break

            while not queue.empty():
                yield queue.get_nowait()
            outcome.message = task.result()
        finally:
            if not task.done():
                task.cancel()

    # ============================================
    # Non-streaming
    # ============================================

    async def chat(
        self,
        user_message: str,
        context: ChatContext,
        history: Optional[list[Message]] = None,
    ) -> Message:
        """Process a user message and return the final assistant message.

        Provider errors propagate to the caller. When the iteration cap
        is hit with tool calls still pending, the apology message is
        returned instead.
        """
        transcript = self.build_transcript(user_message, context, history)
        tools = await self.available_tools(context)

        for iteration in range(1, self.config.max_iterations + 1):
            logger.info(f"Iteration {iteration}/{self.config.max_iterations}")
            response = await self.llm.chat(transcript, tools or None)

            if not response.has_tool_calls:
                return response

            transcript.append(response)
            for tool_call in response.tool_calls:
                result = await self.tools.execute(tool_call, context)
                transcript.append(Message.tool(result.content, tool_call.id))

        logger.warning(
            f"Reached {self.config.max_iterations} iterations with tool calls still pending"
        )
        return Message.assistant(APOLOGY_MESSAGE)
