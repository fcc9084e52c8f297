"""
Conversation Manager.

Keeps a bounded recent-window history per conversation in memory.
Only completed turns are recorded: a turn that ends in an error, or
whose consumer stops early, leaves the stored history untouched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, AsyncIterator, Hashable, Optional

from ..domain.entities import ChatContext, Message, StreamChunk, StreamChunkType

if TYPE_CHECKING:
    from .agent import AgentOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class ConversationManager:
    """Manages per-conversation history.

    Usage:
        manager = ConversationManager(history_limit=20)

        async for chunk in manager.run_turn(
            orchestrator,
            conversation_key=context.user_id,
            user_message="Where is my order?",
            context=context,
        ):
            ...

        history = await manager.get_history(context.user_id)
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        """Initialize the conversation manager.

        Args:
            history_limit: Most recent messages kept per conversation
        """
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.history_limit = history_limit
        self._histories: dict[Hashable, list[Message]] = {}
        self._lock = asyncio.Lock()

    async def get_history(self, conversation_key: Hashable) -> list[Message]:
        """Return a copy of the stored history, oldest first."""
        async with self._lock:
            return list(self._histories.get(conversation_key, []))

    async def record_turn(
        self,
        conversation_key: Hashable,
        user_message: str,
        assistant_text: str,
    ) -> list[Message]:
        """Append a completed exchange and trim to the window."""
        async with self._lock:
            history = self._histories.get(conversation_key, [])
            history = [
                *history,
                Message.user(user_message),
                Message.assistant(assistant_text),
            ][-self.history_limit:]
            self._histories[conversation_key] = history
            logger.debug(
                f"Recorded turn for conversation {conversation_key} "
                f"({len(history)} messages)"
            )
            return list(history)

    async def clear(self, conversation_key: Hashable) -> None:
        async with self._lock:
            self._histories.pop(conversation_key, None)
        logger.info(f"Cleared history for conversation {conversation_key}")

    async def run_turn(
        self,
        orchestrator: AgentOrchestrator,
        conversation_key: Hashable,
        user_message: str,
        context: ChatContext,
        clear_history: bool = False,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one turn and record it when it completes.

        Args:
            orchestrator: Orchestrator running the turn
            conversation_key: History key (typically the user id)
            user_message: Validated user message
            context: Caller identity
            clear_history: Drop the stored history before the turn

        Yields:
            The orchestrator's chunks, unchanged
        """
        if clear_history:
            await self.clear(conversation_key)

        history = await self.get_history(conversation_key)
        response_parts: list[str] = []

        async for chunk in orchestrator.chat_stream(user_message, context, history):
            if chunk.type == StreamChunkType.TEXT and chunk.content:
                response_parts.append(chunk.content)
            elif chunk.type == StreamChunkType.DONE:
                await self.record_turn(
                    conversation_key, user_message, "".join(response_parts)
                )
            yield chunk

    def conversation_count(self) -> int:
        return len(self._histories)

    def history_length(self, conversation_key: Hashable) -> Optional[int]:
        history = self._histories.get(conversation_key)
        return len(history) if history is not None else None
