"""
Event Streamer for Server-Sent Events framing.

Turns the orchestrator's StreamChunk sequence into wire frames of the
form ``event: <type>\\ndata: <json>\\n\\n``. Wire event names follow the
chunk types, except ``tool_call`` which is sent as ``tool``.
"""

from __future__ import annotations

import json
import time
from typing import Any, AsyncIterator, Callable, Optional

from ..domain.entities import StreamChunk, StreamChunkType


_EVENT_NAMES = {
    StreamChunkType.TEXT: "text",
    StreamChunkType.TOOL_CALL: "tool",
    StreamChunkType.TOOL_RESULT: "tool_result",
    StreamChunkType.CHART: "chart",
    StreamChunkType.DONE: "done",
    StreamChunkType.ERROR: "error",
}


def format_sse(event: str, data: dict[str, Any]) -> str:
    """Frame one event. The JSON payload is always a single line."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def default_message_id() -> str:
    return str(int(time.time() * 1000))


class EventStreamer:
    """Encodes StreamChunks as SSE frames.

    Usage:
        streamer = EventStreamer(source="mcp")

        async for frame in streamer.stream(orchestrator.chat_stream(...)):
            await response.write(frame)

    Args:
        source: Optional tag added to ``tool`` events (e.g. "mcp")
        message_id_factory: Builds the id carried by the ``done`` event
    """

    def __init__(
        self,
        source: Optional[str] = None,
        message_id_factory: Callable[[], str] = default_message_id,
    ):
        self.source = source
        self.message_id_factory = message_id_factory

    def event_name(self, chunk: StreamChunk) -> str:
        return _EVENT_NAMES[chunk.type]

    def payload(self, chunk: StreamChunk) -> dict[str, Any]:
        """Build the data object for a chunk."""
        if chunk.type == StreamChunkType.TEXT:
            return {"content": chunk.content}

        if chunk.type == StreamChunkType.TOOL_CALL:
            data: dict[str, Any] = {
                "name": chunk.tool_call.name if chunk.tool_call else None,
                "args": chunk.tool_call.arguments if chunk.tool_call else None,
            }
            if self.source:
                data["source"] = self.source
            return data

        if chunk.type == StreamChunkType.TOOL_RESULT:
            return {"name": chunk.tool_name, "result": chunk.content}

        if chunk.type == StreamChunkType.CHART:
            return {"chart": chunk.chart}

        if chunk.type == StreamChunkType.DONE:
            return {"messageId": self.message_id_factory()}

        return {"error": chunk.error}

    def encode(self, chunk: StreamChunk) -> str:
        return format_sse(self.event_name(chunk), self.payload(chunk))

    async def stream(self, chunks: AsyncIterator[StreamChunk]) -> AsyncIterator[str]:
        """Encode a chunk sequence, stopping after the terminal event."""
        async for chunk in chunks:
            yield self.encode(chunk)
            if chunk.is_terminal:
                return
