"""Chat request validation and response schemas."""

from .schemas import (
    MAX_MESSAGE_LENGTH,
    ChatRequest,
    ServerStatus,
    ServerStatusResponse,
    ToolListResponse,
    ToolSummary,
)

__all__ = [
    "MAX_MESSAGE_LENGTH",
    "ChatRequest",
    "ServerStatus",
    "ServerStatusResponse",
    "ToolListResponse",
    "ToolSummary",
]
