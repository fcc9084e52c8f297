"""
Pydantic schemas for the chat surface.

Validates user input before it reaches the orchestrator and shapes
the tool listing and server status payloads.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..domain.entities import ToolDefinition


# =============================================================================
# Constants
# =============================================================================

MAX_MESSAGE_LENGTH = 10000


# =============================================================================
# Chat Schemas
# =============================================================================


class ChatRequest(BaseModel):
    """Request to send a chat message."""

    message: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)
    clear_history: bool = False

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message is required")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "message": "Show me wireless headphones under $100",
                "clear_history": False,
            }
        }


# =============================================================================
# Tool Schemas
# =============================================================================


class ToolSummary(BaseModel):
    """Name and description of an available tool."""

    name: str
    description: str


class ToolListResponse(BaseModel):
    """Tools visible to the caller."""

    tools: list[ToolSummary]
    count: int

    @classmethod
    def from_definitions(cls, definitions: list[ToolDefinition]) -> ToolListResponse:
        tools = [ToolSummary(name=d.name, description=d.description) for d in definitions]
        return cls(tools=tools, count=len(tools))


class ServerStatus(BaseModel):
    """Connection state of one remote tool server."""

    connected: bool
    tool_count: int = 0


class ServerStatusResponse(BaseModel):
    servers: dict[str, ServerStatus]
    mode: Optional[str] = None
