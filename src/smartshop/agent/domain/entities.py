"""
Domain entities for the SmartShop assistant.

These are pure domain objects with no infrastructure dependencies.
They define the core data structures shared by the orchestrator,
the tool backends, the LLM providers and the retrieval engine.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# ============================================
# Caller Context
# ============================================


class UserRole(str, Enum):
    """Role tier of the caller. Admins see a superset of customer tools."""

    CUSTOMER = "customer"
    ADMIN = "admin"


@dataclass(frozen=True)
class ChatContext:
    """Identity of the caller for a single turn.

    Attributes:
        user_id: Identifier of the signed-in user
        user_role: Role tier used for tool gating
        user_name: Display name rendered into the system prompt
    """

    user_id: int
    user_role: UserRole = UserRole.CUSTOMER
    user_name: str = "User"

    @property
    def is_admin(self) -> bool:
        return self.user_role == UserRole.ADMIN


# ============================================
# Message Types
# ============================================


class MessageRole(str, Enum):
    """Role of a message in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass
class ToolCall:
    """A tool call requested by the LLM.

    Attributes:
        name: Tool name being called
        arguments: Arguments passed to the tool
        id: Identifier unique within one assistant turn
    """

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class Message:
    """A single message in a conversation.

    Attributes:
        role: Message role (system, user, assistant, tool)
        content: Message text content
        tool_call_id: For tool messages, the id of the call being answered
        tool_calls: For assistant messages, the tool calls requested
    """

    role: MessageRole
    content: str
    tool_call_id: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: Optional[list[ToolCall]] = None
    ) -> Message:
        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            tool_calls=tool_calls or None,
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> Message:
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


# ============================================
# Tool System
# ============================================


@dataclass(frozen=True)
class ToolParameter:
    """One property of a tool's parameter schema."""

    type: str
    description: str = ""
    enum: Optional[tuple[str, ...]] = None

    def to_schema(self) -> dict[str, Any]:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


@dataclass
class ToolDefinition:
    """Definition of an available tool.

    Attributes:
        name: Tool name (e.g., 'search_products')
        description: Human-readable description for the model
        properties: Named parameters and their schema
        required: Names of the mandatory parameters
        admin_only: True if only admins may see and call the tool
    """

    name: str
    description: str
    properties: dict[str, ToolParameter] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)
    admin_only: bool = False

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema object describing the tool arguments."""
        schema: dict[str, Any] = {
            "type": "object",
            "properties": {
                name: param.to_schema() for name, param in self.properties.items()
            },
        }
        if self.required:
            schema["required"] = list(self.required)
        return schema

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        return {
            "type": "function",
            "function": self.to_dict(),
        }

    def to_gemini_format(self) -> dict[str, Any]:
        """Convert to a Gemini function declaration.

        Gemini expects upper-case OpenAPI type names.
        """
        properties = {}
        for name, param in self.properties.items():
            prop: dict[str, Any] = {
                "type": gemini_schema_type(param.type),
                "description": param.description,
            }
            if param.enum:
                prop["enum"] = list(param.enum)
            properties[name] = prop

        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "OBJECT",
                "properties": properties,
                "required": list(self.required),
            },
        }

    @classmethod
    def from_json_schema(
        cls,
        name: str,
        description: str,
        schema: Optional[dict[str, Any]],
        admin_only: bool = False,
    ) -> ToolDefinition:
        """Build a definition from a JSON Schema published by a remote server."""
        schema = schema or {}
        properties = {}
        for prop_name, prop in (schema.get("properties") or {}).items():
            prop_type = prop.get("type")
            if prop_type is None and prop.get("anyOf"):
                # Optional params are published as anyOf [{type: X}, {type: null}]
                prop_type = [p.get("type") for p in prop["anyOf"]]
            if isinstance(prop_type, list):
                prop_type = next((t for t in prop_type if t and t != "null"), None)
            prop_type = prop_type or "string"
            enum = prop.get("enum")
            properties[prop_name] = ToolParameter(
                type=prop_type,
                description=prop.get("description", ""),
                enum=tuple(enum) if enum else None,
            )
        return cls(
            name=name,
            description=description or "",
            properties=properties,
            required=list(schema.get("required") or []),
            admin_only=admin_only,
        )


_GEMINI_TYPES = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
    "object": "OBJECT",
}


def gemini_schema_type(json_type: str) -> str:
    """Map a JSON Schema type name to Gemini's, defaulting to STRING."""
    return _GEMINI_TYPES.get(json_type, "STRING")


@dataclass
class ToolResult:
    """Result from a tool execution.

    Attributes:
        tool_call_id: ID of the tool call this answers
        content: JSON-serialized payload fed back to the model
        chart: Optional visualization descriptor for the UI
    """

    tool_call_id: str
    content: str
    chart: Optional[dict[str, Any]] = None

    @property
    def is_error(self) -> bool:
        try:
            payload = json.loads(self.content)
        except (TypeError, ValueError):
            return False
        return isinstance(payload, dict) and "error" in payload

    @classmethod
    def from_error(cls, tool_call_id: str, message: str) -> ToolResult:
        return cls(tool_call_id=tool_call_id, content=json.dumps({"error": message}))


# ============================================
# Streaming Chunks
# ============================================


class StreamChunkType(str, Enum):
    """Types of chunks emitted while a turn is in flight."""

    TEXT = "text"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    CHART = "chart"
    DONE = "done"
    ERROR = "error"


class ErrorType(str, Enum):
    """Types of provider errors."""

    RECOVERABLE = "recoverable"  # Can retry
    FATAL = "fatal"  # Must abort
    TIMEOUT = "timeout"  # LLM timeout
    RATE_LIMIT = "rate_limit"  # Rate limited, back off


@dataclass
class StreamChunk:
    """A single piece of a streamed turn.

    Only the field matching ``type`` is populated.
    """

    type: StreamChunkType
    content: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_name: Optional[str] = None
    chart: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (StreamChunkType.DONE, StreamChunkType.ERROR)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"type": self.type.value}
        if self.content is not None:
            result["content"] = self.content
        if self.tool_call is not None:
            result["tool_call"] = self.tool_call.to_dict()
        if self.tool_name is not None:
            result["name"] = self.tool_name
        if self.chart is not None:
            result["chart"] = self.chart
        if self.error is not None:
            result["error"] = self.error
        return result

    @classmethod
    def text(cls, content: str) -> StreamChunk:
        return cls(type=StreamChunkType.TEXT, content=content)

    @classmethod
    def tool_call_chunk(cls, tool_call: ToolCall) -> StreamChunk:
        return cls(type=StreamChunkType.TOOL_CALL, tool_call=tool_call)

    @classmethod
    def tool_result(cls, name: str, content: str) -> StreamChunk:
        return cls(type=StreamChunkType.TOOL_RESULT, tool_name=name, content=content)

    @classmethod
    def chart_chunk(cls, chart: dict[str, Any]) -> StreamChunk:
        return cls(type=StreamChunkType.CHART, chart=chart)

    @classmethod
    def done(cls) -> StreamChunk:
        return cls(type=StreamChunkType.DONE)

    @classmethod
    def error_chunk(cls, message: str) -> StreamChunk:
        return cls(type=StreamChunkType.ERROR, error=message)


# ============================================
# Retrieval Types
# ============================================


@dataclass
class VectorDocument:
    """A document stored in the vector store.

    Attributes:
        id: Stable id derived from the source entity (e.g. 'product-12')
        content: The text that was embedded
        embedding: Fixed-length embedding vector
        metadata: Scalar key/value pairs used for equality filters
        created_at: Insertion timestamp
    """

    id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)


@dataclass
class SearchResult:
    """A scored vector store hit. Score is raw cosine similarity in [-1, 1]."""

    id: str
    content: str
    metadata: dict[str, Any]
    score: float


@dataclass
class RetrievalResult:
    """Output of a retrieval query."""

    query: str
    results: list[SearchResult]
    context: str
