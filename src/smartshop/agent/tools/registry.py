"""
Tool Registry.

Maps tool names to in-process handlers and enforces role-based
visibility. The registry is built once at startup from a fixed list
of ToolHandler descriptors; dispatch is an exact-name dictionary lookup.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from ..domain.entities import (
    ChatContext,
    ToolDefinition,
    ToolResult,
    UserRole,
)
from ..domain.ports import IToolBackend

logger = logging.getLogger(__name__)

ADMIN_ONLY_MESSAGE = "Admin only"

ToolFunc = Callable[[dict[str, Any], ChatContext], Awaitable[Any]]


class ToolExecutionError(Exception):
    """Error raised by a tool handler."""

    def __init__(self, message: str, tool_name: str = "", recoverable: bool = True):
        super().__init__(message)
        self.tool_name = tool_name
        self.recoverable = recoverable


@dataclass(frozen=True)
class ToolHandler:
    """A tool's schema paired with the coroutine that runs it."""

    definition: ToolDefinition
    func: ToolFunc

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def admin_only(self) -> bool:
        return self.definition.admin_only


def require_admin(context: ChatContext, tool_name: str = "") -> None:
    """Raise unless the caller is an admin."""
    if not context.is_admin:
        raise ToolExecutionError(ADMIN_ONLY_MESSAGE, tool_name, recoverable=False)


def serialize_result(payload: Any) -> str:
    """JSON encode a handler payload for the model."""
    return json.dumps(payload, indent=2, default=str)


def extract_chart(payload: Any) -> Optional[dict[str, Any]]:
    if isinstance(payload, dict) and isinstance(payload.get("chart"), dict):
        return payload["chart"]
    return None


class ToolRegistry(IToolBackend):
    """Registry of local tools.

    Usage:
        registry = ToolRegistry(CommerceTools(repository, rag_engine).handlers())

        tools = await registry.list_tools(UserRole.CUSTOMER)
        result = await registry.execute("get_my_cart", {}, context)

    Errors never escape ``execute``: unknown names, admin violations and
    handler failures all come back as ``{"error": message}`` content.
    """

    def __init__(self, handlers: list[ToolHandler]):
        """Initialize the tool registry.

        Args:
            handlers: Tool descriptors; names must be unique
        """
        self._handlers: dict[str, ToolHandler] = {}
        for handler in handlers:
            if handler.name in self._handlers:
                raise ValueError(f"Duplicate tool name: {handler.name}")
            self._handlers[handler.name] = handler

        logger.info(
            f"Tool registry loaded {len(self._handlers)} tools "
            f"({sum(h.admin_only for h in self._handlers.values())} admin-only)"
        )

    def get_handler(self, name: str) -> Optional[ToolHandler]:
        return self._handlers.get(name)

    def tool_names(self) -> list[str]:
        return list(self._handlers)

    def get_tools_for_role(self, role: UserRole) -> list[ToolDefinition]:
        """Customer tools, plus admin-only tools for admins."""
        return [
            h.definition
            for h in self._handlers.values()
            if role == UserRole.ADMIN or not h.admin_only
        ]

    async def list_tools(self, role: UserRole) -> list[ToolDefinition]:
        return self.get_tools_for_role(role)

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ChatContext,
        tool_call_id: str = "",
    ) -> ToolResult:
        """Execute a tool by exact name.

        Args:
            name: Tool name requested by the model
            arguments: Decoded tool arguments
            context: Caller identity for gating and per-user queries
            tool_call_id: Id of the call being answered

        Returns:
            ToolResult with JSON content and an optional chart
        """
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Unknown tool requested: {name}")
            return ToolResult.from_error(tool_call_id, f"Unknown tool: {name}")

        logger.debug(f"Executing tool: {name}")

        try:
            if handler.admin_only:
                require_admin(context, name)
            payload = await handler.func(arguments or {}, context)
        except ToolExecutionError as e:
            logger.warning(f"Tool {name} rejected: {e}")
            return ToolResult.from_error(tool_call_id, str(e))
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return ToolResult.from_error(tool_call_id, str(e))

        return ToolResult(
            tool_call_id=tool_call_id,
            content=serialize_result(payload),
            chart=extract_chart(payload),
        )
