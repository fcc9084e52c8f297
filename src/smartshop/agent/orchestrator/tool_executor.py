"""
Tool Executor.

Dispatch boundary between the orchestrator and the tool backends.
Routes each call to the backend that declares the tool and guarantees
that every call produces a ToolResult, never an exception.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..domain.entities import ChatContext, ToolCall, ToolDefinition, ToolResult, UserRole
from ..domain.ports import IToolBackend

logger = logging.getLogger(__name__)

RESULT_PREVIEW_CHARS = 200


class ToolExecutor:
    """Executes tool calls with error handling.

    Wraps one or more tool backends (the local ToolRegistry, the
    RemoteToolGateway, or both). The visible tool set is the union of
    the backends' sets; when two backends declare the same name, the
    first backend wins.

    Usage:
        executor = ToolExecutor(registry)

        tools = await executor.list_tools(context.user_role)
        result = await executor.execute(tool_call, context)

    Architecture:
        - Delegates to IToolBackend for actual execution
        - Catches all exceptions and converts them to {"error": ...} content
        - Logs execution start and failures
    """

    def __init__(self, *backends: IToolBackend):
        """Initialize the tool executor.

        Args:
            backends: Backends to query, in priority order
        """
        if not backends:
            raise ValueError("ToolExecutor requires at least one tool backend")
        self.backends = list(backends)
        self._routes: dict[str, IToolBackend] = {}

    async def list_tools(self, role: UserRole) -> list[ToolDefinition]:
        """Tools visible to the role across all backends."""
        tools: list[ToolDefinition] = []
        seen: set[str] = set()
        for backend in self.backends:
            for tool in await backend.list_tools(role):
                if tool.name in seen:
                    logger.debug(f"Tool '{tool.name}' already provided, skipping duplicate")
                    continue
                seen.add(tool.name)
                self._routes[tool.name] = backend
                tools.append(tool)
        return tools

    async def _route(self, name: str) -> IToolBackend:
        backend = self._routes.get(name)
        if backend is not None:
            return backend
        # Admin view is the superset; the backend re-checks the caller's role
        for candidate in self.backends:
            if any(t.name == name for t in await candidate.list_tools(UserRole.ADMIN)):
                self._routes[name] = candidate
                return candidate
        return self.backends[0]

    async def execute(self, tool_call: ToolCall, context: ChatContext) -> ToolResult:
        """Execute a tool call, rendering any failure into the result.

        Args:
            tool_call: Tool call requested by the model
            context: Caller identity for gating and per-user queries

        Returns:
            ToolResult answering ``tool_call.id``
        """
        logger.info(f"Executing tool: {tool_call.name}")

        try:
            arguments: Any = tool_call.arguments
            if isinstance(arguments, str):
                arguments = json.loads(arguments) if arguments else {}
            backend = await self._route(tool_call.name)
            result = await backend.execute(
                tool_call.name, arguments or {}, context, tool_call_id=tool_call.id
            )
        except Exception as e:
            logger.error(f"Tool execution failed: {e}")
            return ToolResult.from_error(tool_call.id, str(e))

        if result.tool_call_id != tool_call.id:
            result.tool_call_id = tool_call.id

        logger.debug(
            f"Tool {tool_call.name} result: {result.content[:RESULT_PREVIEW_CHARS]}"
        )
        return result

    async def execute_all(
        self, tool_calls: list[ToolCall], context: ChatContext
    ) -> list[ToolResult]:
        """Execute tool calls sequentially, in call order.

        A failed call does not stop execution of subsequent calls.
        """
        return [await self.execute(tool_call, context) for tool_call in tool_calls]
