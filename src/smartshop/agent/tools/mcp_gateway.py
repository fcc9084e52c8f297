"""
Remote Tool Gateway.

Spawns MCP tool servers as stdio subprocesses and routes tool calls to
them. Each server is reached through a fastmcp Client over a
StdioTransport; the gateway keeps a tool-name -> server index built
from each server's tools/list response.

Lifecycle:
    - connect_all() spawns every configured server. It is all-or-nothing:
      if one server fails, the servers already started by that call are
      shut down before the error propagates.
    - disconnect_all() is best-effort: a server that fails to shut down
      is logged and the rest are still stopped.
    - connect/disconnect are serialized by a single asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from fastmcp import Client
from fastmcp.client.transports import StdioTransport

from ..domain.entities import (
    ChatContext,
    ToolCall,
    ToolDefinition,
    ToolResult,
    UserRole,
)
from ..domain.ports import IToolBackend
from .registry import ADMIN_ONLY_MESSAGE, extract_chart

logger = logging.getLogger(__name__)


class RemoteToolError(Exception):
    """Error reaching or executing a remote tool."""

    def __init__(
        self,
        message: str,
        tool_name: str = "",
        server_name: str = "",
        recoverable: bool = True,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.tool_name = tool_name
        self.server_name = server_name
        self.recoverable = recoverable
        self.original_error = original_error


class UnknownToolError(RemoteToolError):
    """No connected server declares the tool."""


class ServerNotConnectedError(RemoteToolError):
    """The tool's server has been disconnected."""


@dataclass
class RemoteToolServerConfig:
    """Launch configuration for one tool server process.

    Attributes:
        name: Unique server name (e.g. 'products')
        command: Executable to launch
        args: Command-line arguments
        env: Environment overrides merged over the parent environment
        admin_only: Hide this server's tools from non-admin callers
    """

    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    admin_only: bool = False


@dataclass
class _Connection:
    config: RemoteToolServerConfig
    client: Any
    exit_stack: AsyncExitStack
    tools: list[ToolDefinition] = field(default_factory=list)


class RemoteToolGateway(IToolBackend):
    """Manages MCP tool server subprocesses.

    Usage:
        gateway = RemoteToolGateway(get_default_server_configs())
        async with gateway:
            tools = await gateway.list_tools(UserRole.CUSTOMER)
            text = await gateway.call_tool("search_products", {"query": "desk"})

    Architecture:
        - One fastmcp Client per server, kept open in an AsyncExitStack
        - Tool descriptors are listed once at connect time and cached
        - Duplicate tool names: the server connected last owns the name
    """

    def __init__(
        self,
        configs: Optional[list[RemoteToolServerConfig]] = None,
        caller_id_argument: Optional[str] = "customerId",
        client_factory: Any = None,
    ):
        """Initialize the gateway.

        Args:
            configs: Servers started by connect_all()
            caller_id_argument: Tool argument forced to the caller's user id
                for non-admin callers (None disables the override)
            client_factory: Builds a client from a config (tests inject fakes)
        """
        self.configs = list(configs or [])
        self.caller_id_argument = caller_id_argument
        self._client_factory = client_factory or self._create_client
        self._connections: dict[str, _Connection] = {}
        self._tool_to_server: dict[str, str] = {}
        # Tools ever served, kept after disconnect to report stale calls
        self._served_by: dict[str, str] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @staticmethod
    def _create_client(config: RemoteToolServerConfig) -> Client:
        env = {**os.environ, **config.env}
        transport = StdioTransport(
            command=config.command,
            args=list(config.args),
            env=env,
        )
        return Client(transport)

    async def _open(self, config: RemoteToolServerConfig) -> _Connection:
        """Spawn a server, complete the handshake and list its tools."""
        logger.info(f"Connecting to tool server: {config.name}")
        exit_stack = AsyncExitStack()
        try:
            client = self._client_factory(config)
            await exit_stack.enter_async_context(client)
            mcp_tools = await client.list_tools()
        except BaseException as e:
            await exit_stack.aclose()
            raise RemoteToolError(
                f"Failed to connect to tool server {config.name}: {e}",
                server_name=config.name,
                recoverable=False,
                original_error=e if isinstance(e, Exception) else None,
            ) from e

        tools = [
            ToolDefinition.from_json_schema(
                tool.name,
                tool.description or "",
                _input_schema(tool),
                admin_only=config.admin_only,
            )
            for tool in mcp_tools
        ]
        return _Connection(config=config, client=client, exit_stack=exit_stack, tools=tools)

    def _register(self, connection: _Connection) -> None:
        name = connection.config.name
        self._connections[name] = connection
        for tool in connection.tools:
            previous = self._tool_to_server.get(tool.name)
            if previous and previous != name:
                logger.warning(
                    f"Tool '{tool.name}' from server '{name}' shadows "
                    f"the one from server '{previous}'"
                )
            self._tool_to_server[tool.name] = name
            self._served_by[tool.name] = name
        logger.info(f"Connected to {name}, registered {len(connection.tools)} tools")

    async def _close(self, connection: _Connection) -> None:
        await connection.exit_stack.aclose()

    async def connect(self, config: RemoteToolServerConfig) -> None:
        """Connect a single server, replacing any live one with that name."""
        async with self._lock:
            existing = self._connections.pop(config.name, None)
            if existing is not None:
                self._unindex(config.name)
                await self._close(existing)
            self._register(await self._open(config))

    async def connect_all(
        self, configs: Optional[list[RemoteToolServerConfig]] = None
    ) -> None:
        """Connect every configured server, or none of them.

        Servers are started sequentially. On failure, the servers this
        call already started are shut down and the error is re-raised.

        Raises:
            RemoteToolError: If any server fails to start
        """
        configs = list(configs) if configs is not None else self.configs
        async with self._lock:
            opened: list[_Connection] = []
            try:
                for config in configs:
                    if config.name in self._connections:
                        logger.debug(f"Tool server {config.name} already connected")
                        continue
                    opened.append(await self._open(config))
            except BaseException:
                logger.error(
                    f"Tool server startup failed; shutting down "
                    f"{len(opened)} server(s) started so far"
                )
                for connection in opened:
                    await self._close_quietly(connection)
                raise

            for connection in opened:
                self._register(connection)

    async def _close_quietly(self, connection: _Connection) -> None:
        try:
            await self._close(connection)
        except Exception as e:
            logger.error(f"Error disconnecting from {connection.config.name}: {e}")

    def _unindex(self, server_name: str) -> None:
        """Drop a server's names, handing each to the latest live declarer."""
        removed = {t for t, s in self._tool_to_server.items() if s == server_name}
        for tool_name in removed:
            del self._tool_to_server[tool_name]

        # Connections iterate in connect order, so the last declarer wins
        for name, connection in self._connections.items():
            if name == server_name:
                continue
            for tool in connection.tools:
                if tool.name in removed:
                    self._tool_to_server[tool.name] = name
                    self._served_by[tool.name] = name

    async def disconnect(self, server_name: str) -> None:
        """Shut down one server.

        Names another live server also declares move to that server; the
        rest report 'server not connected'.
        """
        async with self._lock:
            connection = self._connections.pop(server_name, None)
            if connection is None:
                return
            self._unindex(server_name)
            await self._close_quietly(connection)
            logger.info(f"Disconnected from {server_name}")

    async def disconnect_all(self) -> None:
        """Shut down every server; failures are logged, not raised."""
        async with self._lock:
            for name, connection in list(self._connections.items()):
                await self._close_quietly(connection)
                logger.info(f"Disconnected from {name}")
            self._connections.clear()
            self._tool_to_server.clear()

    async def __aenter__(self) -> RemoteToolGateway:
        await self.connect_all()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect_all()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return bool(self._connections)

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tool_to_server

    def get_server_for_tool(self, tool_name: str) -> Optional[str]:
        return self._tool_to_server.get(tool_name)

    def get_status(self) -> dict[str, dict[str, Any]]:
        """Per-server connection state and owned tool count."""
        status: dict[str, dict[str, Any]] = {}
        for config in self.configs:
            status[config.name] = {"connected": False, "tool_count": 0}
        for name in self._connections:
            status[name] = {
                "connected": True,
                "tool_count": sum(1 for s in self._tool_to_server.values() if s == name),
            }
        return status

    async def list_tools(self, role: UserRole) -> list[ToolDefinition]:
        """Tools of connected servers visible to the role.

        A name shadowed by a later server is listed once, from its owner.
        """
        tools: list[ToolDefinition] = []
        for name, connection in self._connections.items():
            if connection.config.admin_only and role != UserRole.ADMIN:
                continue
            tools.extend(
                t for t in connection.tools if self._tool_to_server.get(t.name) == name
            )
        return tools

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def _resolve(self, tool_name: str) -> _Connection:
        server_name = self._tool_to_server.get(tool_name)
        if server_name is None:
            stale = self._served_by.get(tool_name)
            if stale is not None:
                raise ServerNotConnectedError(
                    f"Server not connected: {stale}", tool_name, stale
                )
            raise UnknownToolError(
                f"Unknown tool: {tool_name}", tool_name, recoverable=False
            )

        connection = self._connections.get(server_name)
        if connection is None:
            raise ServerNotConnectedError(
                f"Server not connected: {server_name}", tool_name, server_name
            )
        return connection

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> str:
        """Forward a call and return its first text block.

        Raises:
            UnknownToolError: No server declares the tool
            ServerNotConnectedError: The owning server was disconnected
            RemoteToolError: The call itself failed
        """
        connection = self._resolve(tool_name)

        try:
            result = await connection.client.call_tool_mcp(tool_name, arguments)
        except Exception as e:
            raise RemoteToolError(
                f"Tool execution failed: {e}",
                tool_name,
                connection.config.name,
                original_error=e,
            ) from e

        for block in result.content or []:
            if getattr(block, "type", None) == "text":
                return block.text

        return json.dumps(result.model_dump(mode="json"), default=str)

    async def execute_tool_call(self, tool_call: ToolCall) -> str:
        """Run a model tool call, rendering any failure as JSON."""
        try:
            arguments = tool_call.arguments
            if isinstance(arguments, str):
                arguments = json.loads(arguments) if arguments else {}
            return await self.call_tool(tool_call.name, arguments)
        except Exception as e:
            logger.error(f"Remote tool {tool_call.name} failed: {e}")
            return json.dumps({"error": str(e)})

    def _bind_caller(
        self, tool_name: str, arguments: dict[str, Any], context: ChatContext
    ) -> dict[str, Any]:
        """Pin the caller-id argument to the signed-in customer."""
        arg = self.caller_id_argument
        if not arg or context.is_admin:
            return arguments
        connection = self._connections.get(self._tool_to_server.get(tool_name, ""))
        if connection is None:
            return arguments
        for tool in connection.tools:
            if tool.name == tool_name and arg in tool.properties:
                return {**arguments, arg: context.user_id}
        return arguments

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ChatContext,
        tool_call_id: str = "",
    ) -> ToolResult:
        server_name = self._tool_to_server.get(name)
        connection = self._connections.get(server_name) if server_name else None
        if connection and connection.config.admin_only and not context.is_admin:
            return ToolResult.from_error(tool_call_id, ADMIN_ONLY_MESSAGE)

        content = await self.execute_tool_call(
            ToolCall(
                name=name,
                arguments=self._bind_caller(name, arguments or {}, context),
                id=tool_call_id,
            )
        )
        return ToolResult(
            tool_call_id=tool_call_id,
            content=content,
            chart=_chart_from_text(content),
        )


def _input_schema(tool: Any) -> dict[str, Any]:
    # Newer fastmcp releases expose input_schema and deprecate inputSchema
    schema = getattr(tool, "input_schema", None)
    if schema is None:
        schema = getattr(tool, "inputSchema", None)
    return schema or {}


def _chart_from_text(content: str) -> Optional[dict[str, Any]]:
    try:
        payload = json.loads(content)
    except (TypeError, ValueError):
        return None
    return extract_chart(payload)


def get_default_server_configs(
    python: Optional[str] = None,
    script: Optional[Path] = None,
    env: Optional[dict[str, str]] = None,
) -> list[RemoteToolServerConfig]:
    """Products, orders and analytics servers launched from tool_server.py.

    Analytics is admin-only.
    """
    python = python or sys.executable
    script = script or Path(__file__).resolve().parents[4] / "tool_server.py"
    env = dict(env or {})

    def server(group: str, admin_only: bool = False) -> RemoteToolServerConfig:
        return RemoteToolServerConfig(
            name=group,
            command=python,
            args=[str(script), "--group", group],
            env=env,
            admin_only=admin_only,
        )

    return [
        server("products"),
        server("orders"),
        server("analytics", admin_only=True),
    ]
