"""Tool system for the SmartShop assistant.

Provides:
- Local tool registry with role gating
- The commerce tool catalog and its chart descriptors
- Remote tool gateway for MCP tool server processes
"""

from .catalog import CommerceTools, create_tool_registry
from .mcp_gateway import (
    RemoteToolError,
    RemoteToolGateway,
    RemoteToolServerConfig,
    ServerNotConnectedError,
    UnknownToolError,
    get_default_server_configs,
)
from .registry import ADMIN_ONLY_MESSAGE, ToolExecutionError, ToolHandler, ToolRegistry

__all__ = [
    "ADMIN_ONLY_MESSAGE",
    "CommerceTools",
    "create_tool_registry",
    "RemoteToolError",
    "RemoteToolGateway",
    "RemoteToolServerConfig",
    "ServerNotConnectedError",
    "UnknownToolError",
    "get_default_server_configs",
    "ToolExecutionError",
    "ToolHandler",
    "ToolRegistry",
]
