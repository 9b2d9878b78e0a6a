"""
Remote MCP Server Bridge Module

Re-exposes the tools of a remote MCP server locally through the hook pipeline.
"""

from mcp_hook_proxy.remote.bridge import (
    ConnectionState,
    RemoteServerProxy,
    RemoteToolDefinition,
    create_remote_server_proxy,
    create_sse_server_proxy,
    create_stdio_server_proxy,
)
from mcp_hook_proxy.remote.transports import create_transport

__all__ = [
    "ConnectionState",
    "RemoteServerProxy",
    "RemoteToolDefinition",
    "create_remote_server_proxy",
    "create_sse_server_proxy",
    "create_stdio_server_proxy",
    "create_transport",
]
