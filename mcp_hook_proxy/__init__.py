"""
MCP Hook Proxy

Runs plugins and integrator hooks around every tool call of an MCP server,
local or remote.
"""

from mcp_hook_proxy.config import (
    PluginConfig,
    ProxyWrapperOptions,
    RemoteProxyOptions,
    RemoteServerConfig,
)
from mcp_hook_proxy.context import ProxyHooks, ToolCallContext, ToolCallResult
from mcp_hook_proxy.plugins import BasePlugin, PluginManager, PluginRegistration
from mcp_hook_proxy.proxy import HookExecutionEngine, ProxyWrapper, wrap_with_proxy
from mcp_hook_proxy.remote import RemoteServerProxy, create_remote_server_proxy

__version__ = "1.0.0"

__all__ = [
    "BasePlugin",
    "HookExecutionEngine",
    "PluginConfig",
    "PluginManager",
    "PluginRegistration",
    "ProxyHooks",
    "ProxyWrapper",
    "ProxyWrapperOptions",
    "RemoteProxyOptions",
    "RemoteServerConfig",
    "RemoteServerProxy",
    "ToolCallContext",
    "ToolCallResult",
    "create_remote_server_proxy",
    "wrap_with_proxy",
]
