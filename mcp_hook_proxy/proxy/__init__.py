"""
Tool Call Interception Module

Runs every tool call through plugins and integrator hooks before forwarding
it to the real tool.
"""

from mcp_hook_proxy.proxy.engine import HookExecutionEngine
from mcp_hook_proxy.proxy.wrapper import (
    ProxyWrapper,
    SchemaRegistration,
    UntypedRegistration,
    resolve_registration,
    wrap_with_proxy,
)

__all__ = [
    "HookExecutionEngine",
    "ProxyWrapper",
    "SchemaRegistration",
    "UntypedRegistration",
    "resolve_registration",
    "wrap_with_proxy",
]
