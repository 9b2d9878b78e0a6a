"""
Client transports for reaching a remote MCP server.

Each factory returns the MCP SDK's async context manager, which yields a
(read_stream, write_stream) pair for ClientSession. Nothing is opened until
the context manager is entered.
"""

import logging
from typing import Any, AsyncContextManager, Tuple

from mcp import StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.websocket import websocket_client

from mcp_hook_proxy.config import RemoteServerConfig
from mcp_hook_proxy.errors import ProxyConfigurationError

logger = logging.getLogger(__name__)

TransportStreams = AsyncContextManager[Tuple[Any, Any]]


def create_stdio_transport(config: RemoteServerConfig) -> TransportStreams:
    """Spawn the configured command and talk to it over stdin/stdout."""
    logger.debug(f"Creating stdio transport: {config.command} {' '.join(config.args)}")
    params = StdioServerParameters(
        command=config.command,
        args=list(config.args),
        env=dict(config.env) or None,  # None keeps the SDK's default environment
        cwd=config.cwd
    )
    return stdio_client(params)


def create_sse_transport(config: RemoteServerConfig) -> TransportStreams:
    logger.debug(f"Creating SSE transport: {config.url}")
    kwargs = {"headers": dict(config.headers) or None}
    if config.timeout is not None:
        kwargs["timeout"] = config.timeout
    return sse_client(config.url, **kwargs)


def create_websocket_transport(config: RemoteServerConfig) -> TransportStreams:
    logger.debug(f"Creating WebSocket transport: {config.url}")
    if config.headers:
        logger.warning("WebSocket transport does not support custom headers; ignoring them")
    return websocket_client(config.url)


TRANSPORT_FACTORIES = {
    "stdio": create_stdio_transport,
    "sse": create_sse_transport,
    "websocket": create_websocket_transport,
}


def create_transport(config: RemoteServerConfig) -> TransportStreams:
    """
    Build the transport for a validated remote server config.

    Raises:
        ProxyConfigurationError: If the transport kind is unsupported
    """
    factory = TRANSPORT_FACTORIES.get(config.transport)
    if factory is None:
        raise ProxyConfigurationError(
            f"Unsupported transport type: {config.transport}",
            {"transport": config.transport}
        )
    return factory(config)
