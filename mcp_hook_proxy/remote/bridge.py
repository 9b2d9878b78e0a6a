"""
Remote Server Bridge

Connects to a remote MCP server and re-exposes its tools on a local tool
server, with every call running through plugins and hooks:

Client → local server → [plugins / hooks] → remote MCP server (stdio/SSE/WebSocket)

Bring-up runs CONNECTING → DISCOVERING → REGISTERING → CONNECTED. Any failure
on the way closes what was opened and leaves the bridge DISCONNECTED.
"""

import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx
from fastmcp import FastMCP
from mcp import ClientSession
from mcp.shared.exceptions import McpError

from mcp_hook_proxy.config import RemoteProxyOptions, RemoteServerConfig, validate_remote_server_config
from mcp_hook_proxy.context import ToolCallContext
from mcp_hook_proxy.errors import (
    DiscoveryError,
    McpProxyError,
    ProxyConfigurationError,
    RemoteConnectionError,
    create_error_response,
)
from mcp_hook_proxy.proxy.engine import utc_now_iso
from mcp_hook_proxy.proxy.fastmcp_server import FastMCPToolServer
from mcp_hook_proxy.proxy.wrapper import ProxyWrapper
from mcp_hook_proxy.remote.transports import create_transport

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Bridge lifecycle state"""
    CREATED = "created"
    CONNECTING = "connecting"
    DISCOVERING = "discovering"
    REGISTERING = "registering"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True)
class RemoteToolDefinition:
    """Tool discovered on the remote server"""
    name: str
    description: Optional[str] = None
    input_schema: Dict[str, Any] = field(default_factory=dict)


def _remote_name(remote_server: Any) -> str:
    if isinstance(remote_server, RemoteServerConfig):
        return remote_server.display_name
    if isinstance(remote_server, dict) and remote_server.get("name"):
        return remote_server["name"]
    return "Remote Server"


def classify_connection_error(error: BaseException, transport: str) -> RemoteConnectionError:
    """Map a bring-up failure to a RemoteConnectionError category."""
    if isinstance(error, RemoteConnectionError):
        return error

    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        category = "timeout"
    elif isinstance(error, httpx.HTTPStatusError) and error.response.status_code in (401, 403):
        category = "authentication"
    elif isinstance(error, McpError):
        category = "protocol"
    else:
        category = "connection"

    return RemoteConnectionError(
        f"Failed to connect to remote MCP server: {error}",
        category,
        transport,
        cause=error
    )


class RemoteServerProxy:
    """
    Bridges a remote MCP server's tools onto a local tool server.

    Use connect()/disconnect() or ``async with``. A bridge connects once;
    create a new one to reconnect.
    """

    def __init__(self, options: RemoteProxyOptions, server: Optional[Any] = None):
        """
        Initialize the bridge. Performs no I/O.

        Args:
            options: Remote server config plus hooks, plugins and metadata
            server: Local tool server to register on. Defaults to a new
                FastMCP server wrapped in FastMCPToolServer.
        """
        self.options = options
        self.remote_name = _remote_name(options.remote_server)
        if server is None:
            server = FastMCPToolServer(FastMCP(
                name=options.proxy_server_name or f"Proxy for {self.remote_name}",
                version=options.proxy_server_version
            ))
        self.server = server
        self.wrapper = ProxyWrapper(server, options)
        self.config: Optional[RemoteServerConfig] = None
        self.session: Optional[ClientSession] = None
        self._state = ConnectionState.CREATED
        self._exit_stack: Optional[AsyncExitStack] = None
        self._remote_tools: Dict[str, RemoteToolDefinition] = {}

        logger.info(f"Remote MCP server proxy created for {self.remote_name}")

    @property
    def state(self) -> ConnectionState:
        return self._state

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    def get_proxy_server(self) -> Any:
        return self.server

    def get_remote_tools(self) -> Dict[str, RemoteToolDefinition]:
        return dict(self._remote_tools)

    async def connect(self) -> Any:
        """
        Connect to the remote server and register its tools locally.

        Returns:
            The local tool server

        Raises:
            ProxyConfigurationError: Invalid remote config, or the bridge was
                already used
            RemoteConnectionError: Transport or session setup failed
            DiscoveryError: Tool listing or local registration failed
        """
        # Validation runs before any transport is built
        config = validate_remote_server_config(self.options.remote_server)

        if self._state == ConnectionState.CONNECTED:
            return self.server
        if self._state != ConnectionState.CREATED:
            raise ProxyConfigurationError(
                f"Remote proxy cannot connect from state {self._state.value}",
                {"state": self._state.value}
            )

        self.config = config
        self._exit_stack = AsyncExitStack()

        try:
            await self.wrapper.initialize()
            await self._open_session()
            await self._discover_tools()
            self._register_tools()
        except Exception as e:
            await self._abort_bring_up()
            if isinstance(e, McpProxyError):
                raise
            raise classify_connection_error(e, config.transport) from e

        self._state = ConnectionState.CONNECTED
        logger.info(
            f"Connected to {self.remote_name} over {config.transport}; "
            f"proxying {len(self._remote_tools)} tools"
        )
        return self.server

    async def disconnect(self) -> None:
        """Close the remote session and destroy plugins."""
        if self._state != ConnectionState.CONNECTED:
            return

        self._state = ConnectionState.DISCONNECTED
        try:
            await self._exit_stack.aclose()
            logger.info(f"Disconnected from remote MCP server {self.remote_name}")
        except Exception as e:
            logger.error(f"Error during disconnect: {e}")
            raise
        finally:
            self.session = None
            self._exit_stack = None
            await self.wrapper.close()

    async def __aenter__(self) -> "RemoteServerProxy":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def _open_session(self) -> None:
        self._state = ConnectionState.CONNECTING
        logger.debug(f"Connecting to {self.remote_name} over {self.config.transport}")

        try:
            read_stream, write_stream = await self._exit_stack.enter_async_context(
                create_transport(self.config)
            )
            read_timeout = timedelta(seconds=self.config.timeout) if self.config.timeout else None
            self.session = await self._exit_stack.enter_async_context(
                ClientSession(read_stream, write_stream, read_timeout_seconds=read_timeout)
            )
            await self.session.initialize()
        except ProxyConfigurationError:
            raise
        except Exception as e:
            raise classify_connection_error(e, self.config.transport) from e

    async def _discover_tools(self) -> None:
        self._state = ConnectionState.DISCOVERING
        logger.debug("Discovering tools from remote server")

        try:
            response = await self.session.list_tools()
        except Exception as e:
            raise DiscoveryError(
                f"Failed to discover remote tools: {e}",
                self.config.transport,
                cause=e
            ) from e

        tools = response.tools or []
        if not tools:
            logger.warning("Remote server returned no tools")

        for tool in tools:
            self._remote_tools[tool.name] = RemoteToolDefinition(
                name=tool.name,
                description=tool.description,
                input_schema=dict(tool.inputSchema or {})
            )
            logger.debug(f"Found remote tool: {tool.name}")

        logger.info(f"Discovered {len(self._remote_tools)} tools from remote server")

    def _register_tools(self) -> None:
        self._state = ConnectionState.REGISTERING

        # Build every handler before touching the local server
        prepared = [
            (definition, self._create_handler(definition.name))
            for definition in self._remote_tools.values()
        ]

        for definition, handler in prepared:
            try:
                self.server.tool(
                    definition.name,
                    definition.input_schema,
                    handler,
                    description=definition.description or f"Proxied tool: {definition.name}"
                )
            except Exception as e:
                raise DiscoveryError(
                    f"Failed to register proxy tool '{definition.name}': {e}",
                    self.config.transport,
                    {"toolName": definition.name},
                    e
                ) from e
            logger.debug(f"Registered proxy tool: {definition.name}")

        logger.info(f"Set up {len(prepared)} proxy tools with plugin enhancement")

    async def _abort_bring_up(self) -> None:
        logger.error(f"Remote proxy bring-up failed in state {self._state.value}")
        self._state = ConnectionState.DISCONNECTED
        self._remote_tools.clear()
        self.session = None
        try:
            await self._exit_stack.aclose()
        except Exception as e:
            logger.error(f"Error closing remote transport: {e}")
        self._exit_stack = None
        await self.wrapper.close()

    def _create_handler(self, tool_name: str) -> Callable[..., Any]:
        engine = self.wrapper.engine

        async def handler(args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
            if self._state != ConnectionState.CONNECTED:
                error = ProxyConfigurationError(
                    f"Remote server {self.remote_name} is not connected",
                    {"toolName": tool_name, "state": self._state.value}
                )
                logger.warning(f"Rejected call to {tool_name}: bridge is {self._state.value}")
                return create_error_response(error)

            context = engine.create_context(tool_name, args if args is not None else {})
            context.metadata.update({
                "remoteServer": self.remote_name,
                "transport": self.config.transport,
            })
            return await engine.execute(tool_name, context.args, self._call_remote, context=context)

        handler.__name__ = tool_name
        return handler

    async def _call_remote(self, context: ToolCallContext) -> Dict[str, Any]:
        logger.debug(f"Calling remote tool {context.tool_name} (request {context.request_id})")
        if self.session is None:
            raise ProxyConfigurationError(
                f"Remote server {self.remote_name} is not connected",
                {"toolName": context.tool_name}
            )

        remote_result = await self.session.call_tool(context.tool_name, context.args)
        payload = remote_result.model_dump(by_alias=True, exclude_none=True, mode="json")
        payload["_meta"] = {
            **(payload.get("_meta") or {}),
            "requestId": context.request_id,
            "remoteServer": self.remote_name,
            "transport": self.config.transport,
            "processedAt": utc_now_iso(),
        }
        return payload


async def create_remote_server_proxy(
    options: RemoteProxyOptions,
    server: Optional[Any] = None
) -> RemoteServerProxy:
    """Create a bridge and connect it."""
    proxy = RemoteServerProxy(options, server)
    await proxy.connect()
    return proxy


async def create_sse_server_proxy(
    url: str,
    name: str = "SSE Server",
    headers: Optional[Dict[str, str]] = None,
    server: Optional[Any] = None,
    **options: Any
) -> RemoteServerProxy:
    """Convenience constructor for an HTTP/SSE remote server."""
    remote_server = {"transport": "sse", "url": url, "name": name, "headers": headers or {}}
    return await create_remote_server_proxy(
        RemoteProxyOptions(remote_server=remote_server, **options),
        server
    )


async def create_stdio_server_proxy(
    command: str,
    args: Optional[List[str]] = None,
    name: str = "STDIO Server",
    server: Optional[Any] = None,
    **options: Any
) -> RemoteServerProxy:
    """Convenience constructor for a remote server spawned as a child process."""
    remote_server = {"transport": "stdio", "command": command, "args": args or [], "name": name}
    return await create_remote_server_proxy(
        RemoteProxyOptions(remote_server=remote_server, **options),
        server
    )
