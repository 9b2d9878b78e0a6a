"""
Interception installer.

ProxyWrapper exposes the same registration interface as the tool server it
holds. Every tool registered through it is forwarded to the server with a
handler that runs the call through the HookExecutionEngine.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from mcp_hook_proxy.config import ProxyWrapperOptions
from mcp_hook_proxy.errors import ProxyConfigurationError
from mcp_hook_proxy.middleware.logging import enable_debug_logging
from mcp_hook_proxy.plugins.base import PluginRegistration
from mcp_hook_proxy.plugins.manager import PluginManager
from mcp_hook_proxy.proxy.engine import HookExecutionEngine

logger = logging.getLogger(__name__)

WRAPPER_VERSION = "1.0.0"

# Set on a wrapped server; holds its ProxyWrapper
PROXY_MARKER = "_mcp_hook_proxy"


@dataclass(frozen=True)
class UntypedRegistration:
    """tool(name, handler)"""
    name: str
    handler: Callable[..., Any]
    description: Optional[str] = None


@dataclass(frozen=True)
class SchemaRegistration:
    """tool(name, schema, handler)"""
    name: str
    schema: Dict[str, Any]
    handler: Callable[..., Any]
    description: Optional[str] = None


Registration = Union[UntypedRegistration, SchemaRegistration]


def resolve_registration(
    name: str,
    schema_or_handler: Any,
    handler: Optional[Callable[..., Any]] = None,
    description: Optional[str] = None
) -> Registration:
    """
    Resolve which registration form was used.

    Raises:
        ProxyConfigurationError: If no callable handler was given
    """
    if not name or not isinstance(name, str):
        raise ProxyConfigurationError("Tool name must be a non-empty string", {"name": name})

    if handler is None:
        if not callable(schema_or_handler):
            raise ProxyConfigurationError(
                f"Tool '{name}' registered without a callable handler",
                {"toolName": name}
            )
        return UntypedRegistration(name, schema_or_handler, description)

    if not callable(handler):
        raise ProxyConfigurationError(
            f"Tool '{name}' handler is not callable",
            {"toolName": name}
        )
    return SchemaRegistration(name, schema_or_handler, handler, description)


class ProxyWrapper:
    """
    Decorator around a tool server.

    Tools registered through tool() run through the plugin and hook
    pipeline. Any other attribute is read from the wrapped server.
    """

    def __init__(self, server: Any, options: Optional[ProxyWrapperOptions] = None):
        """
        Initialize proxy wrapper.

        Args:
            server: Tool server exposing tool(name, handler) / tool(name, schema, handler)
            options: Hooks, plugins and metadata applied to every call
        """
        if server is None or not callable(getattr(server, "tool", None)):
            raise ProxyConfigurationError("Server must expose a callable tool() registration method")

        self.server = server
        self.options = options or ProxyWrapperOptions()
        self.plugin_manager: Optional[PluginManager] = None
        if self.options.plugin_config.enabled:
            self.plugin_manager = PluginManager(
                WRAPPER_VERSION,
                self.options.plugin_config.model_dump()
            )
        self.engine = HookExecutionEngine(
            plugin_manager=self.plugin_manager,
            hooks=self.options.hooks,
            metadata=self.options.metadata
        )
        self.registrations: Dict[str, Registration] = {}
        self._closed = False
        # Resolved once wrap_with_proxy finished initializing
        self._ready: Optional[asyncio.Future] = None

        if self.options.debug:
            enable_debug_logging()

    async def initialize(self) -> None:
        """Register and initialize the configured plugins."""
        if self.plugin_manager is None:
            if self.options.plugins:
                logger.warning("Plugin system disabled; ignoring configured plugins")
            return

        for item in self.options.plugins:
            if isinstance(item, PluginRegistration):
                await self.plugin_manager.register(item.plugin, item.config)
            else:
                await self.plugin_manager.register(item)

        await self.plugin_manager.initialize_all()
        logger.info(
            f"Proxy wrapper ready with {len(self.plugin_manager.get_execution_order())} active plugins"
        )

    def tool(
        self,
        name: str,
        schema_or_handler: Any,
        handler: Optional[Callable[..., Any]] = None,
        *,
        description: Optional[str] = None
    ) -> Any:
        """
        Register a tool on the wrapped server.

        Accepts tool(name, handler) and tool(name, schema, handler).
        """
        registration = resolve_registration(name, schema_or_handler, handler, description)
        return self.register(registration)

    def register(self, registration: Registration) -> Any:
        """Forward one resolved registration to the wrapped server."""
        if registration.name in self.registrations:
            logger.warning(f"Tool {registration.name} registered again; replacing previous handler")
        self.registrations[registration.name] = registration

        intercepted = self.intercept(registration.name, registration.handler)
        logger.debug(f"Registering intercepted tool: {registration.name}")

        if isinstance(registration, SchemaRegistration):
            return self.server.tool(
                registration.name,
                registration.schema,
                intercepted,
                description=registration.description
            )
        return self.server.tool(registration.name, intercepted, description=registration.description)

    def intercept(self, tool_name: str, handler: Callable[..., Any]) -> Callable[..., Any]:
        """Build the handler the server calls for tool_name."""

        async def intercepted(args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
            return await self.engine.execute(
                tool_name,
                args if args is not None else {},
                lambda context: handler(context.args)
            )

        intercepted.__name__ = tool_name
        return intercepted

    async def close(self) -> None:
        """Destroy plugins. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self.plugin_manager is not None:
            await self.plugin_manager.destroy()
        logger.info("Proxy wrapper closed")

    async def __aenter__(self) -> "ProxyWrapper":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __getattr__(self, name: str) -> Any:
        # Only called for attributes not found on the wrapper itself
        server = self.__dict__.get("server")
        if server is None:
            raise AttributeError(name)
        return getattr(server, name)


async def wrap_with_proxy(server: Any, options: Optional[ProxyWrapperOptions] = None) -> ProxyWrapper:
    """
    Wrap a tool server so every tool registered afterwards runs through hooks
    and plugins.

    Wrapping is done once per server. Calling this again with the same server,
    or with a wrapper, returns the existing wrapper and ignores options.

    Args:
        server: Tool server to wrap
        options: Proxy wrapper options

    Returns:
        Initialized ProxyWrapper
    """
    if isinstance(server, ProxyWrapper):
        logger.warning("Server is already a proxy wrapper; skipping")
        return server

    existing = getattr(server, PROXY_MARKER, None)
    if isinstance(existing, ProxyWrapper):
        logger.warning("Server is already wrapped with proxy; skipping")
        if existing._ready is not None:
            await asyncio.shield(existing._ready)
        return existing

    # Marker is set before the first await so concurrent calls see it
    wrapper = ProxyWrapper(server, options)
    wrapper._ready = asyncio.get_running_loop().create_future()
    setattr(server, PROXY_MARKER, wrapper)
    try:
        await wrapper.initialize()
    except BaseException as e:
        delattr(server, PROXY_MARKER)
        if isinstance(e, asyncio.CancelledError):
            wrapper._ready.cancel()
        else:
            wrapper._ready.set_exception(e)
            # Retrieved here; concurrent callers re-raise it
            wrapper._ready.exception()
        raise
    wrapper._ready.set_result(None)
    return wrapper
