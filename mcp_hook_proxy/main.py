"""
MCP Hook Proxy - Main entry point

Connects to the remote MCP server named in the configuration and serves its
tools over stdio, with the configured plugins applied to every call.

Configuration is read from the YAML file at MCP_PROXY_CONFIG
(default config/proxy.yaml), e.g.:

    name: "My Proxy"
    remote_server:
      transport: stdio
      command: python
      args: ["-m", "my_server"]
    plugins:
      audit:
        path: "my_plugins.audit:AuditPlugin"
        options:
          level: info
"""

import asyncio
import importlib
import logging
from typing import List

from mcp_hook_proxy.config import PluginConfig, PluginEntryConfig, ProxyConfig, RemoteProxyOptions, load_config
from mcp_hook_proxy.errors import McpProxyError, PluginError, ProxyConfigurationError
from mcp_hook_proxy.middleware import setup_logging
from mcp_hook_proxy.plugins import PluginRegistration
from mcp_hook_proxy.remote import RemoteServerProxy

logger = logging.getLogger(__name__)


def load_plugin(name: str, entry: PluginEntryConfig) -> PluginRegistration:
    """
    Import and instantiate a plugin declared as "package.module:ClassName".

    Raises:
        PluginError: If the path is malformed or the import fails
    """
    module_name, _, class_name = entry.path.partition(":")
    if not module_name or not class_name:
        raise PluginError(
            f"Plugin path must look like 'package.module:ClassName', got '{entry.path}'",
            name,
            "register"
        )

    try:
        plugin_class = getattr(importlib.import_module(module_name), class_name)
    except (ImportError, AttributeError) as e:
        raise PluginError(f"Failed to load plugin '{name}' from {entry.path}: {e}", name, "register", cause=e) from e

    config = PluginConfig(**entry.model_dump(exclude={"path"}, exclude_unset=True))
    logger.info(f"Loaded plugin {name} from {entry.path}")
    return PluginRegistration(plugin=plugin_class(), config=config)


def load_plugins(config: ProxyConfig) -> List[PluginRegistration]:
    return [load_plugin(name, entry) for name, entry in config.plugins.items()]


def build_options(config: ProxyConfig) -> RemoteProxyOptions:
    if config.remote_server is None:
        raise ProxyConfigurationError("No remote_server configured")

    return RemoteProxyOptions(
        remote_server=config.remote_server,
        proxy_server_name=config.name,
        proxy_server_version=config.version,
        metadata=config.metadata,
        plugins=load_plugins(config),
        plugin_config=config.plugin_config,
        debug=config.settings.debug
    )


async def run_proxy(config: ProxyConfig) -> None:
    """Bridge the remote server and serve it over stdio until the client disconnects."""
    async with RemoteServerProxy(build_options(config)) as proxy:
        logger.info(f"Serving {len(proxy.get_remote_tools())} proxied tools over stdio")
        await proxy.get_proxy_server().run_async(transport="stdio")


def main() -> None:
    config = load_config()
    setup_logging(config.settings.log_level)
    logger.info(f"Starting {config.name} v{config.version}")

    try:
        asyncio.run(run_proxy(config))
    except McpProxyError as e:
        logger.error(f"Proxy failed: {e}")
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        logger.info("Proxy stopped")


if __name__ == "__main__":
    main()
