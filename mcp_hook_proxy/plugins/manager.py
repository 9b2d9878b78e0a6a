"""
Plugin Manager

Owns plugin registration, lifecycle and per-call fan-out:
1. register() validates and stores plugins in registration order
2. initialize_all() initializes them in that order; failures are isolated
3. execute_before_hooks() / execute_after_hooks() fan out on every tool call
4. destroy() tears plugins down in reverse registration order

Registration order is the execution order. The priority setting is
reported by list_plugins() but does not reorder anything.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from mcp_hook_proxy.config import PluginConfig
from mcp_hook_proxy.context import ToolCallContext, ToolCallResult, coerce_result, maybe_await
from mcp_hook_proxy.errors import HookExecutionError, PluginError
from mcp_hook_proxy.middleware.logging import get_plugin_logger
from mcp_hook_proxy.plugins.base import (
    BasePlugin,
    PluginErrorInfo,
    PluginInitContext,
    PluginState,
    PluginStats,
    read_only,
)

logger = logging.getLogger(__name__)

SEMVER_PATTERN = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


def parse_version(version: str) -> tuple:
    match = SEMVER_PATTERN.match(version or "")
    if not match:
        return ()
    return tuple(int(part) for part in match.groups())


@dataclass
class PluginEntry:
    """Registered plugin with its effective configuration and lifecycle state"""
    plugin: Any
    config: PluginConfig
    state: PluginState = PluginState.UNINITIALIZED
    healthy: bool = True
    last_health_check: float = 0.0
    failure: Optional[BaseException] = None

    @property
    def name(self) -> str:
        return self.plugin.name

    @property
    def active(self) -> bool:
        return self.config.enabled and self.state == PluginState.INITIALIZED

    def applies_to(self, tool_name: str) -> bool:
        if tool_name in self.config.exclude_tools:
            return False
        if self.config.include_tools:
            return tool_name in self.config.include_tools
        return True


class PluginManager:
    """Ordered plugin registry and fan-out"""

    def __init__(self, wrapper_version: str, global_config: Optional[Dict[str, Any]] = None):
        """
        Initialize plugin manager.

        Args:
            wrapper_version: Proxy version reported to plugins
            global_config: Global configuration shared read-only with plugins
        """
        self.wrapper_version = wrapper_version
        self.global_config = dict(global_config or {})
        # dicts keep insertion order, which is the execution order
        self._entries: Dict[str, PluginEntry] = {}

    async def register(self, plugin: Any, config: Optional[PluginConfig] = None) -> None:
        """
        Register a plugin.

        The plugin is not part of fan-out until initialize_all() succeeds for it.

        Args:
            plugin: Plugin instance
            config: Configuration overriding the plugin's own config

        Raises:
            PluginError: If the plugin is invalid, already registered, or the
                plugin limit is reached
        """
        self._validate_plugin(plugin)

        if plugin.name in self._entries:
            raise PluginError(f"Plugin '{plugin.name}' is already registered", plugin.name, "register")

        max_plugins = self.global_config.get("max_plugins")
        if max_plugins and len(self._entries) >= max_plugins:
            raise PluginError(
                f"Maximum number of plugins ({max_plugins}) exceeded",
                plugin.name,
                "register",
                {"maxPlugins": max_plugins}
            )

        merged = self._merge_config(plugin, config)
        self._entries[plugin.name] = PluginEntry(plugin=plugin, config=merged)
        if isinstance(plugin, BasePlugin):
            plugin.config = merged
        logger.info(f"Registered plugin: {plugin.name} v{plugin.version}")

    async def unregister(self, plugin_name: str) -> None:
        """Destroy and remove a single plugin."""
        entry = self._entries.get(plugin_name)
        if entry is None:
            raise PluginError(f"Plugin '{plugin_name}' is not registered", plugin_name, "cleanup")

        await self._destroy_entry(entry)
        del self._entries[plugin_name]
        logger.info(f"Unregistered plugin: {plugin_name}")

    def get_plugin(self, name: str) -> Optional[Any]:
        entry = self._entries.get(name)
        return entry.plugin if entry else None

    def get_all_plugins(self) -> List[Any]:
        return [entry.plugin for entry in self._entries.values()]

    def get_state(self, name: str) -> Optional[PluginState]:
        entry = self._entries.get(name)
        return entry.state if entry else None

    def get_execution_order(self) -> List[Any]:
        """Plugins taking part in fan-out, in registration order."""
        return [entry.plugin for entry in self._entries.values() if entry.active]

    def list_plugins(self) -> Dict[str, Dict[str, Any]]:
        """
        List all registered plugins.

        Returns:
            Dictionary with plugin info, in registration order
        """
        result = {}
        for name, entry in self._entries.items():
            result[name] = {
                "version": entry.plugin.version,
                "state": entry.state.value,
                "enabled": entry.config.enabled,
                "priority": entry.config.priority,
                "healthy": entry.healthy,
            }
        return result

    def missing_dependencies(self) -> Dict[str, List[str]]:
        """Map of plugin name to required plugins that are not registered."""
        missing = {}
        for name, entry in self._entries.items():
            metadata = getattr(entry.plugin, "metadata", None)
            required = getattr(metadata, "dependencies", None) or []
            absent = [dep for dep in required if dep not in self._entries]
            if absent:
                missing[name] = absent
        return missing

    async def initialize_all(self) -> None:
        """
        Initialize every enabled plugin in registration order.

        A plugin whose initialize() raises, whose dependencies are missing, or
        which needs a newer wrapper is marked failed and excluded from fan-out
        for the rest of the registry's life. Other plugins are unaffected.
        """
        loaded_plugins = list(self._entries.keys())
        global_config = read_only(self.global_config)
        missing = self.missing_dependencies()

        for name, entry in self._entries.items():
            if not entry.config.enabled or entry.state != PluginState.UNINITIALIZED:
                continue

            if name in missing:
                self._mark_failed(entry, PluginError(
                    f"Plugin '{name}' requires missing dependencies: {missing[name]}",
                    name,
                    "initialize",
                    {"missing": missing[name]}
                ))
                continue

            required_version = getattr(getattr(entry.plugin, "metadata", None), "min_wrapper_version", None)
            if required_version and parse_version(self.wrapper_version) < parse_version(required_version):
                self._mark_failed(entry, PluginError(
                    f"Plugin '{name}' requires wrapper version {required_version}, running {self.wrapper_version}",
                    name,
                    "initialize"
                ))
                continue

            initialize = getattr(entry.plugin, "initialize", None)
            if initialize is not None:
                init_context = PluginInitContext(
                    wrapper_version=self.wrapper_version,
                    loaded_plugins=[p for p in loaded_plugins if p != name],
                    global_config=global_config,
                    logger=get_plugin_logger(name, debug=entry.config.debug)
                )
                try:
                    await maybe_await(initialize(init_context))
                except Exception as e:
                    self._mark_failed(entry, PluginError(
                        f"Failed to initialize plugin '{name}': {e}",
                        name,
                        "initialize",
                        cause=e
                    ))
                    continue

            entry.state = PluginState.INITIALIZED
            logger.info(f"Initialized plugin: {name}")

        if self.global_config.get("enable_health_checks"):
            await self.health_check()

    async def execute_before_hooks(self, context: ToolCallContext) -> Optional[ToolCallResult]:
        """
        Run before_tool_call on active plugins in registration order.

        Returns:
            The first non-empty result (short-circuit), or None

        Raises:
            HookExecutionError: If a plugin hook raised
        """
        for entry in self._active_entries(context.tool_name):
            hook = getattr(entry.plugin, "before_tool_call", None)
            if hook is None:
                continue
            try:
                result = coerce_result(await maybe_await(hook(context)))
            except Exception as e:
                await self._handle_hook_error(entry, "before_tool_call", e, context)
                raise HookExecutionError(
                    f"Plugin error: {e}",
                    "before_tool_call",
                    context.tool_name,
                    {"requestId": context.request_id, "pluginName": entry.name},
                    e
                ) from e

            if result is not None:
                logger.debug(f"Plugin {entry.name} short-circuited tool call {context.tool_name}")
                return result
        return None

    async def execute_after_hooks(self, context: ToolCallContext, result: ToolCallResult) -> ToolCallResult:
        """
        Run after_tool_call on active plugins in registration order, each
        receiving the previous plugin's result.

        Raises:
            HookExecutionError: If a plugin hook raised
        """
        current = result
        for entry in self._active_entries(context.tool_name):
            hook = getattr(entry.plugin, "after_tool_call", None)
            if hook is None:
                continue
            try:
                replaced = coerce_result(await maybe_await(hook(context, current)))
            except Exception as e:
                await self._handle_hook_error(entry, "after_tool_call", e, context)
                raise HookExecutionError(
                    f"Plugin error: {e}",
                    "after_tool_call",
                    context.tool_name,
                    {"requestId": context.request_id, "pluginName": entry.name},
                    e
                ) from e

            if replaced is not None:
                current = replaced
        return current

    async def health_check(self) -> Dict[str, bool]:
        """
        Run health checks; plugins without one report their last known health.

        Unhealthy plugins are skipped by fan-out until a later check passes.
        """
        results = {}
        for name, entry in self._entries.items():
            check = getattr(entry.plugin, "health_check", None)
            if entry.active and check is not None:
                try:
                    entry.healthy = bool(await maybe_await(check()))
                except Exception as e:
                    logger.error(f"Health check failed for plugin {name}: {e}")
                    entry.healthy = False
                entry.last_health_check = time.time()
                if not entry.healthy:
                    logger.warning(f"Plugin {name} failed health check")
            results[name] = entry.healthy
        return results

    async def get_aggregated_stats(self) -> PluginStats:
        """Aggregate statistics of every plugin exposing get_stats()."""
        stats = PluginStats(last_activity=0.0)
        total_processing_time = 0.0

        for name, entry in self._entries.items():
            get_stats = getattr(entry.plugin, "get_stats", None)
            if get_stats is None:
                continue
            try:
                plugin_stats = await maybe_await(get_stats())
            except Exception as e:
                logger.error(f"Failed to get stats for plugin {name}: {e}")
                continue
            stats.calls_processed += plugin_stats.calls_processed
            stats.errors_encountered += plugin_stats.errors_encountered
            total_processing_time += plugin_stats.average_processing_time * plugin_stats.calls_processed
            stats.last_activity = max(stats.last_activity, plugin_stats.last_activity)

        if stats.calls_processed > 0:
            stats.average_processing_time = total_processing_time / stats.calls_processed
        return stats

    async def destroy(self) -> None:
        """Destroy all plugins in reverse registration order."""
        for entry in reversed(list(self._entries.values())):
            await self._destroy_entry(entry)
        self._entries.clear()

    def _active_entries(self, tool_name: str) -> List[PluginEntry]:
        return [
            entry for entry in self._entries.values()
            if entry.active and entry.healthy and entry.applies_to(tool_name)
        ]

    def _mark_failed(self, entry: PluginEntry, error: PluginError) -> None:
        logger.error(f"Plugin {entry.name} failed to initialize: {error.message}")
        entry.state = PluginState.FAILED
        entry.healthy = False
        entry.failure = error

    async def _handle_hook_error(
        self,
        entry: PluginEntry,
        phase: str,
        error: Exception,
        context: ToolCallContext
    ) -> None:
        logger.error(f"Plugin {entry.name} error in {phase}: {error}")
        on_error = getattr(entry.plugin, "on_error", None)
        if on_error is None:
            return
        try:
            await maybe_await(on_error(PluginErrorInfo(entry.name, phase, error, context)))
        except Exception as handler_error:
            logger.error(f"Plugin {entry.name} error handler failed: {handler_error}")

    async def _destroy_entry(self, entry: PluginEntry) -> None:
        if entry.state == PluginState.DESTROYED:
            return
        destroy = getattr(entry.plugin, "destroy", None)
        if destroy is not None:
            try:
                await maybe_await(destroy())
            except Exception as e:
                logger.error(f"Error destroying plugin {entry.name}: {e}", exc_info=True)
        entry.state = PluginState.DESTROYED

    @staticmethod
    def _validate_plugin(plugin: Any) -> None:
        name = getattr(plugin, "name", None)
        version = getattr(plugin, "version", None)
        if not name or not isinstance(name, str):
            raise PluginError("Plugin must have a valid name", str(name), "register")
        if not version or not isinstance(version, str):
            raise PluginError("Plugin must have a valid version", name, "register")
        if not SEMVER_PATTERN.match(version):
            raise PluginError(
                "Plugin version must follow semantic versioning (x.y.z)",
                name,
                "register",
                {"version": version}
            )

    @staticmethod
    def _merge_config(plugin: Any, config: Optional[PluginConfig]) -> PluginConfig:
        merged: Dict[str, Any] = {}
        for source in (getattr(plugin, "config", None), config):
            if source is None:
                continue
            if isinstance(source, PluginConfig):
                merged.update(source.model_dump(exclude_unset=True))
            else:
                merged.update(source)
        return PluginConfig(**merged)
