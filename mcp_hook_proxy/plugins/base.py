"""
Plugin contract for the MCP hook proxy.

A plugin is any object with a ``name`` and a semver ``version``. Every other
method is optional and detected at call time:

    async def initialize(self, context: PluginInitContext) -> None
    async def before_tool_call(self, context: ToolCallContext) -> Optional[ToolCallResult]
    async def after_tool_call(self, context: ToolCallContext, result: ToolCallResult) -> ToolCallResult
    async def on_error(self, error: PluginErrorInfo) -> None
    async def health_check(self) -> bool
    async def get_stats(self) -> PluginStats
    async def destroy(self) -> None

BasePlugin provides defaults for the lifecycle and statistics methods.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from mcp_hook_proxy.config import PluginConfig
from mcp_hook_proxy.context import ToolCallContext


class PluginState(str, Enum):
    """Plugin lifecycle state"""
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    FAILED = "failed"
    DESTROYED = "destroyed"


@dataclass
class PluginMetadata:
    """Descriptive plugin metadata"""
    description: Optional[str] = None
    author: Optional[str] = None
    homepage: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)  # names of required plugins
    optional_dependencies: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    min_wrapper_version: Optional[str] = None


@dataclass
class PluginStats:
    """Plugin runtime statistics"""
    calls_processed: int = 0
    errors_encountered: int = 0
    average_processing_time: float = 0.0  # milliseconds
    last_activity: float = field(default_factory=time.time)
    custom_metrics: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PluginInitContext:
    """Read-only context passed to every plugin's initialize()"""
    wrapper_version: str
    loaded_plugins: List[str]
    global_config: Mapping[str, Any]
    logger: logging.LoggerAdapter


@dataclass
class PluginErrorInfo:
    """Passed to a plugin's on_error() when one of its hooks raised"""
    plugin_name: str
    phase: str  # "before_tool_call" or "after_tool_call"
    error: BaseException
    context: ToolCallContext


@dataclass
class PluginRegistration:
    """A plugin paired with configuration overriding its own"""
    plugin: Any
    config: Optional[PluginConfig] = None


def read_only(config: Dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(config))


class BasePlugin:
    """
    Base class for easier plugin development.

    Subclasses set ``name`` and ``version`` and implement before_tool_call
    and/or after_tool_call.
    """

    name: str = ""
    version: str = ""
    metadata: Optional[PluginMetadata] = None
    config: Optional[PluginConfig] = None

    def __init__(self):
        self.stats = PluginStats()
        self.logger: Optional[logging.LoggerAdapter] = None

    async def initialize(self, context: PluginInitContext) -> None:
        self.logger = context.logger
        self.logger.info(f"Initializing plugin: {self.name} v{self.version}")

    async def health_check(self) -> bool:
        return True

    async def get_stats(self) -> PluginStats:
        return replace(self.stats, custom_metrics=dict(self.stats.custom_metrics))

    def update_stats(self, processing_time: float, has_error: bool = False) -> None:
        """
        Record one processed call.

        Args:
            processing_time: Time spent in milliseconds
            has_error: Whether the call failed
        """
        self.stats.calls_processed += 1
        if has_error:
            self.stats.errors_encountered += 1

        # Rolling average
        total = self.stats.average_processing_time * (self.stats.calls_processed - 1) + processing_time
        self.stats.average_processing_time = total / self.stats.calls_processed
        self.stats.last_activity = time.time()

    def should_process_tool(self, tool_name: str) -> bool:
        if not self.config:
            return True
        if tool_name in self.config.exclude_tools:
            return False
        if self.config.include_tools:
            return tool_name in self.config.include_tools
        return True
