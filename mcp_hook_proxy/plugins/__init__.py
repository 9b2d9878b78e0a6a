"""Plugin contract and registry"""

from .base import (
    BasePlugin,
    PluginErrorInfo,
    PluginInitContext,
    PluginMetadata,
    PluginRegistration,
    PluginState,
    PluginStats,
)
from .manager import PluginManager

__all__ = [
    "BasePlugin",
    "PluginErrorInfo",
    "PluginInitContext",
    "PluginManager",
    "PluginMetadata",
    "PluginRegistration",
    "PluginState",
    "PluginStats",
]
