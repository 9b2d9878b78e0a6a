"""Logging middleware for the proxy"""

from .logging import setup_logging, enable_debug_logging, get_plugin_logger, PluginLoggerAdapter

__all__ = ["setup_logging", "enable_debug_logging", "get_plugin_logger", "PluginLoggerAdapter"]
