"""
Logging setup for the MCP hook proxy
"""

import logging
import os
from typing import Optional

PACKAGE_LOGGER = "mcp_hook_proxy"


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Configure logging for the proxy.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    # Create logger
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    # Console handler
    handler = logging.StreamHandler()
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    handler.setFormatter(formatter)

    # Add handler if not already present
    if not logger.handlers:
        logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("mcp").setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={log_level}")


def enable_debug_logging() -> None:
    """Lower the package logger to DEBUG (wrapper debug option)."""
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG)


class PluginLoggerAdapter(logging.LoggerAdapter):
    """Logger handed to plugins; prefixes every message with the plugin name."""

    def process(self, msg, kwargs):
        return f"[{self.extra['plugin']}] {msg}", kwargs


def get_plugin_logger(plugin_name: str, debug: bool = False) -> PluginLoggerAdapter:
    """
    Get the logger handle passed to a plugin at initialization.

    Args:
        plugin_name: Plugin name used as message prefix
        debug: Enable DEBUG level for this plugin's logger
    """
    logger = logging.getLogger(f"{PACKAGE_LOGGER}.plugins.{plugin_name}")
    if debug:
        logger.setLevel(logging.DEBUG)
    return PluginLoggerAdapter(logger, {"plugin": plugin_name})
