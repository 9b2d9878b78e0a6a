"""
Tests for process wiring: plugin loading and option building.
"""

import pytest

from mcp_hook_proxy.config import (
    PluginEntryConfig,
    PluginSystemConfig,
    ProxyConfig,
    ProxySettings,
    RemoteServerConfig,
)
from mcp_hook_proxy.errors import PluginError, ProxyConfigurationError
from mcp_hook_proxy.main import build_options, load_plugin
from mcp_hook_proxy.plugins import BasePlugin, PluginRegistration


class TestLoadPlugin:
    """Test loading plugins from import paths."""

    def test_load_plugin(self):
        entry = PluginEntryConfig(path="mcp_hook_proxy.plugins.base:BasePlugin", priority=3, include_tools=["echo"])

        registration = load_plugin("base", entry)

        assert isinstance(registration, PluginRegistration)
        assert isinstance(registration.plugin, BasePlugin)
        assert registration.config.priority == 3
        assert registration.config.include_tools == ["echo"]
        assert not hasattr(registration.config, "path")

    def test_malformed_path(self):
        with pytest.raises(PluginError) as exc_info:
            load_plugin("audit", PluginEntryConfig(path="no_class_here"))
        assert exc_info.value.code == "PLUGIN_REGISTER_ERROR"

    def test_missing_module(self):
        with pytest.raises(PluginError):
            load_plugin("audit", PluginEntryConfig(path="does_not_exist.anywhere:Plugin"))

    def test_missing_class(self):
        with pytest.raises(PluginError):
            load_plugin("audit", PluginEntryConfig(path="mcp_hook_proxy.plugins.base:NoSuchPlugin"))


class TestBuildOptions:
    """Test building bridge options from configuration."""

    def test_requires_remote_server(self):
        config = ProxyConfig(settings=ProxySettings())

        with pytest.raises(ProxyConfigurationError):
            build_options(config)

    def test_options_from_config(self):
        config = ProxyConfig(
            name="Weather Proxy",
            version="0.3.0",
            settings=ProxySettings(),
            metadata={"environment": "test"},
            remote_server=RemoteServerConfig(transport="stdio", command="python"),
            plugin_config=PluginSystemConfig(max_plugins=2),
            plugins={"base": PluginEntryConfig(path="mcp_hook_proxy.plugins.base:BasePlugin")}
        )

        options = build_options(config)

        assert options.proxy_server_name == "Weather Proxy"
        assert options.proxy_server_version == "0.3.0"
        assert options.metadata == {"environment": "test"}
        assert options.plugin_config.max_plugins == 2
        assert len(options.plugins) == 1
        assert options.remote_server.command == "python"
