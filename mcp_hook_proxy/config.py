"""
Configuration management for the MCP hook proxy
"""

import os
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_hook_proxy.errors import ProxyConfigurationError, ValidationError
from mcp_hook_proxy.context import ProxyHooks

# Load .env file at module import time
load_dotenv()

SUPPORTED_TRANSPORTS = ("stdio", "sse", "websocket")


class PluginConfig(BaseModel):
    """Per-plugin configuration

    priority is kept for diagnostics only; plugins always run in
    registration order.
    """
    enabled: bool = True
    priority: int = 100
    options: Dict[str, Any] = Field(default_factory=dict)
    include_tools: List[str] = Field(default_factory=list)  # empty = all tools
    exclude_tools: List[str] = Field(default_factory=list)
    debug: bool = False


class PluginEntryConfig(PluginConfig):
    """Plugin declared in YAML, loaded from an import path like "pkg.module:ClassName" """
    path: str


class PluginSystemConfig(BaseModel):
    """Global plugin configuration, shared read-only with every plugin.

    Extra keys are allowed and passed through to plugins untouched.
    """
    model_config = ConfigDict(extra="allow")

    enabled: bool = True
    max_plugins: Optional[int] = Field(default=None, gt=0)
    enable_health_checks: bool = False


class RemoteServerConfig(BaseModel):
    """Connection settings for a remote MCP server

    Required fields depend on the transport:

    - stdio: command (args, env, cwd optional)
    - sse: http:// or https:// url (headers optional)
    - websocket: ws:// or wss:// url
    """
    transport: Literal["stdio", "sse", "websocket"]
    url: Optional[str] = None
    command: Optional[str] = None
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    cwd: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, gt=0)  # seconds
    name: Optional[str] = None
    version: Optional[str] = None

    @model_validator(mode="after")
    def check_transport_fields(self) -> "RemoteServerConfig":
        if self.transport == "stdio":
            if not self.command:
                raise ValueError("stdio transport requires a command")
        elif self.transport == "sse":
            _require_url(self.url, ("http", "https"), "sse")
        elif self.transport == "websocket":
            _require_url(self.url, ("ws", "wss"), "websocket")
        return self

    @property
    def display_name(self) -> str:
        return self.name or "Remote Server"


def _require_url(url: Optional[str], schemes: tuple, transport: str) -> None:
    if not url:
        raise ValueError(f"{transport} transport requires a url")
    parsed = urlparse(url)
    if parsed.scheme not in schemes or not parsed.netloc:
        allowed = " or ".join(f"{s}://" for s in schemes)
        raise ValueError(f"{transport} url must use {allowed}, got '{url}'")


def validate_remote_server_config(raw: Any) -> RemoteServerConfig:
    """
    Validate a remote server configuration.

    Accepts a RemoteServerConfig or a plain dict. Performs no I/O.

    Args:
        raw: Configuration to validate

    Returns:
        Validated RemoteServerConfig

    Raises:
        ProxyConfigurationError: If the transport kind is missing or unsupported
        ValidationError: If a transport-specific field is missing or malformed
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raise ProxyConfigurationError(
            f"Remote server config must be a mapping, got {type(raw).__name__}"
        )

    transport = raw.get("transport")
    if transport not in SUPPORTED_TRANSPORTS:
        raise ProxyConfigurationError(
            f"Unsupported transport type: {transport}",
            {"transport": transport, "supported": list(SUPPORTED_TRANSPORTS)}
        )

    try:
        return RemoteServerConfig.model_validate(raw)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or transport
        raise ValidationError(
            f"Invalid {transport} configuration: {first.get('msg')}",
            field=field,
            expected=first.get("type", "valid value"),
            received=first.get("input"),
            context={"transport": transport}
        ) from e


class ProxyWrapperOptions(BaseModel):
    """Options for wrapping a local tool server"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    metadata: Dict[str, Any] = Field(default_factory=dict)  # merged into every call's metadata
    hooks: Optional[ProxyHooks] = None
    plugins: List[Any] = Field(default_factory=list)  # plugin instances or PluginRegistration
    debug: bool = False
    plugin_config: PluginSystemConfig = Field(default_factory=PluginSystemConfig)


class RemoteProxyOptions(ProxyWrapperOptions):
    """Options for bridging a remote MCP server

    remote_server is kept as given and validated when the bridge connects.
    """
    remote_server: Any
    proxy_server_name: Optional[str] = None
    proxy_server_version: str = "1.0.0"


class ProxySettings(BaseSettings):
    """
    Proxy settings from environment variables.

    - LOG_LEVEL: logging level (default INFO)
    - MCP_PROXY_CONFIG: YAML config path
    - MCP_PROXY_DEBUG: enable debug logging for the pipeline
    """
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    log_level: str = Field(alias="LOG_LEVEL", default="INFO")
    config_path: str = Field(alias="MCP_PROXY_CONFIG", default="config/proxy.yaml")
    debug: bool = Field(alias="MCP_PROXY_DEBUG", default=False)


class ProxyConfig(BaseModel):
    """Complete proxy configuration"""
    name: str = "MCP Hook Proxy"
    version: str = "1.0.0"

    settings: ProxySettings
    metadata: Dict[str, Any] = Field(default_factory=dict)
    remote_server: Optional[RemoteServerConfig] = None
    plugin_config: PluginSystemConfig = Field(default_factory=PluginSystemConfig)
    plugins: Dict[str, PluginEntryConfig] = Field(default_factory=dict)

    @classmethod
    def from_yaml(cls, config_path: str, env_settings: Optional[ProxySettings] = None) -> "ProxyConfig":
        """Load configuration from YAML file and environment"""
        with open(config_path, "r") as f:
            yaml_config = yaml.safe_load(f) or {}

        if env_settings is None:
            env_settings = ProxySettings()

        remote_raw = yaml_config.get("remote_server")
        remote_server = validate_remote_server_config(remote_raw) if remote_raw is not None else None

        plugins = {}
        for plugin_name, plugin_data in (yaml_config.get("plugins") or {}).items():
            try:
                plugins[plugin_name] = PluginEntryConfig(**plugin_data)
            except PydanticValidationError as e:
                raise ProxyConfigurationError(
                    f"Invalid configuration for plugin '{plugin_name}'",
                    {"plugin": plugin_name, "errors": e.errors()},
                    e
                ) from e

        return cls(
            name=yaml_config.get("name", "MCP Hook Proxy"),
            version=yaml_config.get("version", "1.0.0"),
            settings=env_settings,
            metadata=yaml_config.get("metadata") or {},
            remote_server=remote_server,
            plugin_config=PluginSystemConfig(**(yaml_config.get("plugin_config") or {})),
            plugins=plugins
        )


def load_config() -> ProxyConfig:
    """Load configuration from environment and YAML"""
    env_settings = ProxySettings()
    config_path = env_settings.config_path

    if os.path.exists(config_path):
        return ProxyConfig.from_yaml(config_path, env_settings)

    # Minimal config from env only
    return ProxyConfig(settings=env_settings)
