"""
Error taxonomy and response normalization for the MCP hook proxy.

Every failure inside the interception pipeline is converted into one of the
errors below and then into a standard MCP error envelope by
create_error_response(), so callers always receive a well-formed result.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class McpProxyError(Exception):
    """Base class for all proxy errors."""

    def __init__(
        self,
        message: str,
        code: str,
        component: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        """
        Initialize proxy error.

        Args:
            message: Human-readable message
            code: Error code for programmatic handling
            component: Component that raised the error
            context: Additional error context
            cause: Underlying exception, if any
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.component = component
        self.context = context or {}
        self.timestamp = _utc_now_iso()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error for logging and error envelopes."""
        data = {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "component": self.component,
            "context": self.context,
            "timestamp": self.timestamp,
        }
        if self.cause is not None:
            data["cause"] = {
                "name": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return data

    def __str__(self) -> str:
        if self.context:
            return f"{type(self).__name__} [{self.code}]: {self.message} ({self.context})"
        return f"{type(self).__name__} [{self.code}]: {self.message}"


class ProxyConfigurationError(McpProxyError):
    """Invalid or missing setup. Fatal at construction, never retried."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, "PROXY_CONFIG_ERROR", "proxy-wrapper", context, cause)


class ValidationError(ProxyConfigurationError):
    """A configuration field failed validation."""

    def __init__(
        self,
        message: str,
        field: str,
        expected: str,
        received: Any = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message,
            {**(context or {}), "field": field, "expected": expected, "received": received}
        )
        self.code = "VALIDATION_ERROR"
        self.component = "configuration"
        self.field = field
        self.expected = expected
        self.received = received


class PluginError(McpProxyError):
    """Plugin registration or lifecycle failure."""

    OPERATIONS = ("register", "initialize", "execute", "cleanup")

    def __init__(
        self,
        message: str,
        plugin_name: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown plugin operation: {operation}")
        super().__init__(
            message,
            f"PLUGIN_{operation.upper()}_ERROR",
            "plugin-manager",
            {**(context or {}), "pluginName": plugin_name, "operation": operation},
            cause
        )
        self.plugin_name = plugin_name
        self.operation = operation


class HookExecutionError(McpProxyError):
    """A hook or plugin raised during a tool call stage."""

    def __init__(
        self,
        message: str,
        hook_type: str,
        tool_name: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        context = context or {}
        super().__init__(
            message,
            f"HOOK_{hook_type.upper()}_ERROR",
            "proxy-wrapper",
            {**context, "hookType": hook_type, "toolName": tool_name},
            cause
        )
        self.hook_type = hook_type
        self.tool_name = tool_name
        self.request_id = context.get("requestId")


class ToolCallError(McpProxyError):
    """The original or remote tool failed."""

    def __init__(
        self,
        message: str,
        tool_name: str,
        args: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        context = context or {}
        args = args or {}
        super().__init__(
            message,
            "TOOL_CALL_ERROR",
            "proxy-wrapper",
            {**context, "toolName": tool_name, "args": args},
            cause
        )
        self.tool_name = tool_name
        self.tool_args = args
        self.request_id = context.get("requestId")


class TransportError(McpProxyError):
    """Remote transport failure."""

    def __init__(
        self,
        message: str,
        transport: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message,
            "TRANSPORT_ERROR",
            "transport",
            {**(context or {}), "transport": transport},
            cause
        )
        self.transport = transport


class RemoteConnectionError(TransportError):
    """Remote bridge could not connect. Fatal for that bridge instance."""

    CATEGORIES = ("connection", "timeout", "protocol", "authentication")

    def __init__(
        self,
        message: str,
        category: str,
        transport: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        if category not in self.CATEGORIES:
            raise ValueError(f"Unknown connection error category: {category}")
        super().__init__(message, transport, {**(context or {}), "category": category}, cause)
        self.category = category
        self.code = f"CONNECTION_{category.upper()}_ERROR"


class DiscoveryError(TransportError):
    """Remote tool catalog could not be listed or re-registered."""

    def __init__(
        self,
        message: str,
        transport: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, transport, context, cause)
        self.code = "TOOL_DISCOVERY_ERROR"
        self.component = "remote-bridge"


def get_error_chain(error: BaseException) -> List[BaseException]:
    """Return the error followed by its causes, outermost first."""
    chain = [error]
    current = error.__cause__
    while current is not None and current not in chain:
        chain.append(current)
        current = current.__cause__
    return chain


def get_root_cause(error: BaseException) -> BaseException:
    return get_error_chain(error)[-1]


def format_error_for_logging(error: BaseException) -> Dict[str, Any]:
    if isinstance(error, McpProxyError):
        return error.to_dict()
    return {
        "name": type(error).__name__,
        "message": str(error),
        "timestamp": _utc_now_iso(),
    }


def create_error_response(error: BaseException, request_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a standard MCP error envelope for a failed tool call.

    Args:
        error: The failure to report
        request_id: Request ID for correlation

    Returns:
        Tool result dict with isError set and a single text entry
    """
    message = error.message if isinstance(error, McpProxyError) else str(error)
    return {
        "isError": True,
        "content": [
            {
                "type": "text",
                "text": f"Error: {message}"
            }
        ],
        "_meta": {
            "error": format_error_for_logging(error),
            "requestId": request_id,
            "timestamp": _utc_now_iso(),
        }
    }
