"""
Per-call data passed through the interception pipeline, plus the helper
used to call hooks and handlers that may be sync or async.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union


@dataclass
class ToolCallContext:
    """
    Context for a single tool call.

    args is the same dict the tool handler receives, so in-place changes made
    by before hooks are visible to the tool.
    """
    tool_name: str
    args: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def request_id(self) -> Optional[str]:
        return self.metadata.get("requestId")


@dataclass
class ToolCallResult:
    """Tool result payload plus metadata"""
    result: Any
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProxyHooks:
    """Integrator-supplied hook pair, both optional"""
    before_tool_call: Optional[Callable[..., Awaitable[Any]]] = None  # (context) -> Optional[ToolCallResult]
    after_tool_call: Optional[Callable[..., Awaitable[Any]]] = None  # (context, result) -> ToolCallResult


def coerce_result(value: Union[ToolCallResult, Dict[str, Any], None]) -> Optional[ToolCallResult]:
    """
    Accept a ToolCallResult or a {"result": ..., "metadata": ...} dict from a
    hook. None and empty values mean "no result".
    """
    if isinstance(value, ToolCallResult):
        return value
    if not value:
        return None
    if isinstance(value, dict) and "result" in value:
        return ToolCallResult(result=value["result"], metadata=dict(value.get("metadata") or {}))
    raise TypeError(
        f"Hook must return ToolCallResult or None, got {type(value).__name__}"
    )


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
