"""
Hook Execution Engine

Runs every tool call through a fixed sequence:
1. Plugin before hooks (registration order, first result short-circuits)
2. Integrator before hook (same short-circuit rule)
3. The original procedure, with args as mutated by the stages above
4. Integrator after hook (may replace the result)
5. Plugin after hooks (registration order, each sees the previous result)

Plugins run before the integrator hook on the way in and after it on the
way out.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from mcp_hook_proxy.context import (
    ProxyHooks,
    ToolCallContext,
    ToolCallResult,
    coerce_result,
    maybe_await,
)
from mcp_hook_proxy.errors import (
    HookExecutionError,
    McpProxyError,
    ToolCallError,
    create_error_response,
)
from mcp_hook_proxy.plugins.manager import PluginManager

logger = logging.getLogger(__name__)

OriginalProcedure = Callable[[ToolCallContext], Awaitable[Any]]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_payload(value: Any) -> Dict[str, Any]:
    """
    Convert a handler return value into an MCP tool result payload.

    None becomes an empty content array and strings become a single text
    entry. Dicts are returned unchanged.
    """
    if value is None:
        return {"content": []}
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        return {"content": [{"type": "text", "text": value}]}
    if isinstance(value, list):
        return {"content": value}
    return {"content": [{"type": "text", "text": json.dumps(value, default=str)}]}


def merge_metadata(context: ToolCallContext, envelope: ToolCallResult) -> Dict[str, Any]:
    """
    Build the final payload with its _meta field.

    Merge order is context metadata, then envelope metadata, then the
    payload's own _meta. Later entries win.
    """
    payload = normalize_payload(envelope.result)
    return {
        **payload,
        "_meta": {
            **as_mapping(context.metadata),
            **as_mapping(envelope.metadata),
            **as_mapping(payload.get("_meta")),
        }
    }


def as_mapping(value: Any) -> Mapping[str, Any]:
    """Metadata that is missing or not a mapping contributes nothing."""
    if isinstance(value, Mapping):
        return value
    if value is not None:
        logger.warning(f"Ignoring non-mapping metadata of type {type(value).__name__}")
    return {}


class HookExecutionEngine:
    """Runs the five-stage interception sequence for one server's tools"""

    def __init__(
        self,
        plugin_manager: Optional[PluginManager] = None,
        hooks: Optional[ProxyHooks] = None,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize the engine.

        Args:
            plugin_manager: Registry whose plugins are fanned out on every call
            hooks: Integrator hook pair
            metadata: Global metadata copied into every call's context
        """
        self.plugin_manager = plugin_manager
        self.hooks = hooks or ProxyHooks()
        self.metadata = dict(metadata or {})

    def create_context(self, tool_name: str, args: Optional[Dict[str, Any]]) -> ToolCallContext:
        return ToolCallContext(
            tool_name=tool_name,
            args=args if args is not None else {},
            metadata={
                **self.metadata,
                "requestId": str(uuid.uuid4()),
                "timestamp": utc_now_iso(),
            }
        )

    async def execute(
        self,
        tool_name: str,
        args: Optional[Dict[str, Any]],
        original: OriginalProcedure,
        context: Optional[ToolCallContext] = None
    ) -> Dict[str, Any]:
        """
        Run one tool call through the pipeline.

        Args:
            tool_name: Name of the tool being called
            args: Caller arguments, mutable by before hooks
            original: Procedure receiving the context once before hooks pass
            context: Prebuilt context, created from tool_name and args if omitted

        Returns:
            Final payload with merged _meta, or an error envelope
        """
        if context is None:
            context = self.create_context(tool_name, args)
        request_id = context.request_id

        logger.debug(f"Tool call: {tool_name} (request {request_id})")

        try:
            envelope = await self.run(context, original)
            return merge_metadata(context, envelope)
        except Exception as e:
            error = self._classify_error(e, context)
            logger.error(f"Error processing tool call {tool_name}: {error}")
            return create_error_response(error, request_id)

    async def run(self, context: ToolCallContext, original: OriginalProcedure) -> ToolCallResult:
        """
        Run the stages and return the envelope.

        Raises:
            HookExecutionError: If a hook or plugin raised
            McpProxyError: Any other classified failure, passed through
            Exception: Raw failures of the original procedure
        """
        tool_name = context.tool_name

        # Stage 1: plugin before hooks
        if self.plugin_manager is not None:
            short_circuit = await self.plugin_manager.execute_before_hooks(context)
            if short_circuit is not None:
                logger.info(f"Plugin short-circuited tool call for {tool_name}")
                return short_circuit

        # Stage 2: integrator before hook
        if self.hooks.before_tool_call is not None:
            short_circuit = await self._call_hook(
                "before_tool_call", context, self.hooks.before_tool_call, context
            )
            if short_circuit is not None:
                logger.debug(f"Short-circuiting tool call for {tool_name} with hook result")
                return short_circuit

        # Stage 3: original procedure
        logger.debug(f"Calling original handler for {tool_name}")
        result = await maybe_await(original(context))
        envelope = ToolCallResult(result=result, metadata={"completedAt": utc_now_iso()})

        # Stage 4: integrator after hook
        if self.hooks.after_tool_call is not None:
            replaced = await self._call_hook(
                "after_tool_call", context, self.hooks.after_tool_call, context, envelope
            )
            if replaced is not None:
                envelope = replaced

        # Stage 5: plugin after hooks
        if self.plugin_manager is not None:
            envelope = await self.plugin_manager.execute_after_hooks(context, envelope)

        return envelope

    async def _call_hook(
        self,
        hook_type: str,
        context: ToolCallContext,
        hook: Callable[..., Any],
        *hook_args: Any
    ) -> Optional[ToolCallResult]:
        try:
            return coerce_result(await maybe_await(hook(*hook_args)))
        except Exception as e:
            logger.error(f"Error in {hook_type} hook for {context.tool_name}: {e}")
            raise HookExecutionError(
                f"Hook error: {e}",
                hook_type,
                context.tool_name,
                {"requestId": context.request_id},
                e
            ) from e

    @staticmethod
    def _classify_error(error: Exception, context: ToolCallContext) -> McpProxyError:
        if isinstance(error, McpProxyError):
            return error
        return ToolCallError(
            str(error),
            context.tool_name,
            context.args,
            {"requestId": context.request_id},
            error
        )
