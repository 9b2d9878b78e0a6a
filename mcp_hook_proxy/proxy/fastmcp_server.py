"""
FastMCP adapter.

FastMCPToolServer gives a FastMCP instance the tool(name, handler) /
tool(name, schema, handler) registration interface, so it can be wrapped
with ProxyWrapper or used as the local side of a RemoteServerProxy.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools.tool import Tool, ToolResult
from mcp.types import ContentBlock
from pydantic import Field, TypeAdapter

logger = logging.getLogger(__name__)

# Accept any arguments when a tool is registered without a schema
OPEN_SCHEMA: Dict[str, Any] = {"type": "object", "properties": {}, "additionalProperties": True}

_content_adapter = TypeAdapter(ContentBlock)


def to_content_blocks(payload: Dict[str, Any]) -> List[ContentBlock]:
    """Convert a payload into MCP content blocks; payloads without content become JSON text."""
    content = payload.get("content")
    if isinstance(content, list):
        return [_content_adapter.validate_python(item) for item in content]
    body = {key: value for key, value in payload.items() if key != "_meta"}
    return [_content_adapter.validate_python({"type": "text", "text": json.dumps(body, default=str)})]


def to_tool_result(payload: Dict[str, Any]) -> ToolResult:
    """
    Convert a pipeline payload into a FastMCP ToolResult.

    Raises:
        ToolError: If the payload is an error envelope
    """
    if payload.get("isError"):
        texts = [item.get("text", "") for item in payload.get("content") or [] if isinstance(item, dict)]
        raise ToolError("\n".join(texts) or "Tool call failed")

    structured = payload.get("structuredContent")
    if structured is None and not isinstance(payload.get("content"), list):
        structured = {key: value for key, value in payload.items() if key != "_meta"}

    return ToolResult(
        content=to_content_blocks(payload),
        structured_content=structured,
        meta=payload.get("_meta") or None
    )


class ProxiedTool(Tool):
    """FastMCP tool delegating to a handler that takes the argument dict"""

    handler: Callable[..., Any] = Field(exclude=True)

    async def run(self, arguments: Dict[str, Any]) -> ToolResult:
        payload = await self.handler(dict(arguments or {}))
        return to_tool_result(payload)


class FastMCPToolServer:
    """Registration interface on top of a FastMCP server"""

    def __init__(self, mcp: FastMCP):
        self.mcp = mcp

    def tool(
        self,
        name: str,
        schema_or_handler: Any,
        handler: Optional[Callable[..., Any]] = None,
        *,
        description: Optional[str] = None
    ) -> Tool:
        """
        Register a tool whose handler receives the argument dict.

        The handler must be async and return a payload dict.
        """
        if handler is None:
            handler, schema = schema_or_handler, OPEN_SCHEMA
        else:
            schema = schema_or_handler or OPEN_SCHEMA

        tool = ProxiedTool(
            name=name,
            description=description,
            parameters=dict(schema),
            handler=handler
        )
        self.mcp.add_tool(tool)
        logger.debug(f"Registered FastMCP tool: {name}")
        return tool

    def run(self, **kwargs: Any) -> None:
        self.mcp.run(**kwargs)

    async def run_async(self, **kwargs: Any) -> None:
        await self.mcp.run_async(**kwargs)
