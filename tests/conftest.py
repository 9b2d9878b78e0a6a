"""
Pytest configuration and fixtures
"""

from typing import Any, Callable, Dict, List, Optional

import pytest

from mcp_hook_proxy.context import ToolCallContext, ToolCallResult
from mcp_hook_proxy.plugins.base import BasePlugin


class FakeToolServer:
    """Tool server recording registrations made through tool()"""

    def __init__(self, name: str = "fake-server"):
        self.name = name
        self.handlers: Dict[str, Callable[..., Any]] = {}
        self.schemas: Dict[str, Optional[Dict[str, Any]]] = {}
        self.descriptions: Dict[str, Optional[str]] = {}

    def tool(self, name, schema_or_handler, handler=None, *, description=None):
        if handler is None:
            handler, schema = schema_or_handler, None
        else:
            schema = schema_or_handler
        self.handlers[name] = handler
        self.schemas[name] = schema
        self.descriptions[name] = description
        return handler

    async def call(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.handlers[name](args)


class CountingHandler:
    """Tool handler echoing args.message and counting invocations"""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []

    @property
    def count(self) -> int:
        return len(self.calls)

    async def __call__(self, args: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(dict(args))
        return {"text": args.get("message")}


class RecordingPlugin(BasePlugin):
    """Plugin recording every lifecycle and hook call into a shared log"""

    version = "1.0.0"

    def __init__(self, name: str, log: Optional[List[str]] = None, fail_init: bool = False):
        super().__init__()
        self.name = name
        self.log = log if log is not None else []
        self.fail_init = fail_init
        self.init_context = None
        self.errors = []

    async def initialize(self, context):
        await super().initialize(context)
        self.init_context = context
        self.log.append(f"{self.name}.initialize")
        if self.fail_init:
            raise RuntimeError(f"{self.name} cannot start")

    async def before_tool_call(self, context: ToolCallContext) -> Optional[ToolCallResult]:
        self.log.append(f"{self.name}.before")
        return None

    async def after_tool_call(self, context: ToolCallContext, result: ToolCallResult) -> ToolCallResult:
        self.log.append(f"{self.name}.after")
        return result

    async def on_error(self, error):
        self.errors.append(error)

    async def destroy(self):
        self.log.append(f"{self.name}.destroy")


class TracePlugin(BasePlugin):
    """Appends its letter to metadata.trace after each call"""

    version = "1.0.0"

    def __init__(self, letter: str):
        super().__init__()
        self.name = f"trace-{letter}"
        self.letter = letter

    async def after_tool_call(self, context, result):
        result.metadata["trace"] = result.metadata.get("trace", "") + self.letter
        return result


@pytest.fixture
def fake_server():
    """Create a fake tool server"""
    return FakeToolServer()


@pytest.fixture
def echo_handler():
    """Create a counting echo handler"""
    return CountingHandler()


@pytest.fixture
def call_log():
    """Shared call log for recording plugins"""
    return []
