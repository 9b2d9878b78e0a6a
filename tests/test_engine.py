"""
Tests for the hook execution engine.

Covers stage order, short-circuiting, metadata precedence and error
conversion.
"""

import pytest

from conftest import RecordingPlugin
from mcp_hook_proxy.context import ProxyHooks, ToolCallResult
from mcp_hook_proxy.errors import ProxyConfigurationError
from mcp_hook_proxy.plugins import BasePlugin, PluginManager
from mcp_hook_proxy.proxy.engine import HookExecutionEngine, merge_metadata, normalize_payload


async def build_manager(*plugins):
    manager = PluginManager("1.0.0")
    for plugin in plugins:
        await manager.register(plugin)
    await manager.initialize_all()
    return manager


def recording_hooks(log):
    async def before(context):
        log.append("hook.before")

    async def after(context, result):
        log.append("hook.after")
        return result

    return ProxyHooks(before_tool_call=before, after_tool_call=after)


class TestStageOrder:
    """Test the five-stage sequence."""

    @pytest.mark.asyncio
    async def test_full_sequence(self, call_log):
        manager = await build_manager(RecordingPlugin("plugin", call_log))
        call_log.clear()
        engine = HookExecutionEngine(manager, recording_hooks(call_log))

        async def original(context):
            call_log.append("original")
            return {"content": []}

        await engine.execute("echo", {}, original)

        assert call_log == [
            "plugin.before",
            "hook.before",
            "original",
            "hook.after",
            "plugin.after",
        ]

    @pytest.mark.asyncio
    async def test_plugin_short_circuit_skips_hook_and_original(self, call_log):
        class Blocker(BasePlugin):
            name = "blocker"
            version = "1.0.0"

            async def before_tool_call(self, context):
                return {"result": {"text": "cached"}}

        manager = await build_manager(Blocker())
        engine = HookExecutionEngine(manager, recording_hooks(call_log))

        async def original(context):
            call_log.append("original")

        result = await engine.execute("echo", {}, original)

        assert result["text"] == "cached"
        assert call_log == []

    @pytest.mark.asyncio
    async def test_hook_short_circuit_after_plugins(self, call_log):
        manager = await build_manager(RecordingPlugin("plugin", call_log))
        call_log.clear()

        async def before(context):
            call_log.append("hook.before")
            return ToolCallResult(result={"text": "denied"}, metadata={"reason": "policy"})

        engine = HookExecutionEngine(manager, ProxyHooks(before_tool_call=before))

        async def original(context):
            call_log.append("original")

        result = await engine.execute("echo", {}, original)

        assert call_log == ["plugin.before", "hook.before"]
        assert result["text"] == "denied"
        assert result["_meta"]["reason"] == "policy"
        assert "requestId" in result["_meta"]

    @pytest.mark.asyncio
    async def test_original_sees_mutated_args_once(self):
        calls = []

        async def before(context):
            context.args["count"] = context.args["count"] + 1

        engine = HookExecutionEngine(hooks=ProxyHooks(before_tool_call=before))

        async def original(context):
            calls.append(dict(context.args))
            return "done"

        await engine.execute("counter", {"count": 1}, original)

        assert calls == [{"count": 2}]

    @pytest.mark.asyncio
    async def test_after_hook_replaces_result(self):
        async def after(context, result):
            return ToolCallResult(result={"text": result.result["text"].upper()})

        engine = HookExecutionEngine(hooks=ProxyHooks(after_tool_call=after))

        result = await engine.execute("echo", {}, lambda context: {"text": "quiet"})

        assert result["text"] == "QUIET"

    @pytest.mark.asyncio
    async def test_no_plugins_or_hooks(self):
        engine = HookExecutionEngine()

        result = await engine.execute("echo", {"message": "hi"}, lambda context: {"text": context.args["message"]})

        assert result["text"] == "hi"
        assert result["_meta"]["requestId"]
        assert result["_meta"]["completedAt"]


class TestMetadataMerge:
    """Test later-stage metadata precedence."""

    @pytest.mark.asyncio
    async def test_later_stage_wins(self):
        async def after(context, result):
            result.metadata.update({"source": "hook", "hookOnly": True, "origin": "hook"})
            return result

        engine = HookExecutionEngine(
            hooks=ProxyHooks(after_tool_call=after),
            metadata={"source": "global", "origin": "global", "tenant": "acme"}
        )

        async def original(context):
            return {"content": [], "_meta": {"source": "payload"}}

        result = await engine.execute("echo", {}, original)
        meta = result["_meta"]

        assert meta["source"] == "payload"
        assert meta["origin"] == "hook"
        assert meta["tenant"] == "acme"
        assert meta["hookOnly"] is True

    def test_merge_metadata_order(self):
        engine = HookExecutionEngine(metadata={"key": "context"})
        context = engine.create_context("echo", {})

        merged = merge_metadata(context, ToolCallResult(result={"text": "x"}, metadata={"key": "envelope"}))

        assert merged["_meta"]["key"] == "envelope"
        assert merged["text"] == "x"

    def test_global_metadata_cannot_override_request_id(self):
        engine = HookExecutionEngine(metadata={"requestId": "fixed"})
        context = engine.create_context("echo", None)

        assert context.request_id != "fixed"
        assert context.args == {}


class TestPayloadNormalization:
    """Test conversion of handler return values."""

    def test_none_becomes_empty_content(self):
        assert normalize_payload(None) == {"content": []}

    def test_string_becomes_text(self):
        assert normalize_payload("hello") == {"content": [{"type": "text", "text": "hello"}]}

    def test_dict_unchanged(self):
        payload = {"content": [{"type": "text", "text": "x"}], "isError": False}
        assert normalize_payload(payload) is payload

    def test_list_becomes_content(self):
        assert normalize_payload([{"type": "text", "text": "x"}]) == {"content": [{"type": "text", "text": "x"}]}

    def test_number_becomes_json_text(self):
        assert normalize_payload(42) == {"content": [{"type": "text", "text": "42"}]}


class TestErrorConversion:
    """Test that failures come back as error envelopes."""

    @pytest.mark.asyncio
    async def test_original_failure(self):
        engine = HookExecutionEngine()

        async def original(context):
            raise KeyError("missing city")

        result = await engine.execute("forecast", {"city": "Oslo"}, original)

        assert result["isError"] is True
        error = result["_meta"]["error"]
        assert error["code"] == "TOOL_CALL_ERROR"
        assert error["context"]["toolName"] == "forecast"
        assert error["context"]["args"] == {"city": "Oslo"}

    @pytest.mark.asyncio
    async def test_before_hook_failure(self):
        calls = []

        async def before(context):
            raise RuntimeError("quota exceeded")

        engine = HookExecutionEngine(hooks=ProxyHooks(before_tool_call=before))

        result = await engine.execute("echo", {}, lambda context: calls.append(1))

        assert result["isError"] is True
        assert "quota exceeded" in result["content"][0]["text"]
        assert result["_meta"]["error"]["code"] == "HOOK_BEFORE_TOOL_CALL_ERROR"
        assert calls == []

    @pytest.mark.asyncio
    async def test_plugin_failure_keeps_plugin_name(self):
        class Broken(BasePlugin):
            name = "broken"
            version = "1.0.0"

            async def after_tool_call(self, context, result):
                raise ValueError("bad transform")

        engine = HookExecutionEngine(await build_manager(Broken()))

        result = await engine.execute("echo", {}, lambda context: "ok")

        error = result["_meta"]["error"]
        assert error["code"] == "HOOK_AFTER_TOOL_CALL_ERROR"
        assert error["context"]["pluginName"] == "broken"
        assert result["_meta"]["requestId"] == error["context"]["requestId"]

    @pytest.mark.asyncio
    async def test_proxy_errors_pass_through(self):
        engine = HookExecutionEngine()

        async def original(context):
            raise ProxyConfigurationError("not configured")

        result = await engine.execute("echo", {}, original)

        assert result["_meta"]["error"]["code"] == "PROXY_CONFIG_ERROR"
        assert result["content"][0]["text"] == "Error: not configured"

    @pytest.mark.asyncio
    async def test_invalid_hook_result(self):
        async def before(context):
            return "not a result"

        engine = HookExecutionEngine(hooks=ProxyHooks(before_tool_call=before))

        result = await engine.execute("echo", {}, lambda context: "ok")

        assert result["isError"] is True
        assert result["_meta"]["error"]["code"] == "HOOK_BEFORE_TOOL_CALL_ERROR"

    @pytest.mark.asyncio
    async def test_hook_result_without_metadata(self):
        async def after(context, result):
            return ToolCallResult({"content": []}, None)

        engine = HookExecutionEngine(hooks=ProxyHooks(after_tool_call=after))

        result = await engine.execute("echo", {}, lambda context: "ok")

        assert result["content"] == []
        assert "requestId" in result["_meta"]
        assert "isError" not in result

    @pytest.mark.asyncio
    async def test_payload_meta_not_a_mapping(self):
        engine = HookExecutionEngine()

        async def original(context):
            return {"content": [], "_meta": ["not", "a", "mapping"]}

        result = await engine.execute("echo", {}, original)

        assert result["content"] == []
        assert isinstance(result["_meta"], dict)
        assert "completedAt" in result["_meta"]

    @pytest.mark.asyncio
    async def test_merge_failure_becomes_envelope(self):
        class UnreadablePayload(dict):
            def get(self, key, default=None):
                raise RuntimeError("unreadable payload")

        engine = HookExecutionEngine()

        async def original(context):
            return UnreadablePayload(content=[])

        result = await engine.execute("echo", {}, original)

        assert result["isError"] is True
        assert result["_meta"]["error"]["code"] == "TOOL_CALL_ERROR"
        assert "unreadable payload" in result["content"][0]["text"]
