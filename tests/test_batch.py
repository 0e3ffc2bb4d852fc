"""Tests for the parallel batch dispatcher and the batch_run tool."""

from __future__ import annotations

import json

import pytest

from agentloop.config import BatchConfig, ToolsConfig
from agentloop.errors import ToolError
from agentloop.tools.batch import BATCH_TOOL_NAME, BatchDispatcher, BatchTool
from agentloop.tools.dispatch import invoke_tool
from agentloop.tools.profiles import build_registry
from agentloop.tools.registry import ToolRegistry
from agentloop.types import ErrorCode
from tests.mock_tools import EchoTool, ExplodingTool, SleepyEchoTool


@pytest.fixture
def sleepy():
    return SleepyEchoTool()


@pytest.fixture
def registry(sleepy):
    reg = ToolRegistry()
    reg.register(EchoTool())
    reg.register(ExplodingTool())
    reg.register(sleepy)
    return reg


class TestBatchDispatcher:
    def test_empty_batch(self, registry):
        assert BatchDispatcher(registry).execute([]) == []

    def test_results_follow_input_order(self, registry):
        # Earlier entries sleep longer so they finish last.
        invocations = [
            ("sleepy_echo", {"message": str(i), "delay": 0.05 * (5 - i)})
            for i in range(6)
        ]
        results = BatchDispatcher(registry, max_workers=6).execute(invocations)
        assert [r.content for r in results] == [str(i) for i in range(6)]

    def test_runs_concurrently(self, registry, sleepy):
        invocations = [("sleepy_echo", {"message": "x", "delay": 0.1}) for _ in range(4)]
        BatchDispatcher(registry, max_workers=4).execute(invocations)
        assert sleepy.peak > 1

    def test_failures_are_isolated(self, registry):
        results = BatchDispatcher(registry).execute([
            ("echo", {"message": "a"}),
            ("missing", {}),
            ("exploding", {}),
            ("echo", {"message": 7}),
            ("echo", {"message": "b"}),
        ])
        assert [r.error_code for r in results] == [
            None,
            ErrorCode.NOT_FOUND,
            ErrorCode.TOOL_EXCEPTION,
            ErrorCode.VALIDATION_ERROR,
            None,
        ]
        assert results[0].content == "a"
        assert results[4].content == "b"

    def test_single_worker(self, registry):
        results = BatchDispatcher(registry, max_workers=1).execute(
            [("echo", {"message": m}) for m in "abc"]
        )
        assert [r.content for r in results] == ["a", "b", "c"]


class TestBatchTool:
    def _tool(self, registry):
        return BatchTool(lambda depth: registry)

    def test_schema(self, registry):
        tool = self._tool(registry)
        assert tool.name == BATCH_TOOL_NAME
        params = tool.schema()["function"]["parameters"]
        assert params["required"] == ["tools"]

    def test_returns_json_in_order(self, registry):
        output = self._tool(registry).execute({
            "tools": [
                {"tool": "echo", "parameters": {"message": "first"}},
                {"tool": "missing", "parameters": {}},
                {"tool": "echo", "parameters": {"message": "third"}},
            ]
        })
        decoded = json.loads(output)
        assert decoded[0] == {"tool": "echo", "status": "success", "output": "first"}
        assert decoded[1]["status"] == "error"
        assert decoded[1]["error"] == "Error: Tool 'missing' not found"
        assert decoded[2]["output"] == "third"

    def test_missing_tools_argument(self, registry):
        with pytest.raises(ToolError, match="tools"):
            self._tool(registry).execute({})

    def test_factory_called_one_level_deeper(self, registry):
        depths = []

        def factory(depth):
            depths.append(depth)
            return registry

        BatchTool(factory, depth=1).execute({"tools": []})
        assert depths == [2]

    def test_dispatched_through_invoke_tool(self, registry):
        registry.register(self._tool(registry))
        result = invoke_tool(
            registry,
            BATCH_TOOL_NAME,
            '{"tools": [{"tool": "echo", "parameters": {"message": "hi"}}]}',
        )
        assert result.success
        assert json.loads(result.content)[0]["output"] == "hi"

    def test_bad_entry_shape_is_validation_error(self, registry):
        registry.register(self._tool(registry))
        result = invoke_tool(registry, BATCH_TOOL_NAME, '{"tools": [{"tool": "echo"}]}')
        assert result.error_code == ErrorCode.VALIDATION_ERROR


class TestRecursionDepth:
    def test_nested_batch_bounded_by_max_depth(self, tmp_path):
        registry = build_registry(
            ToolsConfig(), BatchConfig(max_depth=2), root=tmp_path
        )
        assert BATCH_TOOL_NAME in registry

        inner = {"tools": [{"tool": "glob", "parameters": {"pattern": "*"}}]}
        middle = {"tools": [{"tool": BATCH_TOOL_NAME, "parameters": inner}]}
        outer = {"tools": [{"tool": BATCH_TOOL_NAME, "parameters": middle}]}

        # depth 0 -> depth 1 still has batch_run; depth 2 does not.
        result = invoke_tool(registry, BATCH_TOOL_NAME, outer)
        level1 = json.loads(result.content)[0]
        assert level1["status"] == "success"
        level2 = json.loads(level1["output"])[0]
        assert level2["status"] == "error"
        assert level2["error_code"] == ErrorCode.NOT_FOUND

    def test_max_depth_zero_disables_batch(self, tmp_path):
        registry = build_registry(ToolsConfig(), BatchConfig(max_depth=0), root=tmp_path)
        assert BATCH_TOOL_NAME not in registry
