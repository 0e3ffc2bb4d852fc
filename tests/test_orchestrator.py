"""Tests for the orchestrator core."""

from __future__ import annotations

import asyncio
import json

import pytest

from agentloop.errors import ProviderError
from agentloop.llm.types import Done, Message, TextChunk, ToolCallChunk
from agentloop.orchestrator.core import (
    MAX_TURNS_MESSAGE,
    AbortReason,
    LoopState,
    Orchestrator,
)
from agentloop.orchestrator.notifications import (
    Completed,
    Failed,
    LogLine,
    NotificationChannel,
    TextDelta,
)
from agentloop.tools.builtin import GlobTool
from agentloop.tools.registry import ToolRegistry
from tests.mock_providers import (
    MockProvider,
    RaisingProvider,
    error_events,
    multi_tool_call_events,
    text_events,
    tool_call_events,
)
from tests.mock_tools import (
    BadSchemaTool,
    CountingTool,
    EchoTool,
    ExplodingTool,
    FailingTool,
    SlowTool,
)


@pytest.fixture
def registry():
    reg = ToolRegistry()
    reg.register(EchoTool())
    reg.register(FailingTool())
    reg.register(ExplodingTool())
    reg.register(CountingTool())
    return reg


@pytest.fixture
def channel():
    return NotificationChannel()


def _make_orchestrator(provider, registry, channel=None, **kwargs):
    kwargs.setdefault("tool_timeout", 5.0)
    return Orchestrator(provider, registry, channel, **kwargs)


async def _run(orch, prompt="hello"):
    transcript = [Message.user(prompt)]
    outcome = await orch.run(transcript)
    return outcome, transcript


def _tool_messages(transcript):
    return [m for m in transcript if m.role == "tool"]


class TestTextOnly:
    async def test_completes_in_one_turn(self, registry, channel):
        provider = MockProvider([text_events("Hello there friend")])
        orch = _make_orchestrator(provider, registry, channel)
        outcome, transcript = await _run(orch)

        assert outcome.completed
        assert outcome.turns == 1
        assert provider.call_count == 1
        assert [m.role for m in transcript] == ["user", "assistant"]
        assert transcript[-1].content == "Hello there friend"
        assert orch.state is LoopState.COMPLETED

    async def test_text_is_streamed_then_completed(self, registry, channel):
        provider = MockProvider([text_events("a b c")])
        orch = _make_orchestrator(provider, registry, channel)
        await _run(orch)

        notes = channel.drain()
        assert notes[:-1] == [TextDelta("a "), TextDelta("b "), TextDelta("c")]
        assert notes[-1] == Completed()

    async def test_empty_response_completes_without_message(self, registry, channel):
        provider = MockProvider([[Done()]])
        orch = _make_orchestrator(provider, registry, channel)
        outcome, transcript = await _run(orch)

        assert outcome.completed
        assert [m.role for m in transcript] == ["user"]
        assert channel.drain() == [Completed()]

    async def test_tools_schema_sent(self, registry):
        provider = MockProvider([text_events("ok")])
        await _run(_make_orchestrator(provider, registry))
        names = [t["function"]["name"] for t in provider.last_tools]
        assert names == registry.names()

    async def test_no_tools_sends_none(self):
        provider = MockProvider([text_events("ok")])
        await _run(_make_orchestrator(provider, ToolRegistry()))
        assert provider.last_tools is None


class TestToolRoundTrip:
    async def test_glob_scenario(self, tmp_path, channel):
        (tmp_path / "a.txt").write_text("x")
        (tmp_path / "b.md").write_text("y")
        registry = ToolRegistry()
        registry.register(GlobTool(tmp_path))

        provider = MockProvider([
            [
                ToolCallChunk(index=0, id="call_1", type="function", name="glob"),
                ToolCallChunk(index=0, arguments='{"pat'),
                ToolCallChunk(index=0, arguments='tern":"*.t'),
                ToolCallChunk(index=0, arguments='xt"}'),
                Done(),
            ],
            text_events("Found a.txt"),
        ])
        orch = _make_orchestrator(provider, registry, channel)
        outcome, transcript = await _run(orch, "find text files")

        assert outcome.completed
        assert outcome.turns == 2
        assert [m.role for m in transcript] == ["user", "assistant", "tool", "assistant"]

        call = transcript[1].tool_calls[0]
        assert call.id == "call_1"
        assert call.name == "glob"
        assert call.arguments == '{"pattern":"*.txt"}'

        assert transcript[2].tool_call_id == "call_1"
        assert transcript[2].content == "a.txt"
        assert transcript[3].content == "Found a.txt"

        notes = channel.drain()
        assert LogLine('Executing tool: glob args: {"pattern":"*.txt"}') in notes
        assert notes[-1] == Completed()

    async def test_second_call_sees_tool_result(self, registry):
        provider = MockProvider([
            tool_call_events("echo", {"message": "ping"}),
            text_events("done"),
        ])
        await _run(_make_orchestrator(provider, registry))

        second = provider.all_messages[1]
        assert second[-1].role == "tool"
        assert second[-1].content == "ping"

    async def test_text_before_tool_call_kept(self, registry):
        provider = MockProvider([
            tool_call_events("echo", {"message": "x"}, content_prefix="Let me check. "),
            text_events("done"),
        ])
        _, transcript = await _run(_make_orchestrator(provider, registry))
        assert transcript[1].content == "Let me check. "
        assert transcript[1].tool_calls

    async def test_multiple_calls_dispatched_in_index_order(self, registry):
        provider = MockProvider([
            multi_tool_call_events([
                ("echo", {"message": "one"}, "c0"),
                ("echo", {"message": "two"}, "c1"),
                ("echo", {"message": "three"}, "c2"),
            ]),
            text_events("done"),
        ])
        _, transcript = await _run(_make_orchestrator(provider, registry))

        tools = _tool_messages(transcript)
        assert [m.tool_call_id for m in tools] == ["c0", "c1", "c2"]
        assert [m.content for m in tools] == ["one", "two", "three"]

    async def test_every_tool_call_gets_one_tool_message(self, registry):
        provider = MockProvider([
            multi_tool_call_events([
                ("echo", {"message": "a"}, "c0"),
                ("missing", {}, "c1"),
                ("failing", {}, "c2"),
            ]),
            text_events("done"),
        ])
        _, transcript = await _run(_make_orchestrator(provider, registry))

        ids = [tc.id for tc in transcript[1].tool_calls]
        assert [m.tool_call_id for m in _tool_messages(transcript)] == ids


class TestRecoverableToolFailures:
    async def _single_result(self, registry, name, args):
        provider = MockProvider([tool_call_events(name, args), text_events("ok")])
        outcome, transcript = await _run(_make_orchestrator(provider, registry))
        assert outcome.completed
        (msg,) = _tool_messages(transcript)
        return msg.content

    async def test_unknown_tool(self, registry):
        content = await self._single_result(registry, "nonexistent_tool", {"arg": "val"})
        assert content == "Error: Tool 'nonexistent_tool' not found"

    async def test_invalid_json(self, registry):
        content = await self._single_result(registry, "echo", '{"message": INVALID')
        assert content.startswith("Error parsing arguments JSON: ")

    async def test_validation_failure(self, registry):
        content = await self._single_result(registry, "echo", {"message": 12345})
        assert content.startswith("Error validating arguments: ")

    async def test_tool_error(self, registry):
        content = await self._single_result(registry, "failing", {})
        assert content == "Error executing tool: disk on fire"

    async def test_tool_exception(self, registry):
        content = await self._single_result(registry, "exploding", {})
        assert content.startswith("Error executing tool: RuntimeError")

    async def test_broken_tool_schema(self):
        registry = ToolRegistry()
        registry.register(BadSchemaTool())
        content = await self._single_result(registry, "bad_schema", {"x": 1})
        assert content.startswith("Error validating arguments: invalid tool schema: ")

    async def test_timeout(self):
        slow = SlowTool(seconds=2.0)
        registry = ToolRegistry()
        registry.register(slow)
        provider = MockProvider([tool_call_events("slow", {}), text_events("ok")])
        orch = _make_orchestrator(provider, registry, tool_timeout=0.05)

        outcome, transcript = await _run(orch)
        slow.release.set()

        assert outcome.completed
        (msg,) = _tool_messages(transcript)
        assert msg.content == "Error: tool timed out after 0.05s"


class TestTurnCeiling:
    async def test_aborts_after_max_turns(self, registry, channel):
        counter = registry.get("counter")
        provider = MockProvider([tool_call_events("counter", {})])
        orch = _make_orchestrator(provider, registry, channel)

        outcome, transcript = await _run(orch)

        assert provider.call_count == 50
        assert outcome.state is LoopState.ABORTED
        assert outcome.reason == AbortReason.MAX_TURNS
        assert outcome.error == MAX_TURNS_MESSAGE
        assert outcome.turns == 50
        assert len(counter.calls) == 50
        assert channel.drain()[-1] == Failed(MAX_TURNS_MESSAGE)
        # The transcript stays well formed: it ends on a tool result.
        assert transcript[-1].role == "tool"

    async def test_custom_ceiling(self, registry):
        provider = MockProvider([tool_call_events("echo", {"message": "again"})])
        orch = _make_orchestrator(provider, registry, max_turns=3)
        outcome, _ = await _run(orch)
        assert provider.call_count == 3
        assert outcome.reason == AbortReason.MAX_TURNS

    async def test_final_turn_can_still_complete(self, registry):
        provider = MockProvider([
            tool_call_events("echo", {"message": "x"}),
            text_events("finished"),
        ])
        outcome, _ = await _run(_make_orchestrator(provider, registry, max_turns=2))
        assert outcome.completed
        assert outcome.turns == 2

    def test_rejects_zero_ceiling(self, registry):
        with pytest.raises(ValueError):
            Orchestrator(MockProvider(), registry, max_turns=0)


class TestStreamFailures:
    async def test_stream_error_event(self, registry, channel):
        provider = MockProvider([error_events("upstream exploded", prefix="partial ")])
        orch = _make_orchestrator(provider, registry, channel)
        outcome, transcript = await _run(orch)

        assert outcome.state is LoopState.ABORTED
        assert outcome.reason == AbortReason.STREAM_ERROR
        assert outcome.error == "upstream exploded"
        assert [m.role for m in transcript] == ["user"]
        notes = channel.drain()
        assert notes[0] == TextDelta("partial ")
        assert notes[-1] == Failed("upstream exploded")

    async def test_provider_error(self, registry, channel):
        provider = RaisingProvider(ProviderError("HTTP 401: bad key", status_code=401))
        orch = _make_orchestrator(provider, registry, channel)
        outcome, _ = await _run(orch)

        assert outcome.reason == AbortReason.STREAM_ERROR
        assert "401" in outcome.error
        assert isinstance(channel.drain()[-1], Failed)

    async def test_unexpected_provider_exception(self, registry, channel):
        provider = RaisingProvider(RuntimeError("socket gone"), [TextChunk("hi")])
        orch = _make_orchestrator(provider, registry, channel)
        outcome, _ = await _run(orch)

        assert outcome.reason == AbortReason.STREAM_ERROR
        assert outcome.error == "RuntimeError: socket gone"

    async def test_error_after_tool_turn_keeps_pairs(self, registry):
        provider = MockProvider([
            tool_call_events("echo", {"message": "x"}),
            error_events(),
        ])
        outcome, transcript = await _run(_make_orchestrator(provider, registry))
        assert outcome.reason == AbortReason.STREAM_ERROR
        assert [m.role for m in transcript] == ["user", "assistant", "tool"]


class TestDroppedSlots:
    async def test_nameless_slot_reported(self, registry, channel):
        provider = MockProvider([
            [
                ToolCallChunk(index=0, id="c0", name="echo", arguments='{"message": "ok"}'),
                ToolCallChunk(index=1, id="c1", arguments="{}"),
                Done(),
            ],
            text_events("done"),
        ])
        orch = _make_orchestrator(provider, registry, channel)
        _, transcript = await _run(orch)

        assert [tc.id for tc in transcript[1].tool_calls] == ["c0"]
        notes = channel.drain()
        assert LogLine("Dropped tool call at slot 1: no function name received") in notes


class TestSystemPrompt:
    async def test_inserted_when_missing(self, registry):
        provider = MockProvider([text_events("ok")])
        orch = _make_orchestrator(provider, registry, system_prompt="Be brief.")
        _, transcript = await _run(orch)

        assert transcript[0] == Message.system("Be brief.")
        assert provider.last_messages[0].role == "system"

    async def test_existing_system_message_kept(self, registry):
        provider = MockProvider([text_events("ok")])
        orch = _make_orchestrator(provider, registry, system_prompt="Be brief.")
        transcript = [Message.system("Custom."), Message.user("hi")]
        await orch.run(transcript)

        assert [m.content for m in transcript if m.role == "system"] == ["Custom."]


class TestStop:
    async def test_stop_before_run_aborts_without_calling_provider(self, registry, channel):
        provider = MockProvider([text_events("never")])
        orch = _make_orchestrator(provider, registry, channel)
        orch.stop()
        outcome, _ = await _run(orch)

        assert outcome.reason == AbortReason.STOPPED
        assert provider.call_count == 0
        assert channel.drain() == []
        assert not orch.stop_requested

    async def test_stop_during_tool_cancels_remaining_calls(self, channel):
        slow = SlowTool(seconds=2.0)
        counter = CountingTool()
        registry = ToolRegistry()
        registry.register(slow)
        registry.register(counter)

        provider = MockProvider([
            multi_tool_call_events([("slow", {}, "c0"), ("counter", {}, "c1")]),
            text_events("never"),
        ])
        orch = _make_orchestrator(provider, registry, channel)
        transcript = [Message.user("go")]
        task = asyncio.create_task(orch.run(transcript))

        await asyncio.to_thread(slow.started.wait, 2.0)
        orch.stop()
        slow.release.set()
        outcome = await task

        assert outcome.reason == AbortReason.STOPPED
        assert provider.call_count == 1
        assert counter.calls == []
        tools = _tool_messages(transcript)
        assert [m.tool_call_id for m in tools] == ["c0", "c1"]
        assert tools[1].content == "Error: tool call cancelled"
        assert not any(isinstance(n, (Completed, Failed)) for n in channel.drain())

    async def test_stop_mid_stream(self, registry, channel):
        orch_holder = {}

        class StoppingProvider(MockProvider):
            async def stream_chat(self, messages, tools=None):
                self.call_count += 1
                yield TextChunk("first")
                orch_holder["orch"].stop()
                yield TextChunk("second")
                yield Done()

        provider = StoppingProvider()
        orch = _make_orchestrator(provider, registry, channel)
        orch_holder["orch"] = orch
        outcome, transcript = await _run(orch)

        assert outcome.reason == AbortReason.STOPPED
        assert [m.role for m in transcript] == ["user"]
        assert channel.drain() == [TextDelta("first")]


class TestNotificationResilience:
    async def test_failing_channel_does_not_abort(self, registry):
        class BrokenChannel(NotificationChannel):
            def send(self, note):
                raise RuntimeError("consumer went away")

        provider = MockProvider([
            tool_call_events("echo", {"message": "x"}),
            text_events("done"),
        ])
        orch = _make_orchestrator(provider, registry, BrokenChannel())
        outcome, transcript = await _run(orch)

        assert outcome.completed
        assert transcript[-1].content == "done"

    async def test_closed_channel_does_not_abort(self, registry, channel):
        channel.close()
        provider = MockProvider([text_events("fine")])
        outcome, _ = await _run(_make_orchestrator(provider, registry, channel))
        assert outcome.completed
        assert channel.drain() == []


class TestBatchThroughLoop:
    async def test_batch_run_results_in_order(self, tmp_path):
        from agentloop.config import BatchConfig, ToolsConfig
        from agentloop.tools.profiles import build_registry

        (tmp_path / "a.txt").write_text("alpha")
        (tmp_path / "b.txt").write_text("bravo")
        registry = build_registry(ToolsConfig(), BatchConfig(), root=tmp_path)

        args = {
            "tools": [
                {"tool": "read_file", "parameters": {"path": "b.txt"}},
                {"tool": "read_file", "parameters": {"path": "a.txt"}},
                {"tool": "nope", "parameters": {}},
            ]
        }
        provider = MockProvider([tool_call_events("batch_run", args), text_events("ok")])
        _, transcript = await _run(_make_orchestrator(provider, registry))

        (msg,) = _tool_messages(transcript)
        results = json.loads(msg.content)
        assert [r.get("output") for r in results[:2]] == ["bravo", "alpha"]
        assert results[2]["error_code"] == "not_found"
