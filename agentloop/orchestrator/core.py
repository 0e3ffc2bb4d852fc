"""
Orchestrator core -- the turn loop that ties everything together.

The orchestrator:
1. Sends the transcript plus tool schemas to the provider
2. Drains the event stream, forwarding text as it arrives and feeding
   tool-call fragments to the assembler
3. Appends the assistant turn and, if it asked for tools, runs each one and
   appends a ``tool`` message per call
4. Loops until the model answers without tool calls, the stream fails, a stop
   is requested, or ``max_turns`` provider calls have been made

Recoverable failures (unknown tool, bad arguments, a tool raising) become
tool results the model can read.  Only stream failures and the turn ceiling
end a run early, and both end it with a ``Failed`` notification rather than
an exception.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from functools import partial

from agentloop.errors import ProviderError
from agentloop.llm.providers.base import Provider
from agentloop.llm.tool_call_assembler import ToolCallAssembler
from agentloop.llm.types import (
    Done,
    Message,
    StreamError,
    TextChunk,
    ToolCall,
    ToolCallChunk,
)
from agentloop.orchestrator.notifications import (
    Completed,
    Failed,
    LogLine,
    Notification,
    NotificationChannel,
    TextDelta,
)
from agentloop.tools.dispatch import invoke_tool
from agentloop.tools.registry import ToolRegistry
from agentloop.types import ErrorCode, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 50
MAX_TURNS_MESSAGE = "Max turns exceeded"


class LoopState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    TOOL_DISPATCH = "tool_dispatch"
    COMPLETED = "completed"
    ABORTED = "aborted"


class AbortReason:
    MAX_TURNS = "max_turns"
    STREAM_ERROR = "stream_error"
    STOPPED = "stopped"


@dataclass
class RunOutcome:
    state: LoopState
    turns: int
    reason: str | None = None
    error: str | None = None

    @property
    def completed(self) -> bool:
        return self.state is LoopState.COMPLETED


@dataclass
class _TurnResponse:
    text: str
    tool_calls: list[ToolCall]


class _Stopped(Exception):
    pass


class _StreamFailed(Exception):
    pass


class Orchestrator:
    """
    Main turn loop.

    Parameters
    ----------
    provider : Provider
        Streaming model endpoint (an ``LLMRouter`` works too).
    registry : ToolRegistry
        Tool snapshot for this run.  It is only read.
    channel : NotificationChannel
        Where progress notifications go.  A private one is created if omitted.
    max_turns : int
        Maximum number of provider calls per run.
    tool_timeout : float
        Max seconds to wait for a single tool.  The worker thread is not
        killed on timeout; the model just gets a timeout result.
    system_prompt : str
        Prepended as a ``system`` message when the transcript has none.
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        channel: NotificationChannel | None = None,
        *,
        max_turns: int = DEFAULT_MAX_TURNS,
        tool_timeout: float = 60.0,
        system_prompt: str = "",
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.provider = provider
        self.registry = registry
        self.channel = channel or NotificationChannel()
        self.max_turns = max_turns
        self.tool_timeout = tool_timeout
        self.system_prompt = system_prompt
        self.state = LoopState.IDLE
        self._stop = threading.Event()
        self._executor: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """
        Ask the running loop to wind down.

        Safe to call from any thread.  Takes effect at the next suspension
        point; a tool that is already executing is left to finish.
        """
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def _notify(self, note: Notification) -> None:
        if self._stop.is_set():
            return
        try:
            self.channel.send(note)
        except Exception:
            logger.warning("Notification delivery failed", exc_info=True)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, transcript: list[Message]) -> RunOutcome:
        """
        Drive the conversation in *transcript* to completion.

        The transcript is extended in place.  Never raises for provider or
        tool failures; the returned ``RunOutcome`` says how the run ended.
        """
        if self.system_prompt and not any(m.role == "system" for m in transcript):
            transcript.insert(0, Message.system(self.system_prompt))

        tools_schema = self.registry.to_openai_schema() or None
        turns = 0
        self._executor = ThreadPoolExecutor(thread_name_prefix="agentloop-tool")

        try:
            for turn in range(1, self.max_turns + 1):
                if self._stop.is_set():
                    raise _Stopped()
                turns = turn
                logger.debug("Turn %d/%d", turn, self.max_turns)

                self.state = LoopState.STREAMING
                response = await self._stream_turn(transcript, tools_schema)

                if response.tool_calls:
                    transcript.append(Message.assistant(response.text, response.tool_calls))
                    self.state = LoopState.TOOL_DISPATCH
                    await self._dispatch(transcript, response.tool_calls)
                    continue

                if response.text:
                    transcript.append(Message.assistant(response.text))
                self._notify(Completed())
                return self._finish(LoopState.COMPLETED, turns)

            logger.warning("Aborting after %d turns without a final answer", self.max_turns)
            self._notify(Failed(MAX_TURNS_MESSAGE))
            return self._finish(
                LoopState.ABORTED, turns, AbortReason.MAX_TURNS, MAX_TURNS_MESSAGE
            )
        except _Stopped:
            logger.info("Run stopped on request after %d turn(s)", turns)
            return self._finish(LoopState.ABORTED, turns, AbortReason.STOPPED)
        except _StreamFailed as exc:
            self._notify(Failed(str(exc)))
            return self._finish(
                LoopState.ABORTED, turns, AbortReason.STREAM_ERROR, str(exc)
            )
        finally:
            # A timed-out tool keeps its thread; do not wait for it here.
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _finish(
        self,
        state: LoopState,
        turns: int,
        reason: str | None = None,
        error: str | None = None,
    ) -> RunOutcome:
        self.state = state
        self._stop.clear()
        return RunOutcome(state=state, turns=turns, reason=reason, error=error)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def _stream_turn(
        self, transcript: list[Message], tools_schema: list[dict] | None
    ) -> _TurnResponse:
        assembler = ToolCallAssembler()
        text_parts: list[str] = []

        stream = self.provider.stream_chat(list(transcript), tools=tools_schema)
        try:
            async with aclosing(stream):
                async for event in stream:
                    if self._stop.is_set():
                        raise _Stopped()
                    if isinstance(event, TextChunk):
                        text_parts.append(event.text)
                        self._notify(TextDelta(event.text))
                    elif isinstance(event, ToolCallChunk):
                        assembler.feed(event)
                    elif isinstance(event, Done):
                        break
                    elif isinstance(event, StreamError):
                        logger.warning("Stream error: %s", event.message)
                        raise _StreamFailed(event.message)
        except (_Stopped, _StreamFailed):
            raise
        except ProviderError as exc:
            logger.warning("Provider error: %s", exc)
            raise _StreamFailed(str(exc)) from exc
        except Exception as exc:
            logger.exception("Provider stream failed")
            raise _StreamFailed(f"{type(exc).__name__}: {exc}") from exc

        tool_calls = assembler.finish()
        for idx in assembler.dropped:
            self._notify(
                LogLine(f"Dropped tool call at slot {idx}: no function name received")
            )
        return _TurnResponse(text="".join(text_parts), tool_calls=tool_calls)

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, transcript: list[Message], tool_calls: list[ToolCall]) -> None:
        for i, tc in enumerate(tool_calls):
            if self._stop.is_set():
                # Every tool_call still needs a matching tool message.
                for skipped in tool_calls[i:]:
                    transcript.append(
                        Message.tool(skipped.id, "Error: tool call cancelled")
                    )
                raise _Stopped()

            self._notify(LogLine(f"Executing tool: {tc.name} args: {tc.arguments}"))
            result = await self._execute_tool_call(tc)
            logger.debug(
                "Tool %s (%s) -> %s", tc.name, tc.id, result.error_code or "ok"
            )
            transcript.append(Message.tool(tc.id, result.content))

    async def _execute_tool_call(self, tool_call: ToolCall) -> ToolResult:
        try:
            loop = asyncio.get_running_loop()
            return await asyncio.wait_for(
                loop.run_in_executor(
                    self._executor,
                    partial(
                        invoke_tool, self.registry, tool_call.name, tool_call.arguments
                    ),
                ),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Tool %s timed out after %ss", tool_call.name, self.tool_timeout
            )
            return ToolResult.fail(
                tool_call.name,
                f"Error: tool timed out after {self.tool_timeout:g}s",
                ErrorCode.TIMEOUT,
            )
