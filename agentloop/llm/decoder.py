"""
Streaming event decoder.

Turns the OpenAI-compatible ``chat.completion.chunk`` wire format into the
closed set of stream events the turn loop understands::

    TextChunk | ToolCallChunk | Done | StreamError

Each SSE event has the form::

    data: {json}\\n\\n

and the sentinel ``data: [DONE]`` terminates the stream.  ``Done`` is always
the last event produced by ``iter_events``; if the source stops without the
sentinel one is synthesized.
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator

from agentloop.llm.types import (
    Done,
    StreamError,
    StreamEvent,
    TextChunk,
    ToolCallChunk,
)

logger = logging.getLogger(__name__)


class EventDecoder:
    """Stateless translator from provider payloads to ``StreamEvent``s."""

    def decode_line(self, line: str) -> list[StreamEvent]:
        """Decode one line of an SSE body."""
        line = line.rstrip("\r")
        if not line or line.startswith(":"):
            # Event boundary or keep-alive comment.
            return []
        if not line.startswith("data:"):
            # ``event:`` / ``id:`` / ``retry:`` fields carry nothing we need.
            return []

        data_str = line[len("data:"):].strip()
        if data_str == "[DONE]":
            return [Done()]

        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.warning("Failed to parse SSE data: %s", data_str[:200])
            return [StreamError(f"malformed stream payload: {data_str[:200]}")]

        if not isinstance(data, dict):
            return [StreamError(f"unexpected stream payload: {data_str[:200]}")]
        return self.decode(data)

    def decode(self, data: dict) -> list[StreamEvent]:
        """Decode one parsed ``chat.completion.chunk`` payload."""
        error = data.get("error")
        if error:
            if isinstance(error, dict):
                message = error.get("message") or json.dumps(error)
            else:
                message = str(error)
            return [StreamError(message)]

        choices = data.get("choices")
        if not choices:
            # Usage-only or heartbeat payloads.
            return []

        try:
            return _decode_delta(choices[0].get("delta") or {})
        except (AttributeError, TypeError, ValueError, KeyError, IndexError):
            # Valid JSON, wrong shape.
            snippet = json.dumps(data)[:200]
            logger.warning("Unexpected stream payload shape: %s", snippet)
            return [StreamError(f"malformed stream payload: {snippet}")]


def _decode_delta(delta: dict) -> list[StreamEvent]:
    events: list[StreamEvent] = []

    text = _content_text(delta.get("content"))
    if text:
        events.append(TextChunk(text))

    for raw_tc in delta.get("tool_calls") or []:
        func = raw_tc.get("function") or {}
        index = raw_tc.get("index", 0) or 0
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValueError(f"tool call index must be an integer, got {index!r}")
        events.append(
            ToolCallChunk(
                index=index,
                id=raw_tc.get("id") or None,
                type=raw_tc.get("type") or None,
                name=func.get("name") or None,
                arguments=func.get("arguments") or None,
            )
        )

    return events


def _content_text(content: object) -> str:
    if not content:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Some gateways send content as a list of typed parts.
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


async def iter_events(
    lines: AsyncIterator[str],
    decoder: EventDecoder | None = None,
) -> AsyncIterator[StreamEvent]:
    """
    Drive *decoder* over an async iterator of SSE lines.

    Stops right after the first ``Done`` or ``StreamError``.
    """
    decoder = decoder or EventDecoder()
    async for line in lines:
        for event in decoder.decode_line(line):
            yield event
            if isinstance(event, (Done, StreamError)):
                return

    # The stream ended without [DONE].
    yield Done()
