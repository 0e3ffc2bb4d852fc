"""
Assembles streaming tool-call fragments into complete ToolCall objects.

Design goals:
  - Accumulate ``ToolCallChunk`` fragments keyed by slot ``index``.  Slots may
    interleave freely; fragments of one slot arrive in provider order.
  - ``id`` and ``type`` are taken from the first non-empty fragment and never
    overwritten.  ``name`` and ``arguments`` are concatenated.
  - Argument text is *not* parsed here.  A call whose arguments do not form
    valid JSON still comes out of the assembler; dispatch reports the parse
    failure back to the model.
  - On ``finish()`` the calls are returned sorted by slot index, never by
    arrival order.  A slot that never received a name is dropped and recorded
    in ``self.dropped``.
"""

from __future__ import annotations

import logging

from agentloop.llm.types import FunctionCall, ToolBuilder, ToolCall, ToolCallChunk

logger = logging.getLogger(__name__)


class ToolCallAssembler:
    """Buffers tool-call fragments for one streamed response."""

    def __init__(self) -> None:
        self._buf: dict[int, ToolBuilder] = {}
        self.dropped: list[int] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, chunk: ToolCallChunk) -> None:
        """Merge a single fragment into the builder for its slot."""
        builder = self._buf.get(chunk.index)
        if builder is None:
            builder = self._buf[chunk.index] = ToolBuilder(index=chunk.index)

        builder.fragments += 1

        if chunk.id and not builder.id:
            builder.id = chunk.id

        if chunk.type and not builder.type:
            builder.type = chunk.type

        if chunk.name:
            builder.name = (builder.name or "") + chunk.name

        if chunk.arguments:
            builder.arguments += chunk.arguments

    @property
    def pending(self) -> int:
        """Number of slots currently being assembled."""
        return len(self._buf)

    def finish(self) -> list[ToolCall]:
        """
        Finalize every open slot and return the calls in slot-index order.

        The assembler is empty afterwards and may be reused for the next
        response.
        """
        calls: list[ToolCall] = []
        self.dropped = []

        for idx in sorted(self._buf):
            builder = self._buf[idx]
            if not builder.name:
                logger.warning(
                    "Dropping tool call at slot %d: no function name after %d fragment(s)",
                    idx,
                    builder.fragments,
                )
                self.dropped.append(idx)
                continue

            calls.append(
                ToolCall(
                    id=builder.id or f"call_{idx}",
                    type=builder.type or "function",
                    function=FunctionCall(
                        name=builder.name,
                        arguments=builder.arguments,
                    ),
                )
            )

        self._buf.clear()
        return calls

    def reset(self) -> None:
        """Discard all accumulated state."""
        self._buf.clear()
        self.dropped = []
