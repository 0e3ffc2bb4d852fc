"""Core types for the LLM subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ContentPart:
    """One typed part of a multi-part message body."""

    type: str  # "text" or "image_url"
    text: str | None = None
    image_url: str | None = None

    def to_wire(self) -> dict:
        if self.type == "image_url":
            return {"type": "image_url", "image_url": {"url": self.image_url or ""}}
        return {"type": "text", "text": self.text or ""}


@dataclass
class FunctionCall:
    name: str
    arguments: str  # raw JSON text, parsed only at dispatch time


@dataclass
class ToolCall:
    """A complete tool invocation issued by the assistant."""

    id: str
    function: FunctionCall
    type: str = "function"

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "function": {
                "name": self.function.name,
                "arguments": self.function.arguments,
            },
        }


@dataclass
class Message:
    """A single message in a conversation."""

    role: str  # "system", "user", "assistant", "tool"
    content: str | list[ContentPart] | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role="system", content=text)

    @classmethod
    def user(cls, content: str | list[ContentPart]) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls, text: str | None, tool_calls: list[ToolCall] | None = None
    ) -> Message:
        return cls(role="assistant", content=text or None, tool_calls=tool_calls)

    @classmethod
    def tool(cls, tool_call_id: str, text: str) -> Message:
        return cls(role="tool", content=text, tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        """Plain-text view of the content; image parts are skipped."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text or "" for p in self.content if p.type == "text")

    def to_wire(self) -> dict:
        m: dict = {"role": self.role}
        if isinstance(self.content, list):
            m["content"] = [p.to_wire() for p in self.content]
        else:
            m["content"] = self.content
        if self.tool_calls:
            m["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id:
            m["tool_call_id"] = self.tool_call_id
        return m


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass
class TextChunk:
    text: str


@dataclass
class ToolCallChunk:
    """
    A fragment of one in-progress tool call.

    ``index`` is the provider's slot index.  Every other field is optional;
    ``name`` and ``arguments`` are partial strings to be concatenated.
    """

    index: int
    id: str | None = None
    type: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class Done:
    pass


@dataclass
class StreamError:
    message: str


StreamEvent = TextChunk | ToolCallChunk | Done | StreamError


@dataclass
class ToolBuilder:
    """Accumulates the fragments of a single slot until the stream ends."""

    index: int
    id: str | None = None
    type: str | None = None
    name: str | None = None
    arguments: str = ""
    fragments: int = field(default=0, repr=False)
