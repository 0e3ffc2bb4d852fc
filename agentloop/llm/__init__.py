"""LLM subsystem -- providers, stream decoding, and tool-call assembly."""

from agentloop.llm.decoder import EventDecoder, iter_events
from agentloop.llm.router import LLMRouter
from agentloop.llm.tool_call_assembler import ToolCallAssembler
from agentloop.llm.types import (
    ContentPart,
    Done,
    FunctionCall,
    Message,
    StreamError,
    StreamEvent,
    TextChunk,
    ToolCall,
    ToolCallChunk,
)

__all__ = [
    "ContentPart",
    "Done",
    "EventDecoder",
    "FunctionCall",
    "LLMRouter",
    "Message",
    "StreamError",
    "StreamEvent",
    "TextChunk",
    "ToolCall",
    "ToolCallAssembler",
    "ToolCallChunk",
    "iter_events",
]
