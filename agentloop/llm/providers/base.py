"""Abstract base class for LLM providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from agentloop.llm.types import Message, StreamEvent, TextChunk


class Provider(ABC):
    """
    A provider encapsulates access to a single streaming LLM endpoint.

    Implementations translate their own wire format into ``StreamEvent``
    objects.  The sequence must end with ``Done`` or ``StreamError``; a
    provider may instead raise ``ProviderError`` when the endpoint cannot be
    reached at all.
    """

    @abstractmethod
    async def stream_chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Start a streaming chat completion and yield its events."""
        ...
        # Make the method an async generator so sub-classes can ``yield``.
        # This line is unreachable but satisfies the type checker.
        if False:  # pragma: no cover
            yield TextChunk("")  # type: ignore[misc]

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. ``"openai-compat"``)."""
        ...
