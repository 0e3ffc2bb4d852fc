"""
LLM Router -- holds several named providers and forwards to the active one.

The router is itself a ``Provider`` so the turn loop never needs to know
whether it is talking to one endpoint or a switchable set of them.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

from agentloop.llm.providers.base import Provider
from agentloop.llm.types import Message, StreamEvent

logger = logging.getLogger(__name__)


class LLMRouter(Provider):
    """Routes chat requests to a named provider."""

    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._active: str | None = None

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: Provider) -> None:
        """Register a provider under *name*.  Overwrites any existing entry."""
        self._providers[name] = provider
        if self._active is None:
            self._active = name

    def set_active(self, name: str) -> None:
        """
        Switch the active provider.

        Raises ``KeyError`` if *name* has not been registered.
        """
        if name not in self._providers:
            raise KeyError(
                f"Unknown provider {name!r}. "
                f"Registered: {list(self._providers)}"
            )
        logger.info("Switching provider %s -> %s", self._active, name)
        self._active = name

    @property
    def active_name(self) -> str | None:
        return self._active

    @property
    def active_provider(self) -> Provider:
        """
        Return the active ``Provider`` instance.

        Raises ``RuntimeError`` if no provider is active.
        """
        if self._active is None or self._active not in self._providers:
            raise RuntimeError("No active LLM provider")
        return self._providers[self._active]

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._active or "router"

    async def stream_chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        provider = self.active_provider
        async with aclosing(provider.stream_chat(messages, tools=tools)) as events:
            async for event in events:
                yield event
