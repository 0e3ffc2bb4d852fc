"""
OpenAI-compatible chat-completion provider.

Works with any endpoint that speaks the OpenAI ``/v1/chat/completions`` wire
protocol with ``stream: true`` -- OpenAI itself, Azure OpenAI, vLLM,
LM Studio, LocalAI, the Gemini OpenAI endpoint, etc.

Dependencies: ``httpx`` (async HTTP client).  No ``openai`` SDK needed.
"""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

import httpx

from agentloop.errors import ProviderError
from agentloop.llm.decoder import EventDecoder, iter_events
from agentloop.llm.providers.base import Provider
from agentloop.llm.types import Message, StreamEvent

logger = logging.getLogger(__name__)


class OpenAICompatProvider(Provider):
    """
    Stream-capable provider for any OpenAI-API-compatible endpoint.

    Parameters
    ----------
    url:
        Base URL of the API, e.g. ``"https://api.openai.com/v1"`` or
        ``"http://localhost:8080/v1"``.
    model:
        Model identifier sent in the ``model`` field.
    api_key:
        Bearer token.  Pass ``""`` for unauthenticated local endpoints.
    timeout:
        HTTP request timeout in seconds.
    max_retries:
        Number of automatic retries on transient HTTP errors (5xx, 429) and
        connection failures.  Retries only happen before the first event has
        been yielded.
    transport:
        Optional ``httpx`` transport, mainly for tests.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._decoder = EventDecoder()

    # ------------------------------------------------------------------
    # Provider interface
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return "openai-compat"

    @property
    def model(self) -> str:
        return self._model

    async def stream_chat(
        self,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        body = self._build_body(messages, tools)
        headers = self._build_headers()
        async with aclosing(self._stream_request(body, headers)) as events:
            async for event in events:
                yield event

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _build_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_body(
        self,
        messages: list[Message],
        tools: list[dict] | None,
    ) -> dict:
        body: dict = {
            "model": self._model,
            "messages": [m.to_wire() for m in messages],
            "stream": True,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        logger.debug(
            "REQUEST: model=%s tools=%d messages=%d",
            self._model,
            len(tools) if tools else 0,
            len(messages),
        )
        return body

    # ------------------------------------------------------------------
    # Streaming request
    # ------------------------------------------------------------------

    async def _stream_request(
        self,
        body: dict,
        headers: dict[str, str],
    ) -> AsyncIterator[StreamEvent]:
        url = f"{self._url}/chat/completions"

        last_error: Exception | None = None
        for attempt in range(1 + self._max_retries):
            yielded = False
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    async with client.stream(
                        "POST", url, json=body, headers=headers
                    ) as response:
                        if response.status_code == 429 or response.status_code >= 500:
                            # Retryable -- read body so the connection is released.
                            await response.aread()
                            last_error = ProviderError(
                                f"HTTP {response.status_code} from {url}",
                                status_code=response.status_code,
                            )
                            logger.warning(
                                "Provider returned HTTP %d (attempt %d/%d)",
                                response.status_code,
                                attempt + 1,
                                1 + self._max_retries,
                            )
                            continue

                        if response.is_error:
                            detail = (await response.aread()).decode(
                                "utf-8", errors="replace"
                            )
                            raise ProviderError(
                                f"HTTP {response.status_code}: {detail[:500]}",
                                status_code=response.status_code,
                            )

                        events = iter_events(response.aiter_lines(), self._decoder)
                        async with aclosing(events):
                            async for event in events:
                                yielded = True
                                yield event
                        return  # success
            except httpx.TransportError as exc:
                if yielded:
                    raise ProviderError(f"stream interrupted: {exc}") from exc
                last_error = exc
                logger.warning(
                    "Transport error talking to %s (attempt %d/%d): %s",
                    url,
                    attempt + 1,
                    1 + self._max_retries,
                    exc,
                )
                continue

        if isinstance(last_error, ProviderError):
            raise last_error
        raise ProviderError(f"provider unreachable: {last_error}") from last_error
