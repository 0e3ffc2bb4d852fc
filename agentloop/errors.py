"""Exception hierarchy shared across the agentloop packages."""

from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for every error raised by agentloop itself."""


class ProviderError(AgentLoopError):
    """The model provider could not be reached or returned an unusable stream."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ToolError(AgentLoopError):
    """A tool failed while doing its work.

    The message is rendered back into the conversation so the model can
    correct its next request.
    """


class ConfigError(AgentLoopError):
    pass
