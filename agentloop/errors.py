"""Error taxonomy for the agent loop.

TransportFailure and ProtocolViolation are fatal to the current turn and
surface to the caller. UnknownTool and ToolError are recoverable: the
runner feeds them back to the model as is_error tool results.
"""

from __future__ import annotations


class AgentError(Exception):
    """Base class for agent loop errors."""


class TransportFailure(AgentError):
    """Network or HTTP-level failure talking to the model endpoint."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportTimeout(TransportFailure):
    """The transport gave up waiting. Handled exactly like cancellation."""


class ProtocolViolation(AgentError):
    """Malformed stream, broken role alternation or an unanswerable response."""


class UnknownTool(AgentError):
    """No tool with the requested name is registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolError(AgentError):
    """A tool failed while executing. The message is returned to the model."""


class CancellationRequested(Exception):
    """The loop was cancelled and is now terminated.

    Not an AgentError: cancellation is a normal transition, and callers
    catching AgentError to keep a session alive should not swallow it.
    """
