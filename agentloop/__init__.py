"""Streaming tool-use agent loop for the Anthropic Messages API."""

from agentloop.config import Settings
from agentloop.conversation import Conversation
from agentloop.errors import (
    AgentError,
    CancellationRequested,
    ProtocolViolation,
    ToolError,
    TransportFailure,
    TransportTimeout,
    UnknownTool,
)
from agentloop.models import (
    ContentBlock,
    FinalResponse,
    Role,
    StopReason,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from agentloop.runner import AgentCallbacks, AgentRunner, LoopState, TurnResult

__all__ = [
    "AgentCallbacks",
    "AgentError",
    "AgentRunner",
    "CancellationRequested",
    "ContentBlock",
    "Conversation",
    "FinalResponse",
    "LoopState",
    "ProtocolViolation",
    "Role",
    "Settings",
    "StopReason",
    "TextBlock",
    "ToolDefinition",
    "ToolError",
    "ToolResultBlock",
    "ToolUseBlock",
    "TransportFailure",
    "TransportTimeout",
    "Turn",
    "TurnResult",
    "UnknownTool",
]
