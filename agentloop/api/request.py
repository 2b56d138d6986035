"""Outbound request assembly for the Messages API.

Pure data shaping: no I/O, no clocks, no randomness. Identical inputs
always produce equal MessagesRequest values and identical payloads.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from agentloop.models import ToolDefinition, Turn


class MessagesRequest(BaseModel):
    """Everything needed for one call to POST /v1/messages."""

    model_config = ConfigDict(frozen=True)

    model: str
    max_tokens: int
    messages: tuple[Turn, ...]
    system: str | None = None
    tools: tuple[ToolDefinition, ...] = ()
    stream: bool = False

    def to_payload(self) -> dict[str, Any]:
        """JSON body for the API.

        ``system`` and ``tools`` are omitted entirely when absent rather
        than sent as null/empty, since the API treats presence as
        meaningful. Every nested dict is freshly built, so callers may
        mutate the payload without touching the request or its turns.
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [turn.to_api() for turn in self.messages],
        }
        if self.system is not None:
            payload["system"] = self.system
        if self.tools:
            payload["tools"] = [tool.to_api() for tool in self.tools]
        if self.stream:
            payload["stream"] = True
        return payload


def build_request(
    system_prompt: str | None,
    history: Sequence[Turn],
    tools: Sequence[ToolDefinition],
    stream: bool,
    *,
    model: str,
    max_tokens: int,
) -> MessagesRequest:
    """Build the request for one round-trip.

    An empty system prompt counts as absent.
    """
    return MessagesRequest(
        model=model,
        max_tokens=max_tokens,
        messages=tuple(history),
        system=system_prompt or None,
        tools=tuple(tools),
        stream=stream,
    )
