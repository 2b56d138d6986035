"""Canned SSE streams and fake transports shared by the test modules."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

from agentloop.api.request import MessagesRequest


def sse(data: dict[str, Any]) -> list[str]:
    """One SSE frame: event line, data line, blank separator."""
    return [f"event: {data['type']}", f"data: {json.dumps(data)}", ""]


def _chunks(text: str, size: int) -> list[str]:
    return [text[i:i + size] for i in range(0, len(text), size)] or [""]


def message_lines(
    blocks: list[dict[str, Any]],
    stop_reason: str | None = "end_turn",
    *,
    chunk_size: int = 4,
    message_stop: bool = True,
) -> list[str]:
    """SSE lines for a full message built from Messages API content blocks.

    Text and tool input JSON are split into ``chunk_size`` fragments so
    the accumulator has something to reassemble.
    """
    lines = sse({
        "type": "message_start",
        "message": {"id": "msg_test", "type": "message", "role": "assistant", "content": []},
    })
    lines += sse({"type": "ping"})
    for index, block in enumerate(blocks):
        if block["type"] == "text":
            lines += sse({
                "type": "content_block_start",
                "index": index,
                "content_block": {"type": "text", "text": ""},
            })
            for chunk in _chunks(block["text"], chunk_size):
                lines += sse({
                    "type": "content_block_delta",
                    "index": index,
                    "delta": {"type": "text_delta", "text": chunk},
                })
        else:
            lines += sse({
                "type": "content_block_start",
                "index": index,
                "content_block": {"type": "tool_use", "id": block["id"], "name": block["name"], "input": {}},
            })
            for chunk in _chunks(json.dumps(block.get("input", {})), chunk_size):
                lines += sse({
                    "type": "content_block_delta",
                    "index": index,
                    "delta": {"type": "input_json_delta", "partial_json": chunk},
                })
        lines += sse({"type": "content_block_stop", "index": index})
    if stop_reason is not None:
        lines += sse({
            "type": "message_delta",
            "delta": {"stop_reason": stop_reason, "stop_sequence": None},
            "usage": {"output_tokens": 12},
        })
    if message_stop:
        lines += sse({"type": "message_stop"})
    return lines


def text_lines(text: str, stop_reason: str = "end_turn") -> list[str]:
    return message_lines([{"type": "text", "text": text}], stop_reason)


def tool_use(tool_id: str, name: str, tool_input: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"type": "tool_use", "id": tool_id, "name": name, "input": tool_input or {}}


class ScriptedTransport:
    """Replays one canned response per request and records the requests.

    Streaming scripts are lists of SSE lines; non-streaming scripts are
    message documents.
    """

    def __init__(self, *scripts: Any) -> None:
        self._scripts = list(scripts)
        self.requests: list[MessagesRequest] = []

    async def stream_lines(self, request: MessagesRequest) -> AsyncIterator[str]:
        self.requests.append(request)
        for line in self._scripts.pop(0):
            await asyncio.sleep(0)
            yield line

    async def send(self, request: MessagesRequest) -> dict[str, Any]:
        self.requests.append(request)
        return self._scripts.pop(0)


class StallingTransport:
    """Yields ``lines`` and then waits forever, like a stalled connection."""

    def __init__(self, lines: list[str] | None = None) -> None:
        self._lines = lines or []
        self.closed = False

    async def stream_lines(self, request: MessagesRequest) -> AsyncIterator[str]:
        try:
            for line in self._lines:
                yield line
            await asyncio.Event().wait()
        finally:
            self.closed = True

    async def send(self, request: MessagesRequest) -> dict[str, Any]:
        await asyncio.Event().wait()
        return {}
