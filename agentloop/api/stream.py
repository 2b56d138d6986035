"""Server-sent-event decoding for the Messages API.

Turns raw SSE lines into typed StreamEvents. Decoding is purely local:
each ``data:`` payload is parsed on its own and classified by its
``type`` field. Bad payloads become ERROR events instead of aborting the
stream; the consumer decides whether one bad event is fatal.

This module knows nothing about tools or conversation state, so it can
be exercised by feeding it literal line sequences.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data:"


class EventType(StrEnum):
    MESSAGE_START = "message_start"
    BLOCK_START = "block_start"
    TEXT_DELTA = "text_delta"
    INPUT_JSON_DELTA = "input_json_delta"
    BLOCK_STOP = "block_stop"
    MESSAGE_DELTA = "message_delta"
    MESSAGE_STOP = "message_stop"
    ERROR = "error"


@dataclass(frozen=True)
class StreamEvent:
    """A single decoded event from the streaming API response."""

    type: EventType
    index: int = 0
    kind: str = ""  # block kind on BLOCK_START: "text" or "tool_use"
    text: str = ""
    partial_json: str = ""
    tool_id: str = ""
    tool_name: str = ""
    stop_reason: str = ""
    message_id: str = ""
    # ERROR only
    reason: str = ""
    raw_line: str = ""
    error_type: str = ""  # set when the server itself reported the error


def _error(reason: str, raw_line: str = "", error_type: str = "") -> StreamEvent:
    return StreamEvent(
        type=EventType.ERROR,
        reason=reason,
        raw_line=raw_line,
        error_type=error_type,
    )


def _object(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    """Nested object at ``key``; missing or null means empty, anything else non-dict is None."""
    value = data.get(key)
    if value is None:
        return {}
    return value if isinstance(value, dict) else None


def _string(value: Any) -> str | None:
    if value is None:
        return ""
    return value if isinstance(value, str) else None


def parse_sse_event(data: Any, raw_line: str = "") -> StreamEvent | None:
    """Classify one decoded SSE payload.

    Returns None for keepalive pings. Stop reason is carried by
    ``message_delta.delta``, not ``message_start``. An in-stream ``error``
    payload (HTTP 200 with an error body) becomes an ERROR event with
    ``error_type`` set. Valid JSON of the wrong shape is an ERROR event
    too, never an exception.
    """
    if not isinstance(data, dict):
        return _error("Payload is not a JSON object", raw_line)

    event_type = data.get("type")
    index = data.get("index", 0)
    if not isinstance(index, int) or isinstance(index, bool):
        return _error(f"Block index is not an integer: {index!r}", raw_line)

    if event_type == "ping":
        return None

    if event_type == "error":
        error = _object(data, "error")
        if error is None:
            return _error(f"Malformed error payload: {data.get('error')!r}", raw_line, error_type="unknown")
        error_type = error.get("type") or "unknown"
        return _error(
            f"{error_type}: {error.get('message', '')}",
            raw_line,
            error_type=str(error_type),
        )

    if event_type == "message_start":
        message = _object(data, "message")
        message_id = _string(message.get("id")) if message is not None else None
        if message_id is None:
            return _error("Malformed message_start payload", raw_line)
        return StreamEvent(type=EventType.MESSAGE_START, message_id=message_id)

    if event_type == "content_block_start":
        block = _object(data, "content_block")
        if block is None:
            return _error(f"content_block is not an object: {data.get('content_block')!r}", raw_line)
        kind = block.get("type")
        if kind == "text":
            text = _string(block.get("text"))
            if text is None:
                return _error("text block start carries non-string text", raw_line)
            return StreamEvent(type=EventType.BLOCK_START, index=index, kind="text", text=text)
        if kind == "tool_use":
            tool_id, tool_name = _string(block.get("id")), _string(block.get("name"))
            if tool_id is None or tool_name is None:
                return _error("tool_use block id and name must be strings", raw_line)
            return StreamEvent(
                type=EventType.BLOCK_START,
                index=index,
                kind="tool_use",
                tool_id=tool_id,
                tool_name=tool_name,
            )
        return _error(f"Unrecognized content block type: {kind!r}", raw_line)

    if event_type == "content_block_delta":
        delta = _object(data, "delta")
        if delta is None:
            return _error(f"delta is not an object: {data.get('delta')!r}", raw_line)
        delta_type = delta.get("type")
        if delta_type == "text_delta":
            text = _string(delta.get("text"))
            if text is None:
                return _error("text_delta carries non-string text", raw_line)
            return StreamEvent(type=EventType.TEXT_DELTA, index=index, text=text)
        if delta_type == "input_json_delta":
            partial_json = _string(delta.get("partial_json"))
            if partial_json is None:
                return _error("input_json_delta carries non-string partial_json", raw_line)
            return StreamEvent(type=EventType.INPUT_JSON_DELTA, index=index, partial_json=partial_json)
        return _error(f"Unrecognized delta type: {delta_type!r}", raw_line)

    if event_type == "content_block_stop":
        return StreamEvent(type=EventType.BLOCK_STOP, index=index)

    if event_type == "message_delta":
        delta = _object(data, "delta")
        stop_reason = _string(delta.get("stop_reason")) if delta is not None else None
        if stop_reason is None:
            return _error("Malformed message_delta payload", raw_line)
        return StreamEvent(type=EventType.MESSAGE_DELTA, stop_reason=stop_reason)

    if event_type == "message_stop":
        return StreamEvent(type=EventType.MESSAGE_STOP)

    return _error(f"Unrecognized event type: {event_type!r}", raw_line)


def decode_line(line: str) -> StreamEvent | None:
    """Decode one SSE line. Non-``data:`` lines and blank lines yield None."""
    line = line.rstrip("\r\n")
    if not line.startswith(_DATA_PREFIX):
        return None
    payload = line[len(_DATA_PREFIX):].lstrip()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug("Undecodable SSE payload: %r", payload[:200])
        return _error(f"Invalid JSON: {e}", line)
    return parse_sse_event(data, line)


def decode_lines(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """Lazily decode a line sequence. Nothing is produced after MESSAGE_STOP."""
    for line in lines:
        event = decode_line(line)
        if event is None:
            continue
        yield event
        if event.type == EventType.MESSAGE_STOP:
            return


async def adecode_lines(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """Async counterpart of decode_lines for a live HTTP response."""
    async for line in lines:
        event = decode_line(line)
        if event is None:
            continue
        yield event
        if event.type == EventType.MESSAGE_STOP:
            return


def events_from_message(message: Any) -> list[StreamEvent]:
    """Synthesize the event sequence equivalent to a non-streaming response.

    Lets the runner fold a single JSON message document through the same
    accumulator it uses for live streams. Malformed documents and blocks
    become ERROR events.
    """
    if not isinstance(message, dict):
        return [_error("Message document is not a JSON object")]
    content = message.get("content") or []
    if not isinstance(content, list):
        return [_error(f"Message content is not a list: {content!r}")]

    events = [StreamEvent(type=EventType.MESSAGE_START, message_id=_string(message.get("id")) or "")]
    for index, block in enumerate(content):
        if not isinstance(block, dict):
            events.append(_error(f"Content block {index} is not an object: {block!r}"))
            continue
        kind = block.get("type")
        if kind == "text":
            text = _string(block.get("text"))
            if text is None:
                events.append(_error(f"Text block {index} carries non-string text"))
                continue
            events.append(StreamEvent(type=EventType.BLOCK_START, index=index, kind="text"))
            events.append(StreamEvent(type=EventType.TEXT_DELTA, index=index, text=text))
        elif kind == "tool_use":
            events.append(
                StreamEvent(
                    type=EventType.BLOCK_START,
                    index=index,
                    kind="tool_use",
                    tool_id=_string(block.get("id")) or "",
                    tool_name=_string(block.get("name")) or "",
                )
            )
            events.append(
                StreamEvent(
                    type=EventType.INPUT_JSON_DELTA,
                    index=index,
                    partial_json=json.dumps(block.get("input") or {}),
                )
            )
        else:
            events.append(_error(f"Unrecognized content block type: {kind!r}"))
            continue
        events.append(StreamEvent(type=EventType.BLOCK_STOP, index=index))
    events.append(
        StreamEvent(type=EventType.MESSAGE_DELTA, stop_reason=_string(message.get("stop_reason")) or "")
    )
    events.append(StreamEvent(type=EventType.MESSAGE_STOP))
    return events
