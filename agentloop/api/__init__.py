from agentloop.api.request import MessagesRequest, build_request
from agentloop.api.stream import (
    EventType,
    StreamEvent,
    adecode_lines,
    decode_line,
    decode_lines,
    events_from_message,
    parse_sse_event,
)
from agentloop.api.transport import AnthropicTransport, Transport

__all__ = [
    "AnthropicTransport",
    "EventType",
    "MessagesRequest",
    "StreamEvent",
    "Transport",
    "adecode_lines",
    "build_request",
    "decode_line",
    "decode_lines",
    "events_from_message",
    "parse_sse_event",
]
