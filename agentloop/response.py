"""Per-block-index accumulation of a streamed model response.

Each open block index maps to either a text accumulator or a tool-call
accumulator holding the raw JSON fragments seen so far. On BLOCK_STOP
the slot is finalized into a ContentBlock and freed. Nothing here is
ever repaired: anything inconsistent raises ProtocolViolation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from agentloop.api.stream import EventType, StreamEvent
from agentloop.errors import ProtocolViolation
from agentloop.models import ContentBlock, FinalResponse, StopReason, TextBlock, ToolUseBlock


@dataclass
class _TextAcc:
    parts: list[str] = field(default_factory=list)


@dataclass
class _ToolAcc:
    id: str
    name: str
    json_parts: list[str] = field(default_factory=list)


class PendingResponse:
    """Folds StreamEvents into a FinalResponse."""

    def __init__(self) -> None:
        self._open: dict[int, _TextAcc | _ToolAcc] = {}
        self._done: dict[int, ContentBlock] = {}
        self._stop_reason = ""
        self._stopped = False

    @property
    def stopped(self) -> bool:
        """True once MESSAGE_STOP has been applied."""
        return self._stopped

    def apply(self, event: StreamEvent) -> None:
        if self._stopped:
            raise ProtocolViolation(f"Event {event.type.value} after message_stop")

        if event.type == EventType.MESSAGE_START:
            return

        if event.type == EventType.BLOCK_START:
            if event.index in self._open or event.index in self._done:
                raise ProtocolViolation(f"Block index {event.index} started twice")
            if event.kind == "tool_use":
                if not event.tool_id or not event.tool_name:
                    raise ProtocolViolation(f"tool_use block {event.index} missing id or name")
                self._open[event.index] = _ToolAcc(id=event.tool_id, name=event.tool_name)
            else:
                self._open[event.index] = _TextAcc(parts=[event.text] if event.text else [])
            return

        if event.type == EventType.TEXT_DELTA:
            acc = self._open.get(event.index)
            if not isinstance(acc, _TextAcc):
                raise ProtocolViolation(f"text_delta for block {event.index}, which is not an open text block")
            acc.parts.append(event.text)
            return

        if event.type == EventType.INPUT_JSON_DELTA:
            acc = self._open.get(event.index)
            if not isinstance(acc, _ToolAcc):
                raise ProtocolViolation(
                    f"input_json_delta for block {event.index}, which is not an open tool_use block"
                )
            acc.json_parts.append(event.partial_json)
            return

        if event.type == EventType.BLOCK_STOP:
            acc = self._open.pop(event.index, None)
            if acc is None:
                raise ProtocolViolation(f"block_stop for unopened block {event.index}")
            self._done[event.index] = self._finalize_block(event.index, acc)
            return

        if event.type == EventType.MESSAGE_DELTA:
            if event.stop_reason:
                self._stop_reason = event.stop_reason
            return

        if event.type == EventType.MESSAGE_STOP:
            self._stopped = True
            return

        raise ProtocolViolation(f"Cannot accumulate {event.type.value} event: {event.reason}")

    def finalize(self) -> FinalResponse:
        """Completed blocks in index order plus the stop reason."""
        if not self._stopped:
            raise ProtocolViolation("Response finalized before message_stop")
        if self._open:
            raise ProtocolViolation(f"Blocks never stopped: {sorted(self._open)}")
        if not self._stop_reason:
            raise ProtocolViolation("Response ended without a stop_reason")
        try:
            stop_reason = StopReason(self._stop_reason)
        except ValueError:
            raise ProtocolViolation(f"Unknown stop_reason: {self._stop_reason!r}") from None

        # The API rejects empty text blocks when history is sent back
        blocks = tuple(
            block
            for _, block in sorted(self._done.items())
            if not (isinstance(block, TextBlock) and not block.text)
        )
        return FinalResponse(blocks=blocks, stop_reason=stop_reason)

    @staticmethod
    def _finalize_block(index: int, acc: _TextAcc | _ToolAcc) -> ContentBlock:
        if isinstance(acc, _TextAcc):
            return TextBlock(text="".join(acc.parts))

        raw = "".join(acc.json_parts)
        try:
            tool_input = json.loads(raw) if raw else {}
        except json.JSONDecodeError as e:
            raise ProtocolViolation(
                f"tool_use block {index} ({acc.name}) has invalid input JSON: {e}"
            ) from e
        if not isinstance(tool_input, dict):
            raise ProtocolViolation(f"tool_use block {index} ({acc.name}) input is not a JSON object")
        return ToolUseBlock(id=acc.id, name=acc.name, input=tool_input)
