"""Conversation data model: turns, content blocks and tool definitions.

These models are the data contract between the runner, the request
builder and any persistence layer. Every model dumps to a flat,
order-preserving document with ``model_dump()``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class StopReason(StrEnum):
    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


# Read-only all the way down; dumps back to plain dicts and lists
ToolInput = Annotated[Mapping[str, Any], AfterValidator(_freeze), PlainSerializer(_thaw)]


class TextBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation requested by the model.

    ``id`` is generated remotely and must be echoed verbatim in the
    matching ToolResultBlock.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: ToolInput = Field(default_factory=dict, validate_default=True)

    def arguments(self) -> dict[str, Any]:
        """A fresh, mutable copy of ``input`` for handing to a tool."""
        return _thaw(self.input)


class ToolResultBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    TextBlock | ToolUseBlock | ToolResultBlock,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------


class Turn(BaseModel):
    """One role-tagged entry in conversation history. Immutable."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str | tuple[ContentBlock, ...]

    @classmethod
    def user(cls, text: str) -> Turn:
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, blocks: list[ContentBlock] | tuple[ContentBlock, ...]) -> Turn:
        return cls(role=Role.ASSISTANT, content=tuple(blocks))

    @classmethod
    def tool_results(cls, results: list[ToolResultBlock]) -> Turn:
        return cls(role=Role.USER, content=tuple(results))

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks; plain-text content becomes a single TextBlock."""
        if isinstance(self.content, str):
            return (TextBlock(text=self.content),)
        return self.content

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    def tool_result_blocks(self) -> list[ToolResultBlock]:
        return [b for b in self.blocks if isinstance(b, ToolResultBlock)]

    def to_api(self) -> dict[str, Any]:
        """Messages API shape: {"role": ..., "content": str | [block, ...]}."""
        if isinstance(self.content, str):
            return {"role": self.role.value, "content": self.content}
        return {
            "role": self.role.value,
            "content": [block.model_dump() for block in self.content],
        }


# ---------------------------------------------------------------------------
# Tool definitions and responses
# ---------------------------------------------------------------------------


class ToolDefinition(BaseModel):
    """Descriptor sent to the model so it knows a tool exists."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: dict[str, Any]

    def to_api(self) -> dict[str, Any]:
        return self.model_dump()


@dataclass(frozen=True)
class FinalResponse:
    """Terminal value of one model round-trip."""

    blocks: tuple[ContentBlock, ...]
    stop_reason: StopReason

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]
