"""Append-only conversation log.

Holds the ordered turns that are sent in full on every request and
enforces the message-shape rules the Messages API relies on:

- the first turn is a user turn (the system prompt travels out-of-band)
- roles strictly alternate
- every ToolUse in an assistant turn is answered by exactly one
  ToolResult, in order, in the very next user turn
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from agentloop.errors import ProtocolViolation
from agentloop.models import Role, Turn

logger = logging.getLogger(__name__)


class Conversation:
    """Ordered, append-only log of turns for one session.

    Not safe for concurrent mutation; a Conversation is owned by a
    single AgentRunner.
    """

    def __init__(self, turns: Iterable[Turn] = ()) -> None:
        self._turns: list[Turn] = []
        for turn in turns:
            self.append(turn)

    def __len__(self) -> int:
        return len(self._turns)

    def __repr__(self) -> str:
        return f"Conversation(turns={len(self._turns)})"

    @property
    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def history(self) -> tuple[Turn, ...]:
        """Immutable ordered view for request building."""
        return tuple(self._turns)

    def append(self, turn: Turn) -> None:
        """Validate and append a turn. Raises ProtocolViolation."""
        self._validate(turn)
        self._turns.append(turn)

    def branch(self) -> Conversation:
        """Copy of this log that can grow independently.

        The runner stages a user turn's work on a branch and only
        commits it once the turn reaches a resting state.
        """
        clone = Conversation()
        clone._turns = list(self._turns)
        return clone

    def commit(self, branch: Conversation) -> int:
        """Append the turns a branch added on top of this log.

        Returns the number of turns appended. The branch must extend this
        log; turns are only ever added, never replaced.
        """
        base = len(self._turns)
        if branch._turns[:base] != self._turns:
            raise ProtocolViolation("Branch does not extend this conversation")
        new_turns = branch._turns[base:]
        for turn in new_turns:
            self.append(turn)
        logger.debug("Committed %d turn(s), history now %d", len(new_turns), len(self._turns))
        return len(new_turns)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self, turn: Turn) -> None:
        previous = self.last

        if previous is None:
            if turn.role != Role.USER:
                raise ProtocolViolation(
                    f"First turn must have role 'user', got '{turn.role.value}'"
                )
        elif turn.role == previous.role:
            raise ProtocolViolation(
                f"Turns must alternate roles: two consecutive '{turn.role.value}' turns"
            )

        if turn.role == Role.ASSISTANT:
            if turn.tool_result_blocks():
                raise ProtocolViolation("Assistant turns cannot carry tool_result blocks")
            return

        if turn.tool_uses():
            raise ProtocolViolation("User turns cannot carry tool_use blocks")

        # User turn: must answer every outstanding tool_use, and only those
        expected = [tu.id for tu in previous.tool_uses()] if previous else []
        answered = [tr.tool_use_id for tr in turn.tool_result_blocks()]
        if answered != expected:
            if not expected:
                raise ProtocolViolation(
                    f"Tool results {answered} do not answer any pending tool_use"
                )
            raise ProtocolViolation(
                f"Tool results {answered} must answer pending tool_use ids "
                f"{expected} exactly once and in order"
            )
