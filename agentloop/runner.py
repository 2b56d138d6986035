"""Agent runner -- drives the streaming tool-use loop.

One call to ``send()`` runs a full user turn: build a request from the
system prompt, full history and tool definitions; fold the streamed
events into a response; execute every requested tool; feed the results
back; repeat until the model stops asking for tools.

The turns produced along the way are staged on a branch of the
conversation and committed only when the loop comes to rest, so a
failure, timeout or cancellation never leaves a half-formed or
unanswered turn in history.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Coroutine
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, TypeVar

from agentloop.api.request import MessagesRequest, build_request
from agentloop.api.stream import EventType, StreamEvent, adecode_lines, events_from_message
from agentloop.api.transport import Transport
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
    FinalResponse,
    StopReason,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
)
from agentloop.response import PendingResponse
from agentloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LoopState(StrEnum):
    AWAITING_USER_INPUT = "awaiting_user_input"
    REQUEST_IN_FLIGHT = "request_in_flight"
    STREAM_ACCUMULATING = "stream_accumulating"
    TOOL_DISPATCH = "tool_dispatch"
    TERMINATED = "terminated"


@dataclass
class AgentCallbacks:
    """Synchronous observer hooks for a front end. All optional."""

    on_text: Callable[[str], None] | None = None
    on_interim: Callable[[str], None] | None = None
    on_tool_start: Callable[[ToolUseBlock], None] | None = None
    on_tool_end: Callable[[ToolUseBlock, ToolResultBlock], None] | None = None


@dataclass
class TurnResult:
    """Outcome of one user turn."""

    text: str
    stop_reason: StopReason
    tool_results: list[ToolResultBlock] = field(default_factory=list)
    requests: int = 0


async def _run_cancellable(
    coro: Coroutine[Any, Any, T],
    cancel: asyncio.Event | None,
) -> T:
    """Await ``coro`` in its own task, abandoning it if ``cancel`` fires.

    Every suspension point inside the coroutine (first byte, each stream
    line, each tool) is covered, because cancelling the task interrupts
    whichever await is pending.
    """
    if cancel is None:
        return await coro
    if cancel.is_set():
        coro.close()
        raise CancellationRequested("Cancelled by caller")

    work = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        waiter.cancel()
        raise
    waiter.cancel()
    if work in done:
        return work.result()

    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    raise CancellationRequested("Cancelled by caller")


class AgentRunner:
    """Runs conversational turns against the Messages API.

    Strictly sequential: one request in flight at a time, one stream
    consumed to completion before the next request is built. Tool calls
    from a single response may run concurrently; their results are
    always reassembled in request order.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Transport,
        registry: ToolRegistry | None = None,
        *,
        system_prompt: str | None = None,
        conversation: Conversation | None = None,
        callbacks: AgentCallbacks | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._registry = registry if registry is not None else ToolRegistry()
        self._system_prompt = system_prompt if system_prompt is not None else settings.system_prompt
        self._conversation = conversation if conversation is not None else Conversation()
        self._callbacks = callbacks or AgentCallbacks()
        self._state = LoopState.AWAITING_USER_INPUT

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def terminate(self) -> None:
        """Stop accepting turns.

        Meant to be called between turns; pass a ``cancel`` event to
        ``send()`` to abort a turn in flight.
        """
        self._set_state(LoopState.TERMINATED)

    async def send(self, user_text: str, cancel: asyncio.Event | None = None) -> TurnResult:
        """Run one user turn to completion, including the inner tool loop.

        Raises TransportFailure or ProtocolViolation (loop returns to
        AWAITING_USER_INPUT, nothing committed), or CancellationRequested
        when ``cancel`` fires or the transport times out (loop is
        TERMINATED, nothing committed).
        """
        if self._state == LoopState.TERMINATED:
            raise AgentError("Agent loop has terminated")
        if self._state != LoopState.AWAITING_USER_INPUT:
            raise AgentError(f"A turn is already in progress (state={self._state.value})")

        branch = self._conversation.branch()
        branch.append(Turn.user(user_text))

        try:
            result = await self._tool_loop(branch, cancel)
        except (CancellationRequested, asyncio.CancelledError):
            logger.info("Turn cancelled; history left at %d turns", len(self._conversation))
            self._set_state(LoopState.TERMINATED)
            raise
        except TransportTimeout as e:
            logger.warning("Transport timed out, terminating: %s", e)
            self._set_state(LoopState.TERMINATED)
            raise CancellationRequested(f"Timed out: {e}") from e
        except Exception as e:
            logger.error("Turn failed: %s", e)
            self._set_state(LoopState.AWAITING_USER_INPUT)
            raise

        self._conversation.commit(branch)
        self._set_state(LoopState.AWAITING_USER_INPUT)
        return result

    # ------------------------------------------------------------------
    # Tool loop
    # ------------------------------------------------------------------

    async def _tool_loop(self, branch: Conversation, cancel: asyncio.Event | None) -> TurnResult:
        """Request, accumulate, dispatch tools, repeat until the model is done."""
        all_tool_results: list[ToolResultBlock] = []
        max_turns = self._settings.max_turns

        for requests in range(1, max_turns + 1):
            self._set_state(LoopState.REQUEST_IN_FLIGHT)
            request = build_request(
                self._system_prompt,
                branch.history(),
                self._registry.definitions(),
                self._settings.stream,
                model=self._settings.model,
                max_tokens=self._settings.max_tokens,
            )
            response = await _run_cancellable(self._round_trip(request), cancel)
            tool_uses = response.tool_uses

            if response.stop_reason != StopReason.TOOL_USE:
                if tool_uses:
                    raise ProtocolViolation(
                        f"Response has {len(tool_uses)} tool_use block(s) but "
                        f"stop_reason={response.stop_reason.value}"
                    )
                branch.append(Turn.assistant(response.blocks))
                return TurnResult(
                    text=response.text,
                    stop_reason=response.stop_reason,
                    tool_results=all_tool_results,
                    requests=requests,
                )

            if not tool_uses:
                raise ProtocolViolation("stop_reason=tool_use but no tool_use blocks were received")

            branch.append(Turn.assistant(response.blocks))
            self._set_state(LoopState.TOOL_DISPATCH)

            if response.text:
                self._notify(self._callbacks.on_interim, response.text)

            results = await _run_cancellable(self._dispatch_tools(tool_uses), cancel)
            branch.append(Turn.tool_results(results))
            all_tool_results.extend(results)

        logger.warning("Tool loop reached max_turns=%d", max_turns)
        raise AgentError(f"Tool loop exceeded max_turns={max_turns} without a final answer")

    async def _round_trip(self, request: MessagesRequest) -> FinalResponse:
        """Consume one response to completion and finalize it."""
        pending = PendingResponse()

        async for event in self._events(request):
            if self._state == LoopState.REQUEST_IN_FLIGHT:
                self._set_state(LoopState.STREAM_ACCUMULATING)

            if event.type == EventType.ERROR:
                if event.error_type:
                    raise TransportFailure(f"In-stream API error: {event.reason}")
                raise ProtocolViolation(
                    f"Malformed stream event: {event.reason} (line: {event.raw_line[:200]!r})"
                )

            pending.apply(event)

            if event.type == EventType.TEXT_DELTA and event.text:
                self._notify(self._callbacks.on_text, event.text)

        if not pending.stopped:
            raise TransportFailure("Stream closed before message_stop")
        return pending.finalize()

    async def _events(self, request: MessagesRequest) -> AsyncIterator[StreamEvent]:
        if self._settings.stream:
            async with aclosing(self._transport.stream_lines(request)) as lines:
                async for event in adecode_lines(lines):
                    yield event
        else:
            message = await self._transport.send(request)
            for event in events_from_message(message):
                yield event

    # ------------------------------------------------------------------
    # Tool dispatch
    # ------------------------------------------------------------------

    async def _dispatch_tools(self, tool_uses: list[ToolUseBlock]) -> list[ToolResultBlock]:
        """Execute every tool call; one result per call, in request order."""
        if self._settings.parallel_tools and len(tool_uses) > 1:
            return list(await asyncio.gather(*(self._execute_tool(tu) for tu in tool_uses)))
        return [await self._execute_tool(tu) for tu in tool_uses]

    async def _execute_tool(self, tool_use: ToolUseBlock) -> ToolResultBlock:
        """Run one tool. Failures become is_error results; nothing is raised."""
        self._notify(self._callbacks.on_tool_start, tool_use)
        start_time = time.monotonic()
        try:
            output = await self._registry.execute(tool_use.name, tool_use.arguments())
            result = ToolResultBlock(tool_use_id=tool_use.id, content=output)
        except UnknownTool as e:
            logger.warning("Model requested unknown tool '%s'", e.name)
            result = ToolResultBlock(tool_use_id=tool_use.id, content=str(e), is_error=True)
        except ToolError as e:
            logger.warning("Tool '%s' failed: %s", tool_use.name, e)
            result = ToolResultBlock(tool_use_id=tool_use.id, content=str(e), is_error=True)
        except Exception as e:
            logger.exception("Tool dispatch error for %s", tool_use.name)
            result = ToolResultBlock(tool_use_id=tool_use.id, content=f"Tool error: {e}", is_error=True)
        duration_ms = int((time.monotonic() - start_time) * 1000)

        logger.info(
            "Tool %s (%s) finished in %dms%s",
            tool_use.name,
            tool_use.id,
            duration_ms,
            " with error" if result.is_error else "",
        )
        self._notify(self._callbacks.on_tool_end, tool_use, result)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: LoopState) -> None:
        if state != self._state:
            logger.debug("Loop state %s -> %s", self._state.value, state.value)
            self._state = state

    @staticmethod
    def _notify(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is not None:
            callback(*args)
