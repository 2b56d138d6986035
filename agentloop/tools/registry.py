"""Tool executor contract and the name-keyed tool registry.

Every tool exposes a name, a ToolDefinition for the model, and an async
``execute(input) -> str``. A tool signals its own failure by raising
ToolError; the registry adds only the "no such tool" case (UnknownTool)
and never catches or masks what a tool raises. Turning failures into
is_error tool results is the runner's job.
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from agentloop.errors import ToolError, UnknownTool
from agentloop.models import ToolDefinition

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool contract
# ---------------------------------------------------------------------------


class Tool(ABC):
    """Uniform interface all tools implement."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name; must match the name in definition()."""

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Descriptor sent to the model."""

    @abstractmethod
    async def execute(self, input: dict[str, Any]) -> str:
        """Run the tool. Returns output text or raises ToolError."""


class FunctionTool(Tool):
    """Adapts an async callable taking keyword arguments into a Tool.

    Argument mismatches and unexpected exceptions from the handler are
    converted to ToolError so a broken handler never escapes as anything
    but a tool failure.
    """

    def __init__(
        self,
        name: str,
        handler: Callable[..., Awaitable[str]],
        description: str,
        input_schema: dict[str, Any],
    ) -> None:
        if not inspect.iscoroutinefunction(handler):
            raise TypeError(f"Handler for tool '{name}' must be an async function")
        self._name = name
        self._handler = handler
        self._definition = ToolDefinition(
            name=name,
            description=description,
            input_schema=input_schema,
        )

    @property
    def name(self) -> str:
        return self._name

    def definition(self) -> ToolDefinition:
        return self._definition

    async def execute(self, input: dict[str, Any]) -> str:
        try:
            result = await self._handler(**input)
        except ToolError:
            raise
        except TypeError as exc:
            logger.exception("Argument error while executing tool '%s'", self._name)
            raise ToolError(f"Invalid arguments for tool '{self._name}': {exc}") from exc
        except Exception as exc:
            logger.exception("Unhandled error in tool '%s'", self._name)
            raise ToolError(f"Tool '{self._name}' raised an error: {exc}") from exc
        return str(result)


# ---------------------------------------------------------------------------
# ToolRegistry
# ---------------------------------------------------------------------------


class ToolRegistry:
    """Name-keyed tool lookup and dispatch.

    Read-only once set up, so it can be shared by concurrent tool
    executions. Definitions come back in registration order.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> None:
        """Register a tool. A duplicate name overwrites the earlier tool."""
        if tool.name in self._tools:
            logger.warning("Tool '%s' registered twice; replacing earlier registration", tool.name)
        self._tools[tool.name] = tool
        logger.debug("Registered tool '%s'", tool.name)

    def register_function(
        self,
        name: str,
        handler: Callable[..., Awaitable[str]],
        description: str,
        input_schema: dict[str, Any],
    ) -> None:
        """Register an async callable as a tool."""
        self.register(FunctionTool(name, handler, description, input_schema))

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        """All tool definitions, in registration order."""
        return [tool.definition() for tool in self._tools.values()]

    async def execute(self, name: str, input: dict[str, Any]) -> str:
        """Dispatch to the named tool.

        Raises UnknownTool if nothing is registered under ``name``;
        otherwise returns or raises exactly what the tool does.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownTool(name)
        logger.debug("Executing tool '%s' with input=%s", name, input)
        return await tool.execute(input)
