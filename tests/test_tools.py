"""Tests for the tool registry, FunctionTool and the built-in tools.

Tests cover:
- Registration order, duplicate overwrite, lookup
- UnknownTool for unregistered names
- ToolError passthrough and handler error wrapping
- get_current_time, read_file, write_file and bash against a tmp workspace
"""

import asyncio
import re

import pytest

from agentloop.errors import ToolError, UnknownTool
from agentloop.tools import FunctionTool, GetCurrentTimeTool, ToolRegistry, builtin, register_builtin_tools

_EMPTY_SCHEMA = {"type": "object", "properties": {}}


# ---------------------------------------------------------------------------
# TestToolRegistry
# ---------------------------------------------------------------------------


class TestToolRegistry:

    def test_definitions_in_registration_order(self, registry):
        assert [d.name for d in registry.definitions()] == ["get_time", "echo"]
        assert registry.names() == ["get_time", "echo"]
        assert len(registry) == 2
        assert "echo" in registry
        assert "nope" not in registry

    def test_definition_api_shape(self, registry):
        api = registry.get("get_time").definition().to_api()
        assert api == {"name": "get_time", "description": "Get the time", "input_schema": _EMPTY_SCHEMA}

    def test_duplicate_overwrites(self, registry):
        async def other() -> str:
            return "other"

        registry.register_function("get_time", other, "Replacement", _EMPTY_SCHEMA)
        assert len(registry) == 2
        assert registry.get("get_time").definition().description == "Replacement"

    @pytest.mark.asyncio
    async def test_duplicate_overwrite_is_used(self, registry):
        async def other() -> str:
            return "other"

        registry.register_function("get_time", other, "Replacement", _EMPTY_SCHEMA)
        assert await registry.execute("get_time", {}) == "other"

    @pytest.mark.asyncio
    async def test_execute(self, registry):
        assert await registry.execute("get_time", {}) == "42"
        assert await registry.execute("echo", {"message": "hi"}) == "Echo: hi"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry):
        with pytest.raises(UnknownTool) as exc_info:
            await registry.execute("does_not_exist", {})
        assert exc_info.value.name == "does_not_exist"
        assert "does_not_exist" in str(exc_info.value)

    def test_get_missing_returns_none(self, registry):
        assert registry.get("missing") is None


# ---------------------------------------------------------------------------
# TestFunctionTool
# ---------------------------------------------------------------------------


class TestFunctionTool:

    def test_sync_handler_rejected(self):
        def sync_handler() -> str:
            return "x"

        with pytest.raises(TypeError):
            FunctionTool("sync", sync_handler, "Sync", _EMPTY_SCHEMA)

    @pytest.mark.asyncio
    async def test_tool_error_passes_through(self):
        async def failing() -> str:
            raise ToolError("disk full")

        tool = FunctionTool("failing", failing, "Fails", _EMPTY_SCHEMA)
        with pytest.raises(ToolError, match="^disk full$"):
            await tool.execute({})

    @pytest.mark.asyncio
    async def test_bad_arguments_become_tool_error(self):
        async def needs_arg(message: str) -> str:
            return message

        tool = FunctionTool("needs_arg", needs_arg, "Needs arg", _EMPTY_SCHEMA)
        with pytest.raises(ToolError, match="Invalid arguments"):
            await tool.execute({"wrong": 1})

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_tool_error(self):
        async def broken() -> str:
            raise RuntimeError("boom")

        tool = FunctionTool("broken", broken, "Broken", _EMPTY_SCHEMA)
        with pytest.raises(ToolError, match="boom"):
            await tool.execute({})

    @pytest.mark.asyncio
    async def test_result_coerced_to_str(self):
        async def number() -> int:
            return 7

        tool = FunctionTool("number", number, "Number", _EMPTY_SCHEMA)
        assert await tool.execute({}) == "7"


# ---------------------------------------------------------------------------
# TestBuiltinTools
# ---------------------------------------------------------------------------


@pytest.fixture
def builtins(settings) -> ToolRegistry:
    reg = ToolRegistry()
    register_builtin_tools(reg, settings)
    return reg


class TestBuiltinTools:

    def test_registered_names(self, builtins):
        assert builtins.names() == ["get_current_time", "bash", "read_file", "write_file"]

    @pytest.mark.asyncio
    async def test_get_current_time(self):
        result = await GetCurrentTimeTool().execute({})
        assert re.search(r"\(Unix timestamp: \d+\)$", result)

    @pytest.mark.asyncio
    async def test_write_then_read(self, builtins, settings):
        written = await builtins.execute("write_file", {"path": "notes/a.txt", "content": "one\ntwo\nthree\n"})
        assert "File written successfully" in written
        assert await builtins.execute("read_file", {"path": "notes/a.txt"}) == "one\ntwo\nthree\n"
        assert await builtins.execute("read_file", {"path": "notes/a.txt", "offset": 1, "limit": 1}) == "two\n"

    @pytest.mark.asyncio
    async def test_read_missing_file(self, builtins):
        with pytest.raises(ToolError, match="File not found"):
            await builtins.execute("read_file", {"path": "missing.txt"})

    @pytest.mark.asyncio
    async def test_path_outside_workspace_rejected(self, builtins):
        with pytest.raises(ToolError, match="outside workspace"):
            await builtins.execute("write_file", {"path": "../escape.txt", "content": "x"})
        with pytest.raises(ToolError, match="outside workspace"):
            await builtins.execute("read_file", {"path": "/etc/passwd"})

    @pytest.mark.asyncio
    async def test_bash_echo(self, builtins):
        assert (await builtins.execute("bash", {"command": "echo hello"})).strip() == "hello"

    @pytest.mark.asyncio
    async def test_bash_nonzero_exit_reported(self, builtins):
        result = await builtins.execute("bash", {"command": "exit 3"})
        assert "Exit code: 3" in result

    @pytest.mark.asyncio
    async def test_bash_missing_command_argument(self, builtins):
        with pytest.raises(ToolError, match="Invalid arguments"):
            await builtins.execute("bash", {})

    @pytest.mark.asyncio
    async def test_bash_cancel_kills_process(self, tmp_path):
        """Cancelling the tool stops the shell before it reaches its next command."""
        workspace = tmp_path / "workspace"
        task = asyncio.create_task(
            builtin.bash_tool("sleep 0.5; touch alive", _workspace_dir=str(workspace))
        )
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.8)
        assert not (workspace / "alive").exists()

    @pytest.mark.asyncio
    async def test_large_file_needs_limit(self, builtins, monkeypatch):
        monkeypatch.setattr(builtin, "_MAX_FILE_SIZE", 40)
        content = "".join(f"line {i}\n" for i in range(20))
        await builtins.execute("write_file", {"path": "big.txt", "content": content})

        with pytest.raises(ToolError, match="Pass limit"):
            await builtins.execute("read_file", {"path": "big.txt"})
        assert await builtins.execute("read_file", {"path": "big.txt", "offset": 10, "limit": 2}) == (
            "line 10\nline 11\n"
        )

    @pytest.mark.asyncio
    async def test_oversized_slice_rejected(self, builtins, monkeypatch):
        monkeypatch.setattr(builtin, "_MAX_FILE_SIZE", 40)
        content = "".join(f"line {i}\n" for i in range(20))
        await builtins.execute("write_file", {"path": "big.txt", "content": content})

        with pytest.raises(ToolError, match="smaller limit"):
            await builtins.execute("read_file", {"path": "big.txt", "limit": 15})
