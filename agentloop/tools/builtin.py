"""Built-in tools: get_current_time, bash, read_file, write_file.

File and shell tools are confined to ``Settings.workspace_dir``. Failures
raise ToolError so the runner can hand them back to the model.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agentloop.config import Settings
from agentloop.errors import ToolError
from agentloop.models import ToolDefinition
from agentloop.tools.registry import Tool, ToolRegistry

logger = logging.getLogger(__name__)

# Limits
_MAX_BASH_TIMEOUT = 300  # seconds
_MAX_OUTPUT_CHARS = 100 * 1024  # 100KB
_MAX_FILE_SIZE = 1 * 1024 * 1024  # 1MB


def _validate_path(path_str: str, workspace_dir: str) -> Path:
    """Resolve a path and make sure it stays under workspace_dir."""
    workspace = Path(workspace_dir).resolve()
    candidate = Path(path_str)
    target = candidate.resolve() if candidate.is_absolute() else (workspace / candidate).resolve()

    if not target.is_relative_to(workspace):
        raise ToolError(
            f"Path '{path_str}' is outside workspace '{workspace_dir}'. "
            "Only paths within the workspace directory are allowed."
        )
    return target


def _truncate(text: str, label: str) -> str:
    if len(text) > _MAX_OUTPUT_CHARS:
        return text[:_MAX_OUTPUT_CHARS] + f"\n... [{label} truncated at 100KB]"
    return text


# ---------------------------------------------------------------------------
# get_current_time
# ---------------------------------------------------------------------------


class GetCurrentTimeTool(Tool):
    """Returns the current date and time. No side effects."""

    @property
    def name(self) -> str:
        return "get_current_time"

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="get_current_time",
            description=(
                "Get the current date and time. Use this when the user asks "
                "about the current time or date."
            ),
            input_schema={"type": "object", "properties": {}, "required": []},
        )

    async def execute(self, input: dict[str, Any]) -> str:
        now = datetime.now(UTC)
        return f"{now.isoformat()} (Unix timestamp: {int(now.timestamp())})"


# ---------------------------------------------------------------------------
# Workspace tool handlers
# ---------------------------------------------------------------------------


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the shell and reap it. A process that already exited is left alone."""
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


async def bash_tool(command: str, timeout: int = 30, *, _workspace_dir: str) -> str:
    """Execute a shell command in the workspace directory.

    Returns stdout, then stderr and the exit code when present. A
    non-zero exit is reported in the output, not raised.
    """
    effective_timeout = max(1, min(timeout, _MAX_BASH_TIMEOUT))

    workspace = Path(_workspace_dir)
    workspace.mkdir(parents=True, exist_ok=True)

    proc = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(workspace),
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=effective_timeout)
    except asyncio.CancelledError:
        await _kill(proc)
        raise
    except asyncio.TimeoutError:
        await _kill(proc)
        raise ToolError(f"Command timed out after {effective_timeout}s.\nCommand: {command}")

    stdout_text = _truncate(stdout.decode("utf-8", errors="replace"), "output")
    stderr_text = _truncate(stderr.decode("utf-8", errors="replace"), "stderr")

    parts = []
    if stdout_text:
        parts.append(stdout_text)
    if stderr_text:
        parts.append(f"STDERR:\n{stderr_text}")
    if proc.returncode != 0:
        parts.append(f"Exit code: {proc.returncode}")

    return "\n".join(parts) if parts else "(no output)"


def _read_lines(target: Path, offset: int, limit: int) -> str:
    stop = offset + limit if limit > 0 else None
    with target.open(encoding="utf-8", errors="replace") as f:
        return "".join(itertools.islice(f, offset, stop))


async def read_file_tool(path: str, offset: int = 0, limit: int = 0, *, _workspace_dir: str) -> str:
    """Read a UTF-8 file from the workspace, optionally a slice of lines.

    Files over the size cap can still be read a slice at a time by
    passing ``limit``; the cap then applies to the slice.
    """
    target = _validate_path(path, _workspace_dir)

    if not target.exists():
        raise ToolError(f"File not found: {path}")
    if not target.is_file():
        raise ToolError(f"Not a file: {path}")

    file_size = target.stat().st_size
    if file_size > _MAX_FILE_SIZE and limit <= 0:
        raise ToolError(
            f"File too large: {file_size:,} bytes (limit: {_MAX_FILE_SIZE:,} bytes). "
            f"Pass limit (and optionally offset) to read a range of lines."
        )

    if offset > 0 or limit > 0:
        content = await asyncio.to_thread(_read_lines, target, offset, limit)
    else:
        content = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")

    if len(content) > _MAX_FILE_SIZE:
        raise ToolError(
            f"Selected range is {len(content):,} characters (limit: {_MAX_FILE_SIZE:,}). "
            f"Use a smaller limit."
        )

    return content if content else "(empty file)"


async def write_file_tool(path: str, content: str, *, _workspace_dir: str) -> str:
    """Write a file in the workspace, creating parent directories."""
    target = _validate_path(path, _workspace_dir)

    await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
    await asyncio.to_thread(target.write_text, content, encoding="utf-8")

    return f"File written successfully: {target}\nSize: {len(content):,} bytes"


# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

_BASH_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "command": {"type": "string", "description": "Shell command to execute"},
        "timeout": {
            "type": "integer",
            "description": "Timeout in seconds (default 30, max 300)",
            "default": 30,
            "minimum": 1,
            "maximum": 300,
        },
    },
    "required": ["command"],
}

_READ_FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "File path (relative or absolute within workspace)"},
        "offset": {
            "type": "integer",
            "description": "Line offset to start reading from (0-indexed)",
            "default": 0,
            "minimum": 0,
        },
        "limit": {
            "type": "integer",
            "description": "Number of lines to read (0 = all)",
            "default": 0,
            "minimum": 0,
        },
    },
    "required": ["path"],
}

_WRITE_FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "path": {"type": "string", "description": "File path (relative or absolute within workspace)"},
        "content": {"type": "string", "description": "Content to write to the file"},
    },
    "required": ["path", "content"],
}


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_builtin_tools(registry: ToolRegistry, settings: Settings) -> None:
    """Register get_current_time, bash, read_file and write_file.

    The workspace tools are closures that inject workspace_dir from settings.
    """
    workspace = settings.workspace_dir

    async def _bash(command: str, timeout: int = 30) -> str:
        return await bash_tool(command, timeout, _workspace_dir=workspace)

    async def _read_file(path: str, offset: int = 0, limit: int = 0) -> str:
        return await read_file_tool(path, offset, limit, _workspace_dir=workspace)

    async def _write_file(path: str, content: str) -> str:
        return await write_file_tool(path, content, _workspace_dir=workspace)

    registry.register(GetCurrentTimeTool())
    registry.register_function(
        "bash", _bash, "Execute a shell command in the workspace directory", _BASH_SCHEMA
    )
    registry.register_function(
        "read_file", _read_file, "Read a file from the workspace directory", _READ_FILE_SCHEMA
    )
    registry.register_function(
        "write_file", _write_file, "Write content to a file in the workspace directory", _WRITE_FILE_SCHEMA
    )
