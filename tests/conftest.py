"""Shared fixtures: settings and tool registries."""

import pytest

from agentloop.config import Settings
from agentloop.tools import ToolRegistry


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with a throwaway workspace and a fake key."""
    return Settings(
        ANTHROPIC_API_KEY="test-key",
        ANTHROPIC_AUTH_TOKEN="",
        model="claude-test",
        max_tokens=256,
        max_turns=5,
        workspace_dir=str(tmp_path / "workspace"),
    )


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with get_time (returns "42") and echo tools."""
    reg = ToolRegistry()

    async def get_time() -> str:
        return "42"

    async def echo(message: str = "default") -> str:
        return f"Echo: {message}"

    reg.register_function("get_time", get_time, "Get the time", {"type": "object", "properties": {}})
    reg.register_function(
        "echo",
        echo,
        "Echo a message",
        {
            "type": "object",
            "properties": {"message": {"type": "string"}},
            "required": ["message"],
        },
    )
    return reg
