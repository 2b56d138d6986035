"""Tests for build_request and MessagesRequest.to_payload."""

from agentloop.api.request import build_request
from agentloop.models import TextBlock, ToolDefinition, ToolResultBlock, ToolUseBlock, Turn

_TOOLS = [
    ToolDefinition(name="get_time", description="Get the time", input_schema={"type": "object", "properties": {}}),
    ToolDefinition(
        name="echo",
        description="Echo",
        input_schema={"type": "object", "properties": {"message": {"type": "string"}}},
    ),
]

_HISTORY = [
    Turn.user("What time is it?"),
    Turn.assistant([TextBlock(text="Checking."), ToolUseBlock(id="t1", name="get_time")]),
    Turn.tool_results([ToolResultBlock(tool_use_id="t1", content="42")]),
]


def _build(system_prompt="Be brief.", history=_HISTORY, tools=_TOOLS, stream=True):
    return build_request(system_prompt, history, tools, stream, model="claude-test", max_tokens=256)


class TestBuildRequest:

    def test_payload_shape(self):
        payload = _build().to_payload()
        assert payload["model"] == "claude-test"
        assert payload["max_tokens"] == 256
        assert payload["system"] == "Be brief."
        assert payload["stream"] is True
        assert [t["name"] for t in payload["tools"]] == ["get_time", "echo"]
        assert payload["messages"][0] == {"role": "user", "content": "What time is it?"}
        assert payload["messages"][1]["content"] == [
            {"type": "text", "text": "Checking."},
            {"type": "tool_use", "id": "t1", "name": "get_time", "input": {}},
        ]
        assert payload["messages"][2]["content"] == [
            {"type": "tool_result", "tool_use_id": "t1", "content": "42", "is_error": False},
        ]

    def test_system_omitted_when_absent(self):
        assert "system" not in _build(system_prompt=None).to_payload()

    def test_empty_system_counts_as_absent(self):
        assert "system" not in _build(system_prompt="").to_payload()

    def test_tools_omitted_when_empty(self):
        assert "tools" not in _build(tools=[]).to_payload()

    def test_stream_omitted_when_false(self):
        assert "stream" not in _build(stream=False).to_payload()

    def test_idempotent(self):
        """Identical inputs produce equal requests and identical payloads."""
        first, second = _build(), _build()
        assert first == second
        assert first.to_payload() == second.to_payload()

    def test_payload_is_a_copy(self):
        """Mutating a payload never leaks into the request, history or tool definitions."""
        request = _build()
        payload = request.to_payload()
        payload["tools"][0]["input_schema"]["properties"]["injected"] = {"type": "string"}
        payload["messages"][1]["content"][1]["input"]["x"] = 1
        assert "injected" not in _TOOLS[0].input_schema["properties"]
        assert _HISTORY[1].tool_uses()[0].input == {}
        assert request.to_payload() == _build().to_payload()

    def test_history_snapshot(self):
        history = list(_HISTORY[:1])
        request = _build(history=history)
        history.append(Turn.assistant([TextBlock(text="late")]))
        assert len(request.messages) == 1
