from agentloop.tools.builtin import GetCurrentTimeTool, register_builtin_tools
from agentloop.tools.registry import FunctionTool, Tool, ToolRegistry

__all__ = [
    "FunctionTool",
    "GetCurrentTimeTool",
    "Tool",
    "ToolRegistry",
    "register_builtin_tools",
]
