"""Interactive REPL front end for the agent loop.

Reads a line, runs one agent turn (tools included), prints the reply as
it streams, and loops. Ctrl-C during a turn cancels it, which
terminates the session.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from enum import Enum
from typing import Any

from agentloop.api.transport import AnthropicTransport
from agentloop.config import Settings
from agentloop.errors import AgentError, CancellationRequested
from agentloop.models import ToolResultBlock, ToolUseBlock
from agentloop.runner import AgentCallbacks, AgentRunner
from agentloop.tools import ToolRegistry, register_builtin_tools

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"quit", "exit", "q"})


class AnsiColors(Enum):
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    print(f"{color.value}{text}\033[0m", *args, **kwargs)


# ---------------------------------------------------------------------------
# REPL helpers
# ---------------------------------------------------------------------------


def read_input() -> str | None:
    """Prompt and read one line. Returns None on EOF or Ctrl-C."""
    try:
        return input("> ").strip()
    except (EOFError, KeyboardInterrupt):
        return None


def should_exit(text: str) -> bool:
    return text.lower() in EXIT_COMMANDS


def _print_text(chunk: str) -> None:
    print(chunk, end="", flush=True)


def _print_tool_start(tool_use: ToolUseBlock) -> None:
    print()
    colored_print(f"[{tool_use.name}] running...", AnsiColors.BLUE, flush=True)


def _print_tool_end(tool_use: ToolUseBlock, result: ToolResultBlock) -> None:
    if result.is_error:
        colored_print(f"[{tool_use.name}] failed: {result.content[:200]}", AnsiColors.RED, flush=True)
    else:
        colored_print(f"[{tool_use.name}] done", AnsiColors.GREEN, flush=True)


def build_runner(settings: Settings, transport: AnthropicTransport, use_tools: bool) -> AgentRunner:
    registry = ToolRegistry()
    if use_tools:
        register_builtin_tools(registry, settings)
    callbacks = AgentCallbacks(
        on_text=_print_text,
        on_interim=lambda _text: print(),
        on_tool_start=_print_tool_start,
        on_tool_end=_print_tool_end,
    )
    return AgentRunner(settings, transport, registry, callbacks=callbacks)


def repl(settings: Settings, use_tools: bool = True) -> int:
    """Run the read-eval-print loop until the user quits. Returns an exit code."""
    transport = AnthropicTransport(settings)

    with asyncio.Runner() as loop:
        loop.run(transport.start())
        agent = build_runner(settings, transport, use_tools)
        try:
            colored_print("agentloop -- type 'quit' or 'exit' to stop.", AnsiColors.GREEN)
            while True:
                user_input = read_input()
                if user_input is None:
                    print()
                    break
                if not user_input:
                    continue
                if should_exit(user_input):
                    print("Goodbye!")
                    break

                try:
                    loop.run(agent.send(user_input))
                    print("\n")
                except (KeyboardInterrupt, CancellationRequested) as e:
                    print()
                    colored_print(f"Turn cancelled: {str(e) or 'interrupted'}", AnsiColors.YELLOW)
                    return 130
                except AgentError as e:
                    print()
                    colored_print(f"Error: {e}", AnsiColors.RED)
        finally:
            loop.run(transport.close())

    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="agentloop", description="Chat with a tool-using agent.")
    parser.add_argument("--model", help="Model id (default from settings)")
    parser.add_argument("--system", help="System prompt")
    parser.add_argument("--no-stream", action="store_true", help="Use the non-streaming endpoint")
    parser.add_argument("--no-tools", action="store_true", help="Do not register built-in tools")
    parser.add_argument("--log-level", help="Logging level (default from settings)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point -- parse flags and settings, run the REPL."""
    args = parse_args(argv)

    overrides: dict[str, Any] = {}
    if args.model:
        overrides["model"] = args.model
    if args.system:
        overrides["system_prompt"] = args.system
    if args.no_stream:
        overrides["stream"] = False
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = Settings(**overrides)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger.info("Model: %s (streaming: %s)", settings.model, settings.stream)

    if not settings.anthropic_api_key and not settings.anthropic_auth_token:
        colored_print("Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set.", AnsiColors.RED)
        return 1

    return repl(settings, use_tools=not args.no_tools)


if __name__ == "__main__":
    sys.exit(main())
