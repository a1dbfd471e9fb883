"""Interactive shell for toolchat."""

from __future__ import annotations

import json
import logging
from typing import (
    Callable,
    Dict,
    Tuple,
)

from toolchat.agent.agent_loop import ToolAugmentedSession
from toolchat.agent.model_client import (
    TransportError,
    TurnCancelled,
)
from toolchat.common import (
    AnsiColors,
    colored_print,
    shorten,
)
from toolchat.core.schema import TurnResult
from toolchat.memory.memory_document import UpsertMode

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands:
  /help                      show this help
  /clear                     forget the conversation (memory stays)
  /history                   show the conversation so far
  /tools                     list the available tools
  /memory <category> <text>  append <text> to a memory category
  /memory! <category> <text> replace the body of a memory category
  /force                     toggle forced tool use
  /exit                      quit (also: exit, quit, Ctrl+D)"""


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def _cmd_help(session: ToolAugmentedSession, arg: str) -> None:
    colored_print(HELP_TEXT, AnsiColors.CYAN)


def _cmd_clear(session: ToolAugmentedSession, arg: str) -> None:
    session.clear()
    colored_print("Conversation cleared.", AnsiColors.GREEN)


def _cmd_history(session: ToolAugmentedSession, arg: str) -> None:
    turns = [msg for msg in session.history() if msg.role != "system"]
    if not turns:
        colored_print("No messages yet.", AnsiColors.CYAN)
        return
    for msg in turns:
        color = AnsiColors.BLUE if msg.role == "user" else AnsiColors.YELLOW
        colored_print(f"[{msg.role}] {shorten(msg.content, 200)}", color)


def _cmd_tools(session: ToolAugmentedSession, arg: str) -> None:
    for tool in session.catalog:
        colored_print(f"{tool.signature()}", AnsiColors.GREEN)
        colored_print(f"    {tool.description}", AnsiColors.CYAN)


def _write_memory(session: ToolAugmentedSession, arg: str, mode: UpsertMode) -> None:
    category, _, text = arg.partition(" ")
    if not category or not text.strip():
        colored_print("Usage: /memory[!] <category> <text>", AnsiColors.RED)
        return
    if session.update_memory_category(category, text.strip(), mode=mode):
        verb = "Replaced" if mode == "replace" else "Saved to"
        colored_print(f"{verb} memory category '{category}'.", AnsiColors.GREEN)
    else:
        colored_print("Could not write the memory file (see log).", AnsiColors.RED)


def _cmd_memory(session: ToolAugmentedSession, arg: str) -> None:
    _write_memory(session, arg, "append")


def _cmd_memory_replace(session: ToolAugmentedSession, arg: str) -> None:
    _write_memory(session, arg, "replace")


def _cmd_force(session: ToolAugmentedSession, arg: str) -> None:
    session.force_tools = not session.force_tools
    state = "on" if session.force_tools else "off"
    colored_print(f"Forced tool use is {state}.", AnsiColors.GREEN)


COMMANDS: Dict[str, Callable[[ToolAugmentedSession, str], None]] = {
    "/help": _cmd_help,
    "/clear": _cmd_clear,
    "/history": _cmd_history,
    "/tools": _cmd_tools,
    "/memory": _cmd_memory,
    "/memory!": _cmd_memory_replace,
    "/force": _cmd_force,
}

EXIT_WORDS = {"/exit", "exit", "quit"}


def handle_command(session: ToolAugmentedSession, line: str) -> bool:
    """Run a slash command; returns False if *line* is not a known command."""
    name, _, arg = line.partition(" ")
    command = COMMANDS.get(name.lower())
    if command is None:
        return False
    command(session, arg.strip())
    return True


def print_turn(result: TurnResult) -> None:
    """Show tool results (if any) and the final reply."""
    for tool_result in result.tool_results:
        if tool_result.ok:
            payload = shorten(json.dumps(tool_result.output, ensure_ascii=False, default=str), 300)
            colored_print(f"[{tool_result.tool_name}] {payload}", AnsiColors.GREEN)
        else:
            colored_print(f"[{tool_result.tool_name}] {tool_result.error}", AnsiColors.RED)
    colored_print(result.response_text, AnsiColors.YELLOW)


# ---------------------------------------------------------------------------
# Shell loop
# ---------------------------------------------------------------------------
def run_cli(session: ToolAugmentedSession | None = None) -> None:
    """Run the interactive shell until the user exits."""
    if session is None:
        session = ToolAugmentedSession()

    colored_print("\ntoolchat shell - type /help for commands, /exit (or Ctrl+D) to quit", AnsiColors.GREEN)
    if session.force_tools:
        colored_print("Forced tool use is on.", AnsiColors.CYAN)

    while True:
        colored_print("\nYou: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if not user_msg:
            continue
        if user_msg.lower() in EXIT_WORDS:
            break
        if user_msg.startswith("/"):
            if not handle_command(session, user_msg):
                colored_print(f"Unknown command: {user_msg.split()[0]} (try /help)", AnsiColors.RED)
            continue

        try:
            result = session.send_message(user_msg)
        except TransportError as exc:
            colored_print(f"Model error: {exc}", AnsiColors.RED)
            continue
        except TurnCancelled:
            colored_print("Cancelled.", AnsiColors.RED)
            continue

        print_turn(result)


if __name__ == "__main__":
    run_cli()
