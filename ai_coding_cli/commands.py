"""Slash command dispatch for the interactive loop."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from ai_coding_cli.config import Config, get_config
from ai_coding_cli.exceptions import SessionError, ValidationError
from ai_coding_cli.logging import configure_logging, get_logger
from ai_coding_cli.session import Conversation, ConversationStore

log = get_logger(__name__)

COMMANDS: dict[str, str] = {
    "/help": "Show this help",
    "/exit": "Save the conversation and exit",
    "/quit": "Same as /exit",
    "/clear": "Clear the conversation history",
    "/info": "Show configuration and conversation details",
    "/save": "Save the conversation now",
    "/history": "List saved conversations",
    "/load": "Load a saved conversation: /load <id>",
    "/autorun": "Toggle automatic command execution",
    "/debug": "Toggle debug logging",
}


class CommandAction(str, Enum):
    CONTINUE = "continue"
    EXIT = "exit"
    CLEARED = "cleared"
    LOADED = "loaded"
    UNKNOWN = "unknown"


@dataclass
class AppState:
    """State shared between the interactive loop and slash commands."""

    conversation: Conversation
    store: ConversationStore
    config: Config = field(default_factory=get_config)
    auto_execute: bool = False
    debug: bool = False
    quick_context: str = ""


def is_command(text: str) -> bool:
    return text.strip().startswith("/")


async def handle_command(text: str, state: AppState, ui: Any) -> CommandAction:
    """Dispatch one slash command.

    Args:
        text: Raw input starting with ``/``
        state: Shared application state, mutated in place
        ui: Object with ``print_message``, ``print_success``,
            ``print_warning`` and ``print_error``
    """
    parts = text.strip().split(None, 1)
    name = parts[0].lower() if parts else ""
    arg = parts[1].strip() if len(parts) > 1 else ""

    handler = _HANDLERS.get(name)
    if handler is None:
        return _cmd_unknown(name, ui)
    log.debug("Slash command", command=name)
    return await handler(state, ui, arg)


def _help_lines() -> list[str]:
    return [f"  {name.ljust(10)} {desc}" for name, desc in COMMANDS.items()]


async def _cmd_help(state: AppState, ui: Any, arg: str) -> CommandAction:
    ui.print_message("system", "Commands:\n" + "\n".join(_help_lines()))
    return CommandAction.CONTINUE


async def _save(state: AppState, ui: Any) -> bool:
    try:
        await state.store.save(state.conversation)
    except (SessionError, ValidationError, OSError) as e:
        log.error("Failed to save conversation", error=str(e))
        ui.print_error(f"Failed to save conversation: {e}")
        return False
    return True


async def _cmd_exit(state: AppState, ui: Any, arg: str) -> CommandAction:
    if state.conversation.messages and await _save(state, ui):
        ui.print_success(f"Conversation saved (ID: {state.conversation.id})")
    return CommandAction.EXIT


async def _cmd_clear(state: AppState, ui: Any, arg: str) -> CommandAction:
    state.conversation.clear()
    ui.print_success("History cleared")
    return CommandAction.CLEARED


async def _cmd_info(state: AppState, ui: Any, arg: str) -> CommandAction:
    cfg = state.config
    lines = [
        f"Model: {cfg.model.model}",
        f"Server: {cfg.model.base_url}",
        f"Conversation: {state.conversation.id}",
        f"Messages: {len(state.conversation.messages)}",
        f"Window: {cfg.context.max_history_messages} messages",
        f"Auto-execute: {'on' if state.auto_execute else 'off'}",
        f"Debug logging: {'on' if state.debug else 'off'}",
        f"Project context: {'loaded' if state.quick_context else 'none'}",
    ]
    ui.print_message("system", "\n".join(lines))
    return CommandAction.CONTINUE


async def _cmd_save(state: AppState, ui: Any, arg: str) -> CommandAction:
    if await _save(state, ui):
        ui.print_success(f"Conversation saved (ID: {state.conversation.id})")
    return CommandAction.CONTINUE


async def _cmd_history(state: AppState, ui: Any, arg: str) -> CommandAction:
    summaries = await state.store.list()
    if not summaries:
        ui.print_message("system", "No saved conversations.")
        return CommandAction.CONTINUE
    lines = [f"Saved conversations ({len(summaries)}):"]
    for summary in summaries:
        lines.append(
            f"  {summary.id} | {summary.updated_at[:19]} | "
            f"{summary.message_count} msg | {summary.preview}"
        )
    lines.append("Use /load <id> to load a conversation.")
    ui.print_message("system", "\n".join(lines))
    return CommandAction.CONTINUE


async def _cmd_load(state: AppState, ui: Any, arg: str) -> CommandAction:
    if not arg:
        ui.print_warning("Usage: /load <id>")
        return CommandAction.CONTINUE
    try:
        loaded = await state.store.load(arg)
    except SessionError as e:
        ui.print_error(f"Failed to load conversation: {e}")
        return CommandAction.CONTINUE

    conversation = state.conversation
    conversation.id = loaded.id
    conversation.model = loaded.model
    conversation.created_at = loaded.created_at
    conversation.updated_at = loaded.updated_at
    conversation.metadata = loaded.metadata
    conversation.messages[:] = loaded.messages
    ui.print_success(f"Loaded conversation {loaded.id} ({len(loaded.messages)} messages)")
    return CommandAction.LOADED


async def _cmd_autorun(state: AppState, ui: Any, arg: str) -> CommandAction:
    state.auto_execute = not state.auto_execute
    if state.auto_execute:
        ui.print_warning("Auto-execute: on (dangerous commands still ask)")
    else:
        ui.print_success("Auto-execute: off")
    return CommandAction.CONTINUE


async def _cmd_debug(state: AppState, ui: Any, arg: str) -> CommandAction:
    state.debug = not state.debug
    configure_logging("DEBUG" if state.debug else state.config.logging.level)
    ui.print_success(f"Debug logging: {'on' if state.debug else 'off'}")
    return CommandAction.CONTINUE


def _cmd_unknown(name: str, ui: Any) -> CommandAction:
    ui.print_warning(f"Unknown command: {name}")
    ui.print_message("system", "Available commands:\n" + "\n".join(_help_lines()))
    return CommandAction.UNKNOWN


_HANDLERS: dict[str, Callable[[AppState, Any, str], Awaitable[CommandAction]]] = {
    "/help": _cmd_help,
    "/exit": _cmd_exit,
    "/quit": _cmd_exit,
    "/clear": _cmd_clear,
    "/info": _cmd_info,
    "/save": _cmd_save,
    "/history": _cmd_history,
    "/load": _cmd_load,
    "/autorun": _cmd_autorun,
    "/debug": _cmd_debug,
}
