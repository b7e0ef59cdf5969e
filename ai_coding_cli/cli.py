"""Terminal UI for AI Coding CLI."""

import atexit
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm

from ai_coding_cli.commands import COMMANDS
from ai_coding_cli.config import get_config
from ai_coding_cli.logging import get_logger
from ai_coding_cli.tools.registry import CommandResult
from ai_coding_cli.turn import TurnEvent, TurnEventKind

log = get_logger(__name__)

HISTORY_FILE = Path("~/.ai-coding-cli/history").expanduser()


class TerminalUI:
    """Line-oriented terminal UI.

    Reasoning text is rendered dim, visible text is streamed as-is.
    """

    def __init__(self, console: Console | None = None, history_file: Path | None = None):
        self.config = get_config()
        self.console = console or Console(
            highlight=False,
            no_color=not self.config.ui.colors,
        )
        self._special_commands = list(COMMANDS)
        self._readline = None
        self._history_file = history_file or HISTORY_FILE
        self._stream_open = False
        self._setup_readline()

    def _setup_readline(self) -> None:
        """Set up line editing, history, and command completion."""
        try:
            import readline  # type: ignore
        except ImportError:
            return

        self._readline = readline

        try:
            self._history_file.parent.mkdir(parents=True, exist_ok=True)
            if self._history_file.exists():
                readline.read_history_file(str(self._history_file))
            readline.set_history_length(1000)
            if hasattr(readline, "set_auto_history"):
                readline.set_auto_history(False)
            readline.parse_and_bind("tab: complete")
            readline.set_completer(self._complete_special_command)
            atexit.register(self._save_history)
        except OSError as e:
            log.debug("Readline setup failed", error=str(e))

    def _save_history(self) -> None:
        """Persist readline history to disk."""
        if self._readline is None:
            return
        try:
            self._readline.write_history_file(str(self._history_file))
        except OSError as e:
            log.debug("Failed to save history", error=str(e))

    def _complete_special_command(self, text: str, state: int) -> str | None:
        """Readline completer for slash commands."""
        if not text.startswith("/"):
            return None
        matches = [cmd for cmd in self._special_commands if cmd.startswith(text)]
        if state < len(matches):
            return matches[state]
        return None

    def print_welcome(self, conversation_id: str, working_dir: str, project_loaded: bool) -> None:
        cfg = self.config
        self.console.print("=== AI Coding CLI ===", style="bold magenta")
        self.console.print(f"Model: {cfg.model.model}", style="dim")
        self.console.print(f"Server: {cfg.model.base_url}", style="dim")
        self.console.print(f"Conversation: {conversation_id}", style="dim")
        if project_loaded:
            self.console.print(f"Project structure loaded: {working_dir}", style="green")
        self.console.print("Type '/help' for commands.\n", style="dim")

    def print_message(self, role: str, content: str) -> None:
        """Print a message with a role prefix."""
        self._close_stream()
        if role == "system":
            self.console.print(content, style="cyan", markup=False)
            return
        self.console.print(f"[{role.upper()}] {content}", markup=False)

    def print_error(self, error: str) -> None:
        self._close_stream()
        self.console.print(f"Error: {error}", style="bold red", markup=False)

    def print_warning(self, warning: str) -> None:
        self._close_stream()
        self.console.print(f"Warning: {warning}", style="yellow", markup=False)

    def print_success(self, message: str) -> None:
        self._close_stream()
        self.console.print(f"OK: {message}", style="green", markup=False)

    def print_notice(self, message: str) -> None:
        self._close_stream()
        self.console.print(message, style="cyan", markup=False)

    def print_reasoning(self, chunk: str) -> None:
        """Stream reasoning text, dimmed."""
        if not self.config.ui.show_thinking:
            return
        self._stream_open = True
        self.console.print(chunk, style="dim italic", end="", markup=False)

    def print_streaming(self, chunk: str) -> None:
        """Stream visible reply text."""
        self._stream_open = True
        self.console.print(chunk, end="", markup=False)

    def print_stats(self, rendered: str) -> None:
        if not self.config.ui.show_stats:
            return
        self._close_stream()
        self.console.print(rendered, style="dim", markup=False)

    def print_command_result(self, result: CommandResult) -> None:
        """Print one executed command and its raw output."""
        self._close_stream()
        if result.skipped:
            self.console.print(f"- skipped: {result.command}", style="yellow", markup=False)
            return
        style = "green" if result.success else "red"
        mark = "✔" if result.success else "✖"
        self.console.print(f"{mark} {result.command}", style=style, markup=False)
        output = (result.stdout or "").rstrip()
        if output:
            self.console.print(output, markup=False)
        if not result.success:
            detail = (result.stderr or "").rstrip() or (result.error or "")
            if detail:
                self.console.print(detail, style="red", markup=False)

    def _close_stream(self) -> None:
        if self._stream_open:
            self.console.print()
            self._stream_open = False

    def prompt(self, auto_execute: bool = False) -> str:
        """Read one line of input."""
        self._close_stream()
        label = "You [AUTO]: " if auto_execute else "You: "
        value = input(label)
        if self._readline and value.strip():
            self._readline.add_history(value)
        return value

    def confirm(self, message: str) -> bool:
        """Ask a yes/no question; defaults to no, Ctrl+C declines."""
        self._close_stream()
        try:
            return Confirm.ask(message, console=self.console, default=False)
        except KeyboardInterrupt:
            self.console.print()
            self.print_warning("Interrupted, command declined")
            return False

    def render_event(self, event: TurnEvent) -> None:
        """Render one turn event."""
        if event.kind is TurnEventKind.REASONING:
            self.print_reasoning(event.text)
        elif event.kind is TurnEventKind.VISIBLE:
            self.print_streaming(event.text)
        elif event.kind is TurnEventKind.COMMAND and event.result is not None:
            self.print_command_result(event.result)
        elif event.kind is TurnEventKind.NOTICE:
            self.print_notice(event.text)
        elif event.kind is TurnEventKind.STATS and event.stats is not None:
            self.print_stats(event.stats.render())
        elif event.kind is TurnEventKind.DONE:
            self._close_stream()


# Global UI instance
_ui: "TerminalUI | None" = None


def get_ui() -> TerminalUI:
    """Get the global UI instance."""
    global _ui
    if _ui is None:
        _ui = TerminalUI()
    return _ui
