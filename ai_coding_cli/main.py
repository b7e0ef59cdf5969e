"""Main entry point for AI Coding CLI."""

import asyncio
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer

from ai_coding_cli.analyzer import build_quick_context, quick_scan_project
from ai_coding_cli.cli import TerminalUI, get_ui
from ai_coding_cli.commands import AppState, CommandAction, handle_command, is_command
from ai_coding_cli.config import Config, get_config, set_config
from ai_coding_cli.exceptions import ConfigurationError, SessionNotFoundError
from ai_coding_cli.llm import get_provider
from ai_coding_cli.logging import close_log_file, configure_logging, log
from ai_coding_cli.session import Conversation, get_conversation_store
from ai_coding_cli.tools.shell import ShellCommandRunner
from ai_coding_cli.turn import StopReason, TurnController, TurnEventKind
from ai_coding_cli.validator import validate_input


def main(
    config: str = "",
    model: str = "",
    base_url: str = "",
    auto: bool = False,
    resume: str = "",
    verbose: bool = False,
    log_file: bool = False,
) -> None:
    """Start an interactive AI Coding CLI session."""
    # Load configuration
    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            configure_logging()
            log.error("Failed to load config", path=config, error=str(e))
            cfg = Config.load()
    else:
        cfg = Config.load()

    # Apply CLI overrides
    if model:
        cfg.model.model = model
    if base_url:
        cfg.model.base_url = base_url
    if auto:
        cfg.agent.auto_execute = True
    if log_file:
        cfg.logging.to_file = True

    set_config(cfg)
    configure_logging("DEBUG" if verbose else None)

    try:
        asyncio.run(run_interactive(resume=resume))
    except KeyboardInterrupt:
        log.info("Shutting down...")
        sys.exit(0)
    except ConfigurationError as e:
        log.error("Configuration error", error=str(e))
        sys.exit(2)
    except Exception as e:
        log.error("Fatal error", error=str(e))
        sys.exit(1)
    finally:
        close_log_file()


async def _load_project_context(state: AppState, cwd: str) -> None:
    scan = await asyncio.to_thread(quick_scan_project, cwd, state.config.analyzer.max_depth)
    state.quick_context = build_quick_context(scan)
    log.info("Project structure loaded", files=len(scan.files), dirs=len(scan.dirs))


class TurnInterrupts:
    """Routes Ctrl+C while a turn runs.

    The first interrupt sets the turn's cancel event, a second one cancels
    the turn task. Blocking prompts run inside ``suspended()`` so Ctrl+C
    raises ``KeyboardInterrupt`` there as usual.
    """

    def __init__(self) -> None:
        self.cancel_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def reset(self) -> asyncio.Event:
        self.cancel_event = asyncio.Event()
        return self.cancel_event

    def on_interrupt(self) -> None:
        if self.cancel_event.is_set() and self._task is not None and not self._task.done():
            log.info("Second interrupt, abandoning turn")
            self._task.cancel()
            return
        log.info("Interrupt received, cancelling reply")
        self.cancel_event.set()

    def _install(self) -> None:
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, self.on_interrupt)
        except (NotImplementedError, RuntimeError):
            return
        self._installed = True

    def _remove(self) -> None:
        if self._installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
            self._installed = False

    @contextmanager
    def guarding(self, task: asyncio.Task) -> Iterator[None]:
        self._task = task
        self._install()
        try:
            yield
        finally:
            self._remove()
            self._task = None

    @contextmanager
    def suspended(self) -> Iterator[None]:
        was_installed = self._installed
        self._remove()
        try:
            yield
        finally:
            if was_installed:
                self._install()


async def _run_turn(
    ui: TerminalUI,
    state: AppState,
    controller: TurnController,
    interrupts: TurnInterrupts,
    text: str,
) -> None:
    """Run one turn; Ctrl+C stops the reply, a second Ctrl+C abandons the turn."""
    cancel_event = interrupts.reset()
    controller.auto_execute = state.auto_execute

    async def consume() -> None:
        stream = controller.stream_turn(state.conversation, text, cancel_event)
        try:
            async for event in stream:
                ui.render_event(event)
                if event.kind is TurnEventKind.DONE and event.outcome is not None:
                    if event.outcome.reason is StopReason.COMMUNICATION_FAILURE:
                        ui.print_error("Could not reach the model; your message was not kept, resend it.")
        finally:
            await stream.aclose()

    work_task = asyncio.create_task(consume())
    try:
        with interrupts.guarding(work_task):
            await asyncio.wait({work_task})
    finally:
        if not work_task.done():
            work_task.cancel()
            await asyncio.wait({work_task})

    if work_task.cancelled():
        ui.print_warning("Turn abandoned.")
        return
    work_task.result()


async def run_interactive(resume: str = "") -> None:
    """Run the interactive loop."""
    ui = get_ui()
    cfg = get_config()
    store = get_conversation_store()

    conversation = Conversation(model=cfg.model.model)
    if resume:
        try:
            conversation = await store.load(resume)
        except SessionNotFoundError as e:
            ui.print_error(str(e))

    state = AppState(
        conversation=conversation,
        store=store,
        config=cfg,
        auto_execute=cfg.agent.auto_execute,
    )
    interrupts = TurnInterrupts()

    def approve(question: str) -> bool:
        with interrupts.suspended():
            return ui.confirm(question)

    runner = ShellCommandRunner(config=cfg.tools.shell, approval_callback=approve)

    try:
        await _load_project_context(state, runner.working_dir)
    except OSError as e:
        log.warning("Project scan failed", error=str(e))

    def build_system_prompt() -> str:
        return (
            f"{cfg.agent.system_prompt}\n"
            f"Current working directory: {runner.working_dir}"
            f"{state.quick_context}"
        )

    async def refresh_context(cwd: str) -> None:
        await _load_project_context(state, cwd)

    provider = get_provider()
    controller = TurnController(
        provider,
        runner,
        system_prompt_builder=build_system_prompt,
        context_refresher=refresh_context,
        config=cfg,
    )

    ui.print_welcome(conversation.id, runner.working_dir, bool(state.quick_context))
    if not await provider.check_connection():
        ui.print_warning(f"Cannot reach the model server at {cfg.model.base_url}")

    try:
        while True:
            try:
                user_input = ui.prompt(state.auto_execute)

                if is_command(user_input):
                    action = await handle_command(user_input, state, ui)
                    if action is CommandAction.EXIT:
                        log.info("User ended the session")
                        break
                    continue

                validation = validate_input(user_input, cfg.input.max_length, cfg.input.warn_length)
                for warning in validation.warnings:
                    ui.print_warning(warning)
                if not validation.valid:
                    continue

                await _run_turn(ui, state, controller, interrupts, validation.sanitized)

                if cfg.session.auto_save and state.conversation.messages:
                    await store.save(state.conversation)

            except KeyboardInterrupt:
                log.info("Interrupted by user")
                break
            except EOFError:
                log.info("EOF received")
                break
            except Exception as e:
                ui.print_error(str(e))
                log.error("Error in interactive loop", error=str(e))
    finally:
        if cfg.session.auto_save and state.conversation.messages:
            try:
                await store.save(state.conversation)
            except Exception as e:
                log.error("Failed to save conversation on exit", error=str(e))
        await store.close()
        await provider.close()


def version() -> None:
    """Show version information."""
    from ai_coding_cli import __version__
    print(f"AI Coding CLI v{__version__}")


cli = typer.Typer(help="AI Coding CLI - a terminal coding agent for local models")


@cli.command()
def run(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    base_url: str = typer.Option("", "--base-url", help="Override model server URL"),
    auto: bool = typer.Option(False, "--auto", help="Run commands without asking (dangerous ones still ask)"),
    resume: str = typer.Option("", "-r", "--resume", help="Resume a saved conversation by ID"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
    log_file: bool = typer.Option(False, "--log-file", help="Write logs to ~/.ai-coding-cli/logs instead of stderr"),
) -> None:
    main(config, model, base_url, auto, resume, verbose, log_file)


@cli.command("version")
def version_command() -> None:
    version()


if __name__ == "__main__":
    cli()
