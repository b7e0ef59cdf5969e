"""Turn controller: one user submission, one or more round trips.

A turn streams a reply, stores its visible text, runs the commands embedded
in it and feeds their results back to the model until the reply needs no
further action, a budget is exhausted, the provider fails or the user
cancels.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, AsyncIterator, Awaitable, Callable

from ai_coding_cli.classifier import format_results_for_feedback
from ai_coding_cli.config import Config, get_config
from ai_coding_cli.context_window import build_window
from ai_coding_cli.llm import LLMProvider, Message, StreamEvent
from ai_coding_cli.logging import get_logger
from ai_coding_cli.parser import extract_commands
from ai_coding_cli.session import Conversation
from ai_coding_cli.stats import StreamStats
from ai_coding_cli.streaming import Channel, StreamTagSplitter, split_stream
from ai_coding_cli.tools.registry import CommandResult, CommandRunner
from ai_coding_cli.tools.shell import is_file_modifying_command

log = get_logger(__name__)

INTERRUPTED_SUFFIX = "\n\n[interrupted by user]"

Extractor = Callable[[str], list[str]]
ContextRefresher = Callable[[str], Awaitable[Any]]


class TurnPhase(str, Enum):
    AWAITING_REPLY = "awaiting_reply"
    EXECUTING_COMMANDS = "executing_commands"
    CONTINUING = "continuing"
    RETRYING = "retrying"
    DONE = "done"


class StopReason(str, Enum):
    """Why a turn reached ``DONE``."""

    PLAIN_ANSWER = "plain_answer"
    CONTINUE_LIMIT = "continue_limit"
    RETRY_LIMIT = "retry_limit"
    COMMUNICATION_FAILURE = "communication_failure"
    CANCELLED = "cancelled"
    NO_FEEDBACK = "no_feedback"
    EMPTY_REPLY = "empty_reply"


@dataclass
class TurnOutcome:
    """Terminal result of a turn."""

    ok: bool
    reason: StopReason
    round_trips: int
    retry_count: int
    continue_count: int
    error: str | None = None


@dataclass
class TurnState:
    """Mutable state of the turn in progress; fresh for every user submission."""

    retry_count: int = 0
    continue_count: int = 0
    round_trips: int = 0
    phase: TurnPhase = TurnPhase.AWAITING_REPLY
    done: bool = False
    ok: bool = False
    reason: StopReason | None = None
    error: str | None = None

    def transition(self, phase: TurnPhase) -> None:
        if self.done:
            raise RuntimeError("Turn already finished")
        log.debug("Turn phase", old=self.phase.value, new=phase.value)
        self.phase = phase

    def finish(self, ok: bool, reason: StopReason, error: str | None = None) -> None:
        self.transition(TurnPhase.DONE)
        self.done = True
        self.ok = ok
        self.reason = reason
        self.error = error

    def outcome(self) -> TurnOutcome:
        if not self.done or self.reason is None:
            raise RuntimeError("Turn has not finished")
        return TurnOutcome(
            ok=self.ok,
            reason=self.reason,
            round_trips=self.round_trips,
            retry_count=self.retry_count,
            continue_count=self.continue_count,
            error=self.error,
        )


class TurnEventKind(str, Enum):
    REASONING = "reasoning"
    VISIBLE = "visible"
    COMMAND = "command"
    NOTICE = "notice"
    STATS = "stats"
    DONE = "done"


@dataclass
class TurnEvent:
    """Something the UI should show while a turn runs."""

    kind: TurnEventKind
    text: str = ""
    result: CommandResult | None = None
    stats: StreamStats | None = None
    outcome: TurnOutcome | None = None


async def _aclose(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


class TurnController:
    """Drives turns against one provider and one command runner.

    The runner owns the tracked working directory; the controller only reads
    it to label feedback and to refresh project context.
    """

    def __init__(
        self,
        provider: LLMProvider,
        runner: CommandRunner,
        extractor: Extractor | None = None,
        system_prompt_builder: Callable[[], str] | None = None,
        context_refresher: ContextRefresher | None = None,
        config: Config | None = None,
    ):
        """Initialize the controller.

        Args:
            provider: Inference provider used for every round trip
            runner: Executes commands and tracks the working directory
            extractor: Returns the commands embedded in a reply
                (defaults to fenced blocks of the configured shell languages)
            system_prompt_builder: Produces the anchor for each window
            context_refresher: Awaited with the working directory after a
                batch that modified files
            config: Configuration (defaults to global config)
        """
        self.config = config or get_config()
        self.provider = provider
        self.runner = runner
        self.extractor = extractor or partial(
            extract_commands, languages=self.config.tools.shell.languages
        )
        self.system_prompt_builder = system_prompt_builder
        self.context_refresher = context_refresher
        self.auto_execute = self.config.agent.auto_execute
        self.state = TurnState()

    @property
    def max_auto_retry(self) -> int:
        return max(1, int(self.config.agent.max_auto_retry))

    @property
    def max_auto_continue(self) -> int:
        return max(1, int(self.config.agent.max_auto_continue))

    def build_anchor(self) -> str:
        if self.system_prompt_builder is not None:
            return self.system_prompt_builder()
        return self.config.agent.system_prompt

    def build_window(self, conversation: Conversation) -> list[Message]:
        ctx = self.config.context
        return build_window(
            conversation.messages,
            self.build_anchor(),
            ctx.max_history_messages,
            recent_tool_messages=ctx.recent_tool_messages,
            min_lines=ctx.compress_min_lines,
            head_lines=ctx.compress_head_lines,
            tail_lines=ctx.compress_tail_lines,
        )

    async def run_turn(
        self,
        conversation: Conversation,
        user_input: str,
        cancel_event: asyncio.Event | None = None,
    ) -> TurnOutcome:
        """Run a turn to completion, discarding UI events."""
        outcome: TurnOutcome | None = None
        async for event in self.stream_turn(conversation, user_input, cancel_event):
            if event.kind is TurnEventKind.DONE:
                outcome = event.outcome
        assert outcome is not None
        return outcome

    async def stream_turn(
        self,
        conversation: Conversation,
        user_input: str,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Run a turn, yielding UI events; the last event is ``DONE``.

        Args:
            conversation: Conversation the turn appends to
            user_input: The user's submission, appended as a user message
            cancel_event: Set to stop the reply being streamed
        """
        state = TurnState()
        self.state = state
        conversation.add_message("user", user_input)
        log.info(
            "Turn started",
            conversation_id=conversation.id,
            messages=len(conversation.messages),
            auto_execute=self.auto_execute,
        )

        while not state.done:
            async for event in self._round_trip(conversation, state, cancel_event):
                yield event

        log.info(
            "Turn finished",
            ok=state.ok,
            reason=state.reason.value if state.reason else None,
            round_trips=state.round_trips,
            retry_count=state.retry_count,
            continue_count=state.continue_count,
        )
        yield TurnEvent(kind=TurnEventKind.DONE, outcome=state.outcome())

    async def _round_trip(
        self,
        conversation: Conversation,
        state: TurnState,
        cancel_event: asyncio.Event | None,
    ) -> AsyncIterator[TurnEvent]:
        if cancel_event is not None and cancel_event.is_set():
            log.info("Turn cancelled before next round trip", round_trips=state.round_trips)
            state.finish(True, StopReason.CANCELLED)
            yield TurnEvent(kind=TurnEventKind.NOTICE, text="Turn interrupted.")
            return

        state.transition(TurnPhase.AWAITING_REPLY)
        state.round_trips += 1
        window = self.build_window(conversation)
        log.debug(
            "Round trip started",
            round_trip=state.round_trips,
            window_messages=len(window),
            history_messages=len(conversation.messages),
        )

        splitter = StreamTagSplitter(
            self.config.agent.think_open_tag,
            self.config.agent.think_close_tag,
        )
        stats = StreamStats()
        events = self.provider.stream_chat(window)
        texts = self._stream_text(events, stats)
        increments = split_stream(texts, splitter, cancel_event, on_chunk=stats.record)
        failure: Exception | None = None
        try:
            async for increment in increments:
                kind = (
                    TurnEventKind.REASONING
                    if increment.channel is Channel.REASONING
                    else TurnEventKind.VISIBLE
                )
                yield TurnEvent(kind=kind, text=increment.text)
        except Exception as e:
            failure = e
        finally:
            await _aclose(increments)
            await _aclose(texts)
            await _aclose(events)
        stats.finish()

        if failure is not None:
            log.error("Communication failure", error=str(failure), round_trip=state.round_trips)
            conversation.pop_last_user_message()
            state.finish(False, StopReason.COMMUNICATION_FAILURE, error=str(failure))
            yield TurnEvent(kind=TurnEventKind.NOTICE, text=f"Communication error: {failure}")
            return

        yield TurnEvent(kind=TurnEventKind.STATS, stats=stats)
        reply = splitter.visible_text

        if cancel_event is not None and cancel_event.is_set():
            log.info("Reply interrupted by user", visible_chars=len(reply))
            if reply.strip():
                conversation.add_message("assistant", reply + INTERRUPTED_SUFFIX)
            state.finish(True, StopReason.CANCELLED)
            yield TurnEvent(kind=TurnEventKind.NOTICE, text="Generation interrupted.")
            return

        if not reply.strip():
            log.warning("Empty reply", round_trip=state.round_trips)
            state.finish(True, StopReason.EMPTY_REPLY)
            yield TurnEvent(kind=TurnEventKind.NOTICE, text="The model returned an empty reply.")
            return

        conversation.add_message("assistant", reply)
        commands = self.extractor(reply)
        if not commands:
            state.finish(True, StopReason.PLAIN_ANSWER)
            return

        state.transition(TurnPhase.EXECUTING_COMMANDS)
        results: list[CommandResult] = []
        for command in commands:
            result = await self.runner.run(command, auto_execute=self.auto_execute)
            results.append(result)
            yield TurnEvent(kind=TurnEventKind.COMMAND, text=command, result=result)
            if not result.success and not result.skipped:
                log.info(
                    "Batch halted at failed command",
                    command=command,
                    remaining=len(commands) - len(results),
                )
                break

        await self._refresh_context_if_needed(results)

        executed = [r for r in results if not r.skipped]
        failed = [r for r in executed if not r.success]
        log.debug(
            "Command batch finished",
            proposed=len(commands),
            executed=len(executed),
            failed=len(failed),
        )

        if not executed:
            state.finish(True, StopReason.NO_FEEDBACK)
            yield TurnEvent(kind=TurnEventKind.NOTICE, text="All commands were skipped.")
            return

        feedback = format_results_for_feedback(
            results,
            self.runner.working_dir,
            self.config.tools.shell.max_output_lines,
        )

        if not failed:
            state.continue_count += 1
            if feedback:
                conversation.add_message("user", feedback)
            if state.continue_count >= self.max_auto_continue:
                log.info("Continuation limit reached", limit=self.max_auto_continue)
                state.finish(True, StopReason.CONTINUE_LIMIT)
                yield TurnEvent(
                    kind=TurnEventKind.NOTICE,
                    text=f"Ran {self.max_auto_continue} steps automatically. Send a message to continue.",
                )
                return
            state.transition(TurnPhase.CONTINUING)
            log.info("Continuing plan", step=state.continue_count, limit=self.max_auto_continue)
            yield TurnEvent(
                kind=TurnEventKind.NOTICE,
                text=f"Continuing plan (step {state.continue_count}/{self.max_auto_continue})...",
            )
            return

        state.retry_count += 1
        if state.retry_count >= self.max_auto_retry:
            log.error("Retry limit reached", limit=self.max_auto_retry)
            state.finish(True, StopReason.RETRY_LIMIT)
            yield TurnEvent(
                kind=TurnEventKind.NOTICE,
                text=(
                    f"Reached the limit of {self.max_auto_retry} automatic repair attempts. "
                    "Manual intervention needed."
                ),
            )
            return

        if feedback:
            conversation.add_message("user", feedback)
        state.transition(TurnPhase.RETRYING)
        log.warning("Command failed, retrying", attempt=state.retry_count, limit=self.max_auto_retry)
        yield TurnEvent(
            kind=TurnEventKind.NOTICE,
            text=f"Command failed, repair attempt {state.retry_count}/{self.max_auto_retry}...",
        )

    async def _stream_text(
        self,
        events: AsyncIterator[StreamEvent],
        stats: StreamStats,
    ) -> AsyncIterator[str]:
        try:
            async for event in events:
                if event.done:
                    stats.finish(event.usage)
                    return
                if event.text:
                    yield event.text
        finally:
            await _aclose(events)

    async def _refresh_context_if_needed(self, results: list[CommandResult]) -> None:
        if self.context_refresher is None:
            return
        patterns = self.config.tools.shell.file_modifying
        if not any(
            r.success and not r.skipped and is_file_modifying_command(r.command, patterns)
            for r in results
        ):
            return
        try:
            await self.context_refresher(self.runner.working_dir)
            log.debug("Project context refreshed", cwd=self.runner.working_dir)
        except Exception as e:
            log.warning("Project context refresh failed", error=str(e))
