"""Shell command runner with confirmation, timeouts and directory tracking."""

import asyncio
import inspect
import os
import re
from pathlib import Path
from typing import Any, Awaitable, Callable

from ai_coding_cli.config import ShellToolConfig, get_config
from ai_coding_cli.exceptions import CommandBlockedError
from ai_coding_cli.logging import get_logger
from ai_coding_cli.tools.registry import (
    CommandResult,
    is_blocked_shell_command,
)

log = get_logger(__name__)

ApprovalCallback = Callable[[str], bool | Awaitable[bool]]

_SEGMENT_SPLIT_RE = re.compile(r"\s*(?:;|&&|\|\||\n)\s*")
_DIRECTORY_CHANGE_RE = re.compile(
    r"^\s*(?:cd|chdir|set-location|sl|pushd)(?:\s+-(?:literal)?path)?(?:\s+(?P<arg>.*?))?\s*$",
    re.IGNORECASE,
)


def _contains_any(command: str, patterns: list[str]) -> bool:
    lower = (command or "").lower()
    return any(pattern.lower() in lower for pattern in patterns if pattern)


def is_dangerous_command(command: str, dangerous: list[str] | None = None) -> bool:
    """Whether the command contains a configured dangerous pattern (case-insensitive)."""
    if dangerous is None:
        dangerous = get_config().tools.shell.dangerous
    return _contains_any(command, dangerous)


def is_file_modifying_command(command: str, patterns: list[str] | None = None) -> bool:
    """Whether the command likely changed files in the project."""
    if patterns is None:
        patterns = get_config().tools.shell.file_modifying
    return _contains_any(command, patterns)


def is_long_running_command(command: str, patterns: list[str] | None = None) -> bool:
    """Whether the command is a known slow operation (installs, clones, builds)."""
    if patterns is None:
        patterns = get_config().tools.shell.long_running_patterns
    return _contains_any(command, patterns)


def detect_directory_change(command: str, working_dir: str) -> str | None:
    """Return the directory a command switches into, if any.

    Only the last directory-changing segment counts. The returned path is
    resolved against ``working_dir`` but not checked for existence.
    """
    target: str | None = None
    for segment in _SEGMENT_SPLIT_RE.split(command or ""):
        match = _DIRECTORY_CHANGE_RE.match(segment)
        if not match:
            continue
        arg = (match.group("arg") or "").strip().strip("\"'")
        if not arg or arg == "~":
            target = str(Path.home())
        elif arg == "-":
            continue
        else:
            target = arg

    if target is None:
        return None
    path = Path(os.path.expanduser(target))
    if not path.is_absolute():
        path = Path(working_dir) / path
    return str(path.resolve())


class ShellCommandRunner:
    """Run commands proposed by the model.

    Owns the tracked working directory: it is only updated after a
    directory-changing command succeeded and the target exists.
    """

    def __init__(
        self,
        config: ShellToolConfig | None = None,
        approval_callback: ApprovalCallback | None = None,
        working_dir: str | Path | None = None,
    ):
        """Initialize the runner.

        Args:
            config: Shell configuration (defaults to global config)
            approval_callback: Asks the user a yes/no question
            working_dir: Initial working directory (defaults to cwd)
        """
        self.config = config or get_config().tools.shell
        self.approval_callback = approval_callback
        self.working_dir = str(Path(working_dir or Path.cwd()).resolve())

    def timeout_for(self, command: str) -> int:
        """Timeout in seconds for a command."""
        if is_long_running_command(command, self.config.long_running_patterns):
            return max(1, int(self.config.long_timeout))
        return max(1, int(self.config.timeout))

    def _check_policy(self, command: str) -> None:
        blocked, matched = is_blocked_shell_command(command, self.config.blocked)
        if blocked:
            if matched == "empty_command":
                raise CommandBlockedError(command, "Command is empty")
            raise CommandBlockedError(command, f"Command matches blocked pattern: {matched}")

    async def _ask(self, question: str) -> bool:
        if self.approval_callback is None:
            return False
        answer = self.approval_callback(question)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def confirm(self, command: str, auto_execute: bool) -> bool:
        """Apply the confirmation policy.

        - auto and safe: run without asking
        - auto and dangerous: one confirmation
        - manual: one confirmation, dangerous commands need a second one
        """
        dangerous = is_dangerous_command(command, self.config.dangerous)
        if auto_execute and not dangerous:
            return True
        if auto_execute:
            return await self._ask(f"DANGEROUS command, run it anyway?\n  {command}")
        if not dangerous:
            return await self._ask(f"Run command?\n  {command}")
        if not await self._ask(f"DANGEROUS command, run it anyway?\n  {command}"):
            return False
        return await self._ask("LAST WARNING: confirm again to run the dangerous command")

    async def run(self, command: str, auto_execute: bool = False) -> CommandResult:
        """Confirm and execute one command.

        Args:
            command: Command string from the reply
            auto_execute: Skip confirmation for commands not flagged dangerous

        Returns:
            CommandResult; never raises for command failures
        """
        command = (command or "").strip()
        try:
            self._check_policy(command)
        except CommandBlockedError as e:
            log.warning("Blocked command", command=command, reason=e.reason)
            return CommandResult(command=command, success=False, error=str(e), cwd=self.working_dir)

        if not await self.confirm(command, auto_execute):
            log.info("Command skipped by user", command=command)
            return CommandResult(command=command, success=False, skipped=True, cwd=self.working_dir)

        result = await self.execute(command)
        if result.success:
            self._track_directory_change(command)
        return result

    async def execute(self, command: str, timeout: int | None = None) -> CommandResult:
        """Execute without confirmation in the tracked working directory."""
        if timeout is None:
            timeout = self.timeout_for(command)
        cwd = self.working_dir

        env = os.environ.copy()
        env["PATH"] = os.environ.get("PATH", "/usr/local/bin:/usr/bin:/bin")

        kwargs: dict[str, Any] = {}
        if self.config.executable:
            kwargs["executable"] = self.config.executable

        try:
            log.info("Executing shell command", command=command, timeout=timeout, cwd=cwd)
            process = await asyncio.create_subprocess_shell(
                command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
                **kwargs,
            )
        except OSError as e:
            log.error("Shell command failed to start", command=command, error=str(e))
            return CommandResult(command=command, success=False, error=str(e), cwd=cwd)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            log.warning("Shell command timed out", command=command, timeout=timeout)
            return CommandResult(
                command=command,
                success=False,
                error=f"Command timed out after {timeout}s",
                exit_code=process.returncode,
                cwd=cwd,
            )
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")
        success = process.returncode == 0
        error = None
        if not success:
            last_stderr = stderr_text.strip().splitlines()
            error = last_stderr[-1] if last_stderr else f"Command exited with code {process.returncode}"

        return CommandResult(
            command=command,
            success=success,
            stdout=stdout_text,
            stderr=stderr_text,
            error=error,
            exit_code=process.returncode,
            cwd=cwd,
        )

    def _track_directory_change(self, command: str) -> None:
        target = detect_directory_change(command, self.working_dir)
        if target is None:
            return
        if Path(target).is_dir():
            log.info("Working directory changed", old=self.working_dir, new=target)
            self.working_dir = target
        else:
            log.debug("Ignoring directory change to missing path", target=target)
