"""Command result model and shell command parsing helpers."""

import re
import shlex
from typing import Protocol

from pydantic import BaseModel, model_validator

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*$")
_SHELL_SEPARATOR_TOKENS = {";", "&&", "||", "|", "&"}
_SHELL_WRAPPER_TOKENS = {"sudo", "command", "builtin", "nohup", "time"}
_SHELL_PUNCTUATION_RE = re.compile(r"[;&|]")


def _compile_shell_pattern(pattern: str) -> re.Pattern[str]:
    """Compile regex pattern with literal fallback for invalid regex input."""
    try:
        return re.compile(pattern)
    except re.error:
        return re.compile(re.escape(pattern))


def _tokenize_shell_command(command: str) -> list[str]:
    """Tokenize shell command while preserving control operators."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=";&|")
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def split_shell_segments(command: str) -> list[list[str]]:
    """Split shell command into tokenized segments separated by control operators.

    Raises:
        ValueError: When the command cannot be tokenized (e.g. unbalanced quotes)
    """
    tokens = _tokenize_shell_command(command)
    segments: list[list[str]] = []
    current: list[str] = []
    for token in tokens:
        if token in _SHELL_SEPARATOR_TOKENS:
            if current:
                segments.append(current)
                current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _extract_segment_base_command(tokens: list[str]) -> str:
    """Extract executable command token from a tokenized shell segment."""
    idx = 0
    while idx < len(tokens):
        token = str(tokens[idx]).strip()
        if not token:
            idx += 1
            continue
        if token in _SHELL_WRAPPER_TOKENS:
            idx += 1
            continue
        if _ASSIGNMENT_RE.match(token) and "/" not in token:
            idx += 1
            continue
        return token
    return ""


def extract_shell_base_commands(command: str) -> list[str]:
    """Extract base command token from each shell segment."""
    cleaned = str(command or "").strip()
    if not cleaned:
        return []
    try:
        segments = split_shell_segments(cleaned)
    except ValueError:
        return []
    base_commands: list[str] = []
    for segment in segments:
        base = _extract_segment_base_command(segment)
        if base:
            base_commands.append(base)
    return base_commands


def is_blocked_shell_command(command: str, blocked_patterns: list[str]) -> tuple[bool, str]:
    """Evaluate command against blocked patterns.

    Patterns containing whitespace are matched against each command segment
    (or the raw command when it cannot be tokenized, as with many PowerShell
    here-strings); single-word patterns are matched against base commands.
    """
    cleaned = str(command or "").strip()
    if not cleaned:
        return True, "empty_command"

    try:
        segments = split_shell_segments(cleaned)
    except ValueError:
        segments = []

    segment_texts = [" ".join(tokens) for tokens in segments] or [cleaned]
    base_commands = extract_shell_base_commands(cleaned) or [cleaned.split()[0]]

    for raw_pattern in blocked_patterns or []:
        pattern = str(raw_pattern or "").strip()
        if not pattern:
            continue
        # Patterns spanning control operators cannot survive tokenization.
        if _SHELL_PUNCTUATION_RE.search(pattern):
            if pattern in cleaned:
                return True, pattern
            continue
        compiled = _compile_shell_pattern(pattern)
        segment_level_pattern = bool(re.search(r"\s", pattern))
        targets = segment_texts if segment_level_pattern else base_commands
        matcher = compiled.search if segment_level_pattern else compiled.match
        for target in targets:
            if matcher(target) or matcher(target.split("/")[-1]):
                return True, pattern
    return False, ""


class CommandResult(BaseModel):
    """Outcome of one command invocation."""

    command: str
    success: bool = True
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    skipped: bool = False
    exit_code: int | None = None
    cwd: str = ""

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "CommandResult":
        """Ensure executed failures always provide an error message."""
        if not self.success and not self.skipped and not (self.error or "").strip():
            fallback = (self.stderr or "").strip().splitlines()
            self.error = fallback[-1] if fallback else "Command failed"
        return self


class CommandRunner(Protocol):
    """Executes one command string, handling confirmation and timeouts."""

    working_dir: str

    async def run(self, command: str, auto_execute: bool = False) -> CommandResult:
        ...
