"""Command failure classification and batch feedback rendering."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable

from ai_coding_cli.tools.registry import CommandResult

FEEDBACK_MARKER = "=== COMMAND RESULTS ==="
DEFAULT_MAX_OUTPUT_LINES = 50
HEAD_SHARE = 0.6

ABORT_BANNER = (
    "!!! A COMMAND FAILED. STOP the previous plan and do not run its remaining steps.\n"
    "!!! Focus only on diagnosing and fixing the error below, then continue."
)


class ErrorKind(str, Enum):
    """Fixed set of failure classifications."""

    PATH_NOT_FOUND = "path-not-found"
    COMMAND_NOT_FOUND = "command-not-found"
    PERMISSION_DENIED = "permission-denied"
    SYNTAX_ERROR = "syntax-error"
    TIMEOUT = "timeout"
    INVALID_PARAMETER = "invalid-parameter"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorClassification:
    """Diagnosis of one failed command."""

    kind: ErrorKind
    hint: str


Predicate = Callable[[str, str], bool]


@dataclass(frozen=True)
class ClassifierRule:
    """One row of the ordered rule table."""

    predicate: Predicate
    kind: ErrorKind
    hint: str


def _matches(*patterns: str) -> Predicate:
    """Build a predicate matching any regex against the lower-cased diagnostic."""
    compiled = [re.compile(pattern) for pattern in patterns]

    def predicate(diagnostic: str, command: str) -> bool:
        return any(regex.search(diagnostic) for regex in compiled)

    return predicate


RULES: tuple[ClassifierRule, ...] = (
    ClassifierRule(
        _matches(
            r"cannot find path",
            r"could not find a part of the path",
            r"no such file or directory",
            r"path not found",
            r"does not exist",
            r"cannot find the (?:file|path)",
            r"itemnotfoundexception",
            r"not a directory",
        ),
        ErrorKind.PATH_NOT_FOUND,
        "Inspect the current directory and verify the path before retrying: "
        "print the working directory, list its contents and test the exact path.",
    ),
    ClassifierRule(
        _matches(
            r"is not recognized",
            r"command not found",
            r"commandnotfoundexception",
            r"not found in path",
            r"unknown command",
            r"no command '",
        ),
        ErrorKind.COMMAND_NOT_FOUND,
        "The program or cmdlet does not exist here. Check its spelling, whether it is "
        "installed and on PATH, or use an equivalent built-in command.",
    ),
    ClassifierRule(
        _matches(
            r"access is denied",
            r"access to the path .* is denied",
            r"permission denied",
            r"unauthorizedaccess",
            r"operation not permitted",
            r"requires elevation",
        ),
        ErrorKind.PERMISSION_DENIED,
        "Access was denied. Work in a directory you own, check file attributes and "
        "ownership, and do not try to escalate privileges without asking the user.",
    ),
    ClassifierRule(
        _matches(
            r"unexpected token",
            r"syntax error",
            r"parsererror",
            r"parseexception",
            r"missing expression",
            r"missing closing",
            r"missing terminator",
            r"unexpected end of",
            r"unexpected eof",
            r"unterminated string",
        ),
        ErrorKind.SYNTAX_ERROR,
        "The command could not be parsed. Check quoting, brackets and escaping for "
        "this shell, and simplify the command into smaller steps.",
    ),
    ClassifierRule(
        _matches(r"timed out", r"timeout", r"time limit exceeded"),
        ErrorKind.TIMEOUT,
        "The command took too long. Run a faster or narrower variant, avoid "
        "interactive prompts, or split long work into separate steps.",
    ),
    ClassifierRule(
        _matches(
            r"parameter cannot be found",
            r"cannot bind parameter",
            r"cannot convert value",
            r"invalid argument",
            r"invalid option",
            r"illegal option",
            r"unrecognized option",
            r"unrecognized arguments",
            r"unknown option",
            r"missing an argument",
            r"missing argument",
        ),
        ErrorKind.INVALID_PARAMETER,
        "A parameter or argument is invalid. Check the command's help for the exact "
        "parameter names and value formats before retrying.",
    ),
)

UNKNOWN_HINT = (
    "Read the error output carefully, inspect the environment (working directory, "
    "files, versions) and try a different approach."
)


def classify(stderr: str, error: str, command: str) -> ErrorClassification:
    """Classify a failed command from its diagnostic text.

    Args:
        stderr: Captured standard error
        error: Error message reported by the runner
        command: The command that was executed

    Returns:
        First matching classification, or ``unknown``
    """
    diagnostic = f"{stderr or ''}\n{error or ''}".lower()
    for rule in RULES:
        if rule.predicate(diagnostic, command or ""):
            return ErrorClassification(kind=rule.kind, hint=rule.hint)
    return ErrorClassification(kind=ErrorKind.UNKNOWN, hint=UNKNOWN_HINT)


def truncate_output(text: str, max_lines: int = DEFAULT_MAX_OUTPUT_LINES) -> str:
    """Keep the head (60%) and tail (40%) of long output."""
    if not text:
        return ""
    lines = text.splitlines()
    if max_lines <= 0 or len(lines) <= max_lines:
        return text
    head_count = int(max_lines * HEAD_SHARE)
    tail_count = max_lines - head_count
    omitted = len(lines) - head_count - tail_count
    kept = lines[:head_count] + [f"... [{omitted} lines omitted] ..."]
    if tail_count:
        kept += lines[-tail_count:]
    return "\n".join(kept)


def _indent(text: str) -> str:
    return "\n".join(f"    {line}" for line in text.splitlines())


def _render_result(index: int, result: CommandResult, max_output_lines: int) -> list[str]:
    lines = [f"--- Command {index}: {result.command}"]
    if result.skipped:
        lines.append("Status: SKIPPED (declined by the user)")
        return lines

    lines.append("Status: SUCCESS" if result.success else "Status: FAILED")
    if result.exit_code is not None and not result.success:
        lines.append(f"Exit code: {result.exit_code}")

    stdout = truncate_output((result.stdout or "").rstrip(), max_output_lines)
    stderr = truncate_output((result.stderr or "").rstrip(), max_output_lines)
    if stdout:
        lines.append("stdout:")
        lines.append(_indent(stdout))
    if stderr:
        lines.append("stderr:")
        lines.append(_indent(stderr))
    if result.success:
        if not stdout and not stderr:
            lines.append("(no output)")
        return lines

    if result.error:
        lines.append(f"Error: {result.error}")
    diagnosis = classify(result.stderr, result.error or "", result.command)
    lines.append(f"Error type: {diagnosis.kind.value}")
    lines.append(f"Hint: {diagnosis.hint}")
    lines.append("Do NOT repeat this exact command; change the approach.")
    return lines


def format_results_for_feedback(
    results: Iterable[CommandResult],
    working_dir: str,
    max_output_lines: int = DEFAULT_MAX_OUTPUT_LINES,
) -> str | None:
    """Render a command batch as a feedback message for the model.

    The first three lines are always the marker title, the working directory
    and a blank line.

    Returns:
        Feedback text, or None for an empty batch
    """
    results = list(results)
    if not results:
        return None

    lines = [FEEDBACK_MARKER, f"Working directory: {working_dir}", ""]
    if any(not r.skipped and not r.success for r in results):
        lines.append(ABORT_BANNER)
        lines.append("")

    for index, result in enumerate(results, start=1):
        lines.extend(_render_result(index, result, max_output_lines))
        lines.append("")

    executed = [r for r in results if not r.skipped]
    failed = [r for r in executed if not r.success]
    if failed:
        lines.append(f"Summary: {len(failed)} of {len(executed)} executed command(s) failed.")
    else:
        lines.append(
            f"Summary: {len(executed)} command(s) succeeded. Continue with the next step of "
            "the plan, or reply without commands if the task is complete."
        )
    return "\n".join(lines)
