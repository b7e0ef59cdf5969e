"""Bounded request window construction."""

from typing import Any, Iterable

from ai_coding_cli.classifier import FEEDBACK_MARKER
from ai_coding_cli.llm import Message
from ai_coding_cli.logging import get_logger

log = get_logger(__name__)

ORIGINAL_TASK_MARKER = "[ORIGINAL TASK]"
DEFAULT_RECENT_TOOL_MESSAGES = 4
DEFAULT_COMPRESS_MIN_LINES = 15
DEFAULT_HEAD_LINES = 3
DEFAULT_TAIL_LINES = 5


def _field(msg: Any, name: str) -> str:
    if isinstance(msg, dict):
        return str(msg.get(name) or "")
    return str(getattr(msg, name, "") or "")


def is_tool_feedback(content: str) -> bool:
    """Whether a message carries command results."""
    return FEEDBACK_MARKER in (content or "")


def compress_feedback(
    content: str,
    min_lines: int = DEFAULT_COMPRESS_MIN_LINES,
    head_lines: int = DEFAULT_HEAD_LINES,
    tail_lines: int = DEFAULT_TAIL_LINES,
) -> str:
    """Shrink stale command feedback to its header and its last lines."""
    lines = (content or "").split("\n")
    if len(lines) <= max(min_lines, head_lines + tail_lines + 1):
        return content
    omitted = len(lines) - head_lines - tail_lines
    kept = lines[:head_lines] + [f"... [{omitted} lines omitted] ..."]
    if tail_lines:
        kept += lines[-tail_lines:]
    return "\n".join(kept)


def build_window(
    history: Iterable[Any],
    anchor: str,
    max_messages: int,
    recent_tool_messages: int = DEFAULT_RECENT_TOOL_MESSAGES,
    min_lines: int = DEFAULT_COMPRESS_MIN_LINES,
    head_lines: int = DEFAULT_HEAD_LINES,
    tail_lines: int = DEFAULT_TAIL_LINES,
) -> list[Message]:
    """Build the message list sent on one round trip.

    Args:
        history: Full conversation, oldest first (dicts or objects with
            ``role``/``content``); never modified
        anchor: System prompt placed first
        max_messages: Number of most recent messages kept
        recent_tool_messages: Trailing messages exempt from compression
        min_lines: Feedback at or below this line count is never compressed
        head_lines: Lines kept from the start of compressed feedback
        tail_lines: Lines kept from the end of compressed feedback

    Returns:
        ``[anchor, (original task)?, *recent]``
    """
    messages = list(history)
    window = [Message(role="system", content=anchor)]
    if not messages:
        return window

    keep = max(0, int(max_messages))
    start = max(0, len(messages) - keep)
    recent = messages[start:] if keep else []

    first_user_idx = next(
        (idx for idx, msg in enumerate(messages) if _field(msg, "role") == "user"),
        None,
    )
    if first_user_idx is not None and first_user_idx < start:
        original = _field(messages[first_user_idx], "content")
        window.append(Message(role="user", content=f"{ORIGINAL_TASK_MARKER}\n{original}"))

    compress_before = len(recent) - max(0, int(recent_tool_messages))
    compressed = 0
    for idx, msg in enumerate(recent):
        role = _field(msg, "role")
        content = _field(msg, "content")
        if idx < compress_before and is_tool_feedback(content):
            shrunk = compress_feedback(content, min_lines, head_lines, tail_lines)
            if shrunk != content:
                compressed += 1
            content = shrunk
        window.append(Message(role=role, content=content))

    if start or compressed:
        log.debug(
            "Built request window",
            history_messages=len(messages),
            window_messages=len(window),
            dropped_messages=start,
            compressed_feedback=compressed,
        )
    return window
