"""User input validation and sanitization."""

import re
from dataclasses import dataclass, field

from ai_coding_cli.logging import get_logger

log = get_logger(__name__)

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

INJECTION_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ignore\s+(all\s+)?previous\s+instructions",
        r"ignore\s+(all\s+)?above",
        r"disregard\s+(all\s+)?previous",
        r"forget\s+(all\s+)?previous",
        r"you\s+are\s+now\s+",
        r"new\s+instructions?\s*:",
        r"system\s*:\s*",
        r"\[INST\]",
        r"\[/INST\]",
        r"<<SYS>>",
        r"<\|im_start\|>",
    )
]


@dataclass
class InputValidation:
    """Validation result for one user submission."""

    valid: bool
    sanitized: str = ""
    warnings: list[str] = field(default_factory=list)


def validate_input(
    text: str | None,
    max_length: int | None = None,
    warn_length: int | None = None,
) -> InputValidation:
    """Validate and sanitize user input.

    Control characters other than newline, tab and carriage return are
    removed. Input longer than ``max_length`` is truncated with a warning;
    input longer than ``warn_length`` only warns.
    """
    if max_length is None or warn_length is None:
        from ai_coding_cli.config import get_config
        limits = get_config().input
        max_length = limits.max_length if max_length is None else max_length
        warn_length = limits.warn_length if warn_length is None else warn_length

    if text is None or not str(text).strip():
        return InputValidation(valid=False, warnings=["Empty input"])

    warnings: list[str] = []
    sanitized = _CONTROL_CHARS_RE.sub("", str(text))

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        warnings.append(f"Input truncated to {max_length} characters")
    elif len(sanitized) > warn_length:
        warnings.append(f"Long input ({len(sanitized)} characters)")

    if any(pattern.search(sanitized) for pattern in INJECTION_PATTERNS):
        warnings.append("Possible prompt injection detected")
        log.warning("Possible prompt injection in user input")

    sanitized = sanitized.strip()
    if not sanitized:
        return InputValidation(valid=False, warnings=warnings + ["Empty input"])
    return InputValidation(valid=True, sanitized=sanitized, warnings=warnings)
