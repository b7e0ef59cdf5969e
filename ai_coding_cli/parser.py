"""Fenced code block extraction from assistant replies."""

import re
from dataclasses import dataclass
from typing import Iterable

FENCE_RE = re.compile(r"^(`{3,}|~{3,})([\w+-]*)\s*$")


@dataclass
class CodeBlock:
    """A fenced code block found in a reply."""

    language: str
    code: str
    start_line: int  # 1-based line of the opening fence
    end_line: int
    incomplete: bool = False


def extract_code_blocks(text: str) -> list[CodeBlock]:
    """Extract fenced code blocks from markdown text.

    Handles backtick and tilde fences of three or more characters. A block is
    closed by a fence of the same character, at least as long, with no
    language tag. An unclosed, non-empty block at the end is returned with
    ``incomplete=True``.
    """
    if not text or not isinstance(text, str):
        return []

    lines = text.split("\n")
    blocks: list[CodeBlock] = []

    in_code = False
    fence_char = ""
    fence_len = 0
    language = ""
    current: list[str] = []
    start_line = 0

    for i, line in enumerate(lines):
        match = FENCE_RE.match(line)
        if not in_code:
            if match:
                fence_char = match.group(1)[0]
                fence_len = len(match.group(1))
                language = match.group(2) or "plaintext"
                current = []
                start_line = i + 1
                in_code = True
            continue

        if (
            match
            and match.group(1)[0] == fence_char
            and len(match.group(1)) >= fence_len
            and not match.group(2)
        ):
            blocks.append(CodeBlock(
                language=language,
                code="\n".join(current),
                start_line=start_line,
                end_line=i + 1,
            ))
            in_code = False
        else:
            current.append(line)

    if in_code and current:
        blocks.append(CodeBlock(
            language=language,
            code="\n".join(current),
            start_line=start_line,
            end_line=len(lines),
            incomplete=True,
        ))

    return blocks


def extract_commands(text: str, languages: Iterable[str] | None = None) -> list[str]:
    """Return the commands embedded in a reply, in order of appearance.

    Args:
        text: Assistant reply (visible text)
        languages: Fence languages treated as shell commands
            (defaults to ``config.tools.shell.languages``)
    """
    if languages is None:
        from ai_coding_cli.config import get_config
        languages = get_config().tools.shell.languages
    recognized = {lang.strip().lower() for lang in languages if lang.strip()}

    commands: list[str] = []
    for block in extract_code_blocks(text):
        if block.language.lower() not in recognized:
            continue
        code = block.code.strip()
        if code:
            commands.append(code)
    return commands
