"""Command execution for AI Coding CLI."""

from ai_coding_cli.tools.registry import (
    CommandResult,
    CommandRunner,
    extract_shell_base_commands,
    is_blocked_shell_command,
)
from ai_coding_cli.tools.shell import (
    ShellCommandRunner,
    detect_directory_change,
    is_dangerous_command,
    is_file_modifying_command,
    is_long_running_command,
)

__all__ = [
    "CommandResult",
    "CommandRunner",
    "ShellCommandRunner",
    "detect_directory_change",
    "extract_shell_base_commands",
    "is_blocked_shell_command",
    "is_dangerous_command",
    "is_file_modifying_command",
    "is_long_running_command",
]
