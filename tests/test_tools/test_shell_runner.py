from pathlib import Path

import pytest

from ai_coding_cli.config import ShellToolConfig
from ai_coding_cli.tools.shell import (
    ShellCommandRunner,
    detect_directory_change,
    is_dangerous_command,
    is_file_modifying_command,
    is_long_running_command,
)


class Approver:
    def __init__(self, *answers: bool):
        self.answers = list(answers)
        self.questions: list[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else False


def _runner(tmp_path: Path, approver=None, **overrides) -> ShellCommandRunner:
    config = ShellToolConfig(**overrides)
    return ShellCommandRunner(config=config, approval_callback=approver, working_dir=tmp_path)


@pytest.mark.asyncio
async def test_auto_execute_runs_safe_command_without_asking(tmp_path: Path):
    approver = Approver()
    runner = _runner(tmp_path, approver)

    result = await runner.run("echo hello", auto_execute=True)

    assert result.success is True
    assert result.stdout.strip() == "hello"
    assert result.exit_code == 0
    assert approver.questions == []


@pytest.mark.asyncio
async def test_manual_mode_asks_once_for_safe_command(tmp_path: Path):
    approver = Approver(True)
    runner = _runner(tmp_path, approver)

    result = await runner.run("echo hi")

    assert result.success is True
    assert len(approver.questions) == 1
    assert "echo hi" in approver.questions[0]


@pytest.mark.asyncio
async def test_declined_command_is_skipped_and_not_run(tmp_path: Path):
    marker = tmp_path / "created.txt"
    runner = _runner(tmp_path, Approver(False))

    result = await runner.run(f"touch {marker}")

    assert result.skipped is True
    assert result.success is False
    assert not marker.exists()


@pytest.mark.asyncio
async def test_dangerous_command_asks_even_in_auto_mode(tmp_path: Path):
    approver = Approver(False)
    runner = _runner(tmp_path, approver)

    result = await runner.run("rm notes.txt", auto_execute=True)

    assert result.skipped is True
    assert len(approver.questions) == 1
    assert "DANGEROUS" in approver.questions[0]


@pytest.mark.asyncio
async def test_dangerous_command_in_manual_mode_needs_two_confirmations(tmp_path: Path):
    target = tmp_path / "notes.txt"
    target.write_text("x", encoding="utf-8")
    approver = Approver(True, True)
    runner = _runner(tmp_path, approver)

    result = await runner.run("rm notes.txt")

    assert result.success is True
    assert len(approver.questions) == 2
    assert not target.exists()


@pytest.mark.asyncio
async def test_async_approval_callback_is_awaited(tmp_path: Path):
    async def approve(question: str) -> bool:
        return True

    runner = _runner(tmp_path, approve)

    result = await runner.run("echo async")

    assert result.success is True


@pytest.mark.asyncio
async def test_no_callback_means_declined(tmp_path: Path):
    runner = _runner(tmp_path)

    result = await runner.run("echo hi")

    assert result.skipped is True


@pytest.mark.asyncio
async def test_blocked_command_is_never_executed(tmp_path: Path):
    approver = Approver(True, True)
    runner = _runner(tmp_path, approver)

    result = await runner.run("rm -rf /", auto_execute=True)

    assert result.success is False
    assert result.skipped is False
    assert "blocked" in result.error.lower()
    assert approver.questions == []


@pytest.mark.asyncio
async def test_failed_command_reports_last_stderr_line(tmp_path: Path):
    runner = _runner(tmp_path, Approver(True))

    result = await runner.run("echo first 1>&2; echo oops 1>&2; exit 3")

    assert result.success is False
    assert result.exit_code == 3
    assert result.error == "oops"


@pytest.mark.asyncio
async def test_failed_command_without_stderr_reports_exit_code(tmp_path: Path):
    runner = _runner(tmp_path, Approver(True))

    result = await runner.run("exit 4")

    assert result.error == "Command exited with code 4"


@pytest.mark.asyncio
async def test_timeout_kills_command(tmp_path: Path):
    runner = _runner(tmp_path, Approver(True), timeout=1)

    result = await runner.run("sleep 5")

    assert result.success is False
    assert result.error == "Command timed out after 1s"


@pytest.mark.asyncio
async def test_directory_change_is_tracked_after_success(tmp_path: Path):
    sub = tmp_path / "sub"
    sub.mkdir()
    runner = _runner(tmp_path, None)

    await runner.run("cd sub", auto_execute=True)
    assert runner.working_dir == str(sub.resolve())

    result = await runner.run("pwd", auto_execute=True)
    assert Path(result.stdout.strip()).resolve() == sub.resolve()


@pytest.mark.asyncio
async def test_failed_directory_change_keeps_working_dir(tmp_path: Path):
    runner = _runner(tmp_path, None)
    before = runner.working_dir

    result = await runner.run("cd does-not-exist", auto_execute=True)

    assert result.success is False
    assert runner.working_dir == before


def test_timeout_for_long_running_commands(tmp_path: Path):
    runner = _runner(tmp_path, timeout=30, long_timeout=300)

    assert runner.timeout_for("npm install express") == 300
    assert runner.timeout_for("git clone https://example.com/repo.git") == 300
    assert runner.timeout_for("ls -la") == 30


def test_detect_directory_change_variants(tmp_path: Path):
    cwd = str(tmp_path)

    assert detect_directory_change("cd src && npm test", cwd) == str((tmp_path / "src").resolve())
    assert detect_directory_change('Set-Location -Path "my app"', cwd) == str((tmp_path / "my app").resolve())
    assert detect_directory_change("pushd lib; cd ..", cwd) == str(tmp_path.parent.resolve())
    assert detect_directory_change(f"cd {tmp_path}", "/") == str(tmp_path.resolve())
    assert detect_directory_change("cd", cwd) == str(Path.home().resolve())
    assert detect_directory_change("cd -", cwd) is None
    assert detect_directory_change("echo cd src", cwd) is None


def test_pattern_helpers_are_case_insensitive():
    assert is_dangerous_command("remove-item -Recurse build", ["Remove-Item"])
    assert not is_dangerous_command("Get-ChildItem", ["Remove-Item"])
    assert is_file_modifying_command("New-Item app.js", ["New-Item"])
    assert is_long_running_command("PIP INSTALL requests", ["pip install"])
