from __future__ import annotations

import logging
import shutil
import sys
from pathlib import Path

import pytest
from git import Repo

from git_tools.runner import VERBOSE, CommandError, CommandRunner

pytestmark = pytest.mark.anyio


async def test_run_secure_captures_stdout(tmp_path: Path) -> None:
    Repo.init(tmp_path)
    runner = CommandRunner(tmp_path)
    result = await runner.run_secure("git", ["rev-parse", "--is-inside-work-tree"])
    assert result.stdout.strip() == "true"


async def test_arguments_are_not_interpreted_by_a_shell(tmp_path: Path) -> None:
    runner = CommandRunner(tmp_path)
    result = await runner.run_secure(sys.executable, ["-c", "import sys; print(sys.argv[1])", "$(id); echo hi"])
    assert result.stdout.strip() == "$(id); echo hi"


async def test_failure_raises_command_error_with_streams(tmp_path: Path) -> None:
    Repo.init(tmp_path)
    runner = CommandRunner(tmp_path)
    with pytest.raises(CommandError) as excinfo:
        await runner.run_secure("git", ["rev-parse", "--verify", "refs/heads/missing"])
    error = excinfo.value
    assert error.exit_code not in (0, None)
    assert error.command == ["git", "rev-parse", "--verify", "refs/heads/missing"]
    assert "failed with exit code" in str(error)


async def test_missing_program_raises_command_error(tmp_path: Path) -> None:
    runner = CommandRunner(tmp_path)
    with pytest.raises(CommandError) as excinfo:
        await runner.run_secure("definitely-not-a-real-program-xyz", ["--help"])
    assert excinfo.value.exit_code is None
    assert "could not be started" in str(excinfo.value)


async def test_cwd_override(tmp_path: Path) -> None:
    inner = tmp_path / "inner"
    inner.mkdir()
    runner = CommandRunner(tmp_path)
    result = await runner.run_secure(
        sys.executable, ["-c", "import os; print(os.getcwd())"], cwd=inner
    )
    assert Path(result.stdout.strip()).resolve() == inner.resolve()


async def test_quiet_failures_are_not_logged_as_errors(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    Repo.init(tmp_path)
    runner = CommandRunner(tmp_path)
    caplog.set_level(logging.DEBUG, logger="git_tools.runner")
    with pytest.raises(CommandError):
        await runner.run_secure("git", ["rev-parse", "--verify", "nope"], quiet=True)
    assert not [record for record in caplog.records if record.levelno >= logging.ERROR]

    caplog.clear()
    with pytest.raises(CommandError):
        await runner.run_secure("git", ["rev-parse", "--verify", "nope"])
    assert [record for record in caplog.records if record.levelno == logging.ERROR]


async def test_commands_are_logged_at_verbose(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    runner = CommandRunner(tmp_path)
    caplog.set_level(VERBOSE, logger="git_tools.runner")
    await runner.run_secure("git", ["--version"])
    assert any(
        record.levelname == "VERBOSE" and "git --version" in record.getMessage()
        for record in caplog.records
    )


async def test_run_splits_command_line(tmp_path: Path) -> None:
    runner = CommandRunner(tmp_path)
    result = await runner.run("git --version")
    assert result.stdout.startswith("git version")
    with pytest.raises(ValueError):
        await runner.run("   ")


@pytest.mark.skipif(
    shutil.which("ps") is None or shutil.which("sleep") is None,
    reason="timeout handling needs ps and sleep",
)
async def test_timeout_kills_hung_command(tmp_path: Path) -> None:
    runner = CommandRunner(tmp_path, timeout=0.5)
    with pytest.raises(CommandError):
        await runner.run_secure("sleep", ["10"])
