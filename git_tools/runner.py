from __future__ import annotations

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import git
from git.exc import GitCommandNotFound

_LOGGER = logging.getLogger(__name__)

VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")


@dataclass
class CommandResult:
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """Raised when an external command exits non-zero or cannot be started."""

    def __init__(
        self,
        command: Sequence[str],
        exit_code: int | None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = list(command)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        joined = " ".join(self.command)
        if exit_code is None:
            message = f'Command "{joined}" could not be started'
        else:
            message = f'Command "{joined}" failed with exit code {exit_code}'
        detail = (stderr or stdout).strip()
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CommandRunner:
    """Runs external programs from an argument list, never through a shell.

    Execution goes through GitPython's ``Git.execute`` on a worker thread so
    callers on the event loop are suspended rather than blocked.
    """

    def __init__(
        self,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._cwd = Path(cwd) if cwd is not None else None
        self._timeout = timeout
        self._logger = logger or _LOGGER

    @property
    def cwd(self) -> Path | None:
        return self._cwd

    async def run_secure(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        cwd: str | Path | None = None,
        quiet: bool = False,
    ) -> CommandResult:
        command = [program, *args]
        workdir = Path(cwd) if cwd is not None else self._cwd
        return await asyncio.to_thread(self._execute, command, workdir, quiet)

    async def run(
        self,
        command_line: str,
        *,
        cwd: str | Path | None = None,
        quiet: bool = False,
    ) -> CommandResult:
        parts = shlex.split(command_line)
        if not parts:
            raise ValueError("Empty command provided")
        return await self.run_secure(parts[0], parts[1:], cwd=cwd, quiet=quiet)

    def _execute(
        self, command: list[str], workdir: Path | None, quiet: bool
    ) -> CommandResult:
        self._logger.log(VERBOSE, "Executing command securely: %s", " ".join(command))
        self._logger.log(VERBOSE, "Working directory: %s", workdir or Path.cwd())
        failure_level = logging.DEBUG if quiet else logging.ERROR
        # Git.execute silently falls back to the process cwd for unusable directories
        if workdir is not None and not workdir.is_dir():
            self._logger.log(failure_level, "Working directory does not exist: %s", workdir)
            raise CommandError(command, None, stderr=f"Working directory does not exist: {workdir}")
        try:
            status, stdout, stderr = git.Git(workdir).execute(
                command,
                with_extended_output=True,
                with_exceptions=False,
                kill_after_timeout=self._timeout,
            )
        except GitCommandNotFound as exc:
            self._logger.log(failure_level, "Command failed to start: %s", exc)
            raise CommandError(command, None, stderr=str(exc)) from exc

        if status != 0:
            self._logger.log(failure_level, "Command failed with exit code %s", status)
            self._logger.log(failure_level, "stdout: %s", stdout)
            self._logger.log(failure_level, "stderr: %s", stderr)
            raise CommandError(command, status, stdout, stderr)

        self._logger.log(VERBOSE, "Command completed successfully")
        self._logger.log(VERBOSE, "stdout: %s", stdout)
        if stderr:
            self._logger.log(VERBOSE, "stderr: %s", stderr)
        return CommandResult(stdout=stdout, stderr=stderr)
