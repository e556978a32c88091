"""External command execution for build steps.

Spawns one shell command per step, waits for it, and either returns a
:class:`CommandResult` or raises a :class:`CommandError` subclass.  Each child
is started in its own session so a timeout or a cancelled request can take
down the whole process group (``npm`` and ``cargo`` both fork helpers).
"""

from __future__ import annotations

import asyncio
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol

from ..errors import TinyAppError
from .results import FailureKind

# Shell exit codes meaning the command itself could not be started.
_NOT_EXECUTABLE = 126
_NOT_FOUND = 127

_SIGKILL = getattr(signal, "SIGKILL", signal.SIGTERM)


@dataclass
class CommandResult:
    """Captured output of one finished command."""

    command: str
    cwd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0


class CommandError(TinyAppError):
    """Raised when a command does not complete successfully."""

    kind = FailureKind.COMMAND_FAILED
    label = "Command failed"

    def __init__(
        self,
        message: str,
        command: str,
        result: CommandResult | None = None,
    ) -> None:
        self.command = command
        self.result = result
        super().__init__(message)

    @property
    def stdout(self) -> str:
        return self.result.stdout if self.result else ""

    @property
    def stderr(self) -> str:
        return self.result.stderr if self.result else ""


class CommandFailedError(CommandError):
    """The process ran and exited non-zero."""


class CommandSpawnError(CommandError):
    kind = FailureKind.SPAWN_FAILED
    label = "Command could not be started"


class CommandTimeoutError(CommandError):
    kind = FailureKind.TIMEOUT
    label = "Command timed out"

    def __init__(
        self,
        message: str,
        command: str,
        timeout: float,
        result: CommandResult | None = None,
    ) -> None:
        self.timeout = timeout
        super().__init__(message, command, result)


class CommandExecutor(Protocol):
    """Anything that can run a build command (the real runner or a test double)."""

    async def execute(
        self,
        command: str,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult: ...


class CommandRunner:
    """Runs shell commands with an optional deadline and group-wide termination.

    Args:
        timeout: Default wall-clock limit per command in seconds; ``None``
            waits forever.
        kill_grace: Seconds between SIGTERM and SIGKILL when a command has to
            be stopped.
    """

    def __init__(self, timeout: float | None = None, kill_grace: float = 5.0) -> None:
        self.timeout = timeout
        self.kill_grace = kill_grace

    async def execute(
        self,
        command: str,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run *command* through the shell in *cwd*.

        Args:
            command: Shell command line.
            cwd: Working directory; must exist.
            env: Extra environment variables merged over ``os.environ``.
            timeout: Overrides the runner's default limit for this call.

        Returns:
            The captured result of a command that exited with status 0.

        Raises:
            CommandSpawnError: The process could not be started, or the shell
                reported the command as missing or not executable.
            CommandFailedError: The process exited with a non-zero status.
            CommandTimeoutError: The deadline expired; the process group was
                terminated.
            asyncio.CancelledError: The caller was cancelled; the process
                group was terminated before re-raising.
        """
        limit = self.timeout if timeout is None else timeout
        if limit is not None and limit <= 0:
            limit = None
        merged_env = {**os.environ, **env} if env else None
        start = time.monotonic()

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
                env=merged_env,
                start_new_session=(os.name == "posix"),
            )
        except OSError as exc:
            raise CommandSpawnError(
                f"Could not start '{command}' in {cwd}: {exc}", command
            ) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                process.communicate(), timeout=limit
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            result = CommandResult(
                command=command,
                cwd=str(cwd),
                exit_code=-1,
                duration_seconds=time.monotonic() - start,
            )
            raise CommandTimeoutError(
                f"Command timed out after {limit}s: {command}",
                command,
                timeout=limit or 0.0,
                result=result,
            ) from None
        except asyncio.CancelledError:
            await self._terminate(process)
            raise

        result = CommandResult(
            command=command,
            cwd=str(cwd),
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout=(stdout_bytes or b"").decode("utf-8", errors="replace").strip(),
            stderr=(stderr_bytes or b"").decode("utf-8", errors="replace").strip(),
            duration_seconds=time.monotonic() - start,
        )

        if result.exit_code in (_NOT_EXECUTABLE, _NOT_FOUND):
            raise CommandSpawnError(
                f"Command not runnable (exit {result.exit_code}): {command}"
                + (f"\n{result.stderr}" if result.stderr else ""),
                command,
                result,
            )
        if result.exit_code != 0:
            raise CommandFailedError(
                f"Command failed (exit {result.exit_code}): {command}"
                + (f"\n{result.stderr}" if result.stderr else ""),
                command,
                result,
            )
        return result

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL it after the grace period."""
        if process.returncode is not None:
            return
        _signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            _signal_group(process, _SIGKILL)
            await process.wait()


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    try:
        if os.name == "posix":
            os.killpg(process.pid, sig)
        elif sig == signal.SIGTERM:
            process.terminate()
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass
