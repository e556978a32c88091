"""Build orchestration: detect, run the strategy's commands, relocate the artifact.

The orchestrator never raises for a failing build.  Command failures and a
missing artifact are reported through the returned :class:`BuildRun`; only
configuration problems (missing directory, unknown project type) and lock
contention raise, and they do so before any command is run.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from pathlib import Path

from rich.markup import escape

from ..config import Config, TargetPlatform
from ..errors import ProjectNotFoundError
from ..utils import console, format_duration, format_size
from .detector import StackDetector
from .locks import BuildLockTable
from .results import Artifact, BuildRun, BuildStep, FailureKind, StepStatus
from .runner import CommandError, CommandExecutor, CommandRunner
from .strategies import BuildStrategy, strategy_for


class BuildOrchestrator:
    """Builds one project directory into a platform artifact.

    Args:
        config: Supplies the output area, the lock directory and the default
            target platform.
        runner: Executes commands.  Defaults to a :class:`CommandRunner`
            configured from ``config.build``.
        detector: Chooses the strategy kind.
        locks: Shared lock table; pass the same instance to every
            orchestrator of a process.
        quiet: Suppress per-step console output.
    """

    def __init__(
        self,
        config: Config,
        runner: CommandExecutor | None = None,
        detector: StackDetector | None = None,
        locks: BuildLockTable | None = None,
        quiet: bool = False,
    ) -> None:
        self.config = config
        self.runner = runner or CommandRunner(
            timeout=config.build.step_timeout,
            kill_grace=config.build.kill_grace,
        )
        self.detector = detector or StackDetector()
        self.locks = locks or BuildLockTable(config.locks_dir)
        self.quiet = quiet

    async def run(
        self,
        slug: str,
        project_dir: str | Path,
        platform: TargetPlatform | None = None,
        hold_lock: bool = True,
    ) -> BuildRun:
        """Build *project_dir* and place its artifact under ``outputs/<platform>``.

        Pass ``hold_lock=False`` when the caller already holds the lock for
        *slug* in :attr:`locks`.

        Raises:
            ProjectNotFoundError: *project_dir* does not exist.
            UnknownProjectTypeError: No recognised manifest in *project_dir*.
            BuildInProgressError: *slug* is already being built.
            asyncio.CancelledError: The caller was cancelled mid-step.
        """
        project_dir = Path(project_dir)
        if not project_dir.is_dir():
            raise ProjectNotFoundError(f"Project directory not found: {project_dir}")

        target = platform or self.config.platform
        kind = self.detector.detect(project_dir)
        strategy = strategy_for(kind, project_dir, slug, target)

        if not hold_lock:
            return await self._execute(slug, project_dir, strategy, target)
        async with self.locks.hold(slug):
            return await self._execute(slug, project_dir, strategy, target)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(
        self,
        slug: str,
        project_dir: Path,
        strategy: BuildStrategy,
        platform: TargetPlatform,
    ) -> BuildRun:
        run = BuildRun(slug=slug, strategy=strategy.kind.value)
        start = time.monotonic()
        total = len(strategy.commands)

        self._print(
            f"  Building [bold]{escape(slug)}[/bold] "
            f"([cyan]{strategy.kind.value}[/cyan], {platform.value})"
        )

        for index, command in enumerate(strategy.commands, start=1):
            step = BuildStep(
                command=command.command,
                cwd=command.cwd,
                description=command.description,
                status=StepStatus.RUNNING,
            )
            run.steps.append(step)
            self._print(
                f"    [{index}/{total}] {escape(command.description)}: "
                f"[dim]{escape(command.command)}[/dim]"
            )

            step_start = time.monotonic()
            try:
                result = await self.runner.execute(
                    command.command, project_dir / command.cwd
                )
            except CommandError as exc:
                step.duration_seconds = time.monotonic() - step_start
                step.status = StepStatus.FAILED
                step.failure_kind = exc.kind
                step.error = str(exc)
                step.stdout = exc.stdout
                step.stderr = exc.stderr
                step.exit_code = exc.result.exit_code if exc.result else None
                return self._fail(run, start, exc.kind, str(exc), failed_step=index)
            except asyncio.CancelledError:
                step.duration_seconds = time.monotonic() - step_start
                step.status = StepStatus.FAILED
                step.failure_kind = FailureKind.CANCELLED
                step.error = "Build cancelled"
                run.failure_kind = FailureKind.CANCELLED
                run.failed_step = index
                run.error = "Build cancelled"
                run.duration_seconds = time.monotonic() - start
                raise

            step.duration_seconds = time.monotonic() - step_start
            step.status = StepStatus.COMPLETED
            step.stdout = result.stdout
            step.stderr = result.stderr
            step.exit_code = result.exit_code
            self._print(
                f"      [green]+[/green] done in {format_duration(step.duration_seconds)}"
            )

        source = strategy.artifact.resolve(project_dir)
        if source is None:
            search_dir = project_dir / strategy.artifact.directory
            return self._fail(
                run,
                start,
                FailureKind.ARTIFACT_NOT_FOUND,
                f"No build artifact found in {search_dir} "
                f"(looked for: {', '.join(strategy.artifact.candidates)})",
            )

        destination_dir = self.config.output_dir_for(platform)
        destination_dir.mkdir(parents=True, exist_ok=True)
        if source.is_dir():
            # macOS application bundles keep their extension.
            destination = destination_dir / f"{slug}{source.suffix}"
        else:
            destination = destination_dir / strategy.artifact.destination_name

        size_bytes = await asyncio.to_thread(_copy_artifact, source, destination)
        run.artifact = Artifact(
            source_path=source,
            destination_path=destination,
            size_bytes=size_bytes,
            platform=platform.value,
        )
        run.success = True
        run.duration_seconds = time.monotonic() - start
        self._print(
            f"  [green]Artifact:[/green] {escape(str(destination))} "
            f"({format_size(size_bytes)})"
        )
        return run

    def _fail(
        self,
        run: BuildRun,
        start: float,
        kind: FailureKind,
        error: str,
        failed_step: int | None = None,
    ) -> BuildRun:
        run.success = False
        run.failure_kind = kind
        run.failed_step = failed_step
        run.error = error
        run.duration_seconds = time.monotonic() - start
        where = f" at step {failed_step}" if failed_step is not None else ""
        self._print(f"  [red]Build failed{where} ({kind.value})[/red]")
        return run

    def _print(self, message: str) -> None:
        if not self.quiet:
            console.print(message)


def _copy_artifact(source: Path, destination: Path) -> int:
    """Copy *source* to *destination*, replacing any previous artifact.

    Returns the size in bytes of the copy.
    """
    if source.is_dir():
        if destination.exists():
            shutil.rmtree(destination)
        shutil.copytree(source, destination)
        return sum(p.stat().st_size for p in destination.rglob("*") if p.is_file())

    partial = destination.with_name(f".{destination.name}.partial")
    shutil.copy2(source, partial)
    os.replace(partial, destination)
    return destination.stat().st_size
