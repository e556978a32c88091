"""Unit tests for build orchestration (tinyapp.builder.orchestrator).

Tests cover:
- Successful Go build: artifact copied to outputs/<platform>, size recorded
- A failing step N halts the run with exactly N step records
- Missing artifact -> ARTIFACT_NOT_FOUND without a failed step
- UNKNOWN projects and missing directories raise before any command runs
- Static projects need no commands
- Windows target naming
- Concurrent builds of one slug are rejected
- Cancellation records a cancelled step and propagates
- Real CommandRunner timeout is reported as a TIMEOUT failure
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from conftest import make_project, write_binary
from tinyapp.builder.locks import BuildLockTable
from tinyapp.builder.orchestrator import BuildOrchestrator
from tinyapp.builder.results import FailureKind, StepStatus
from tinyapp.builder.runner import CommandRunner
from tinyapp.config import Config, TargetPlatform
from tinyapp.errors import BuildInProgressError, ProjectNotFoundError, UnknownProjectTypeError


def _go_build_effect(cwd: Path) -> None:
    write_binary(cwd / cwd.name)


class TestSuccessfulBuilds:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_go_build_copies_artifact(self, config: Config, go_project, stub_runner_factory):
        runner = stub_runner_factory(effects={"go build": _go_build_effect})
        orchestrator = BuildOrchestrator(config, runner=runner, quiet=True)

        run = await orchestrator.run("demo-app", go_project)

        assert run.success is True
        assert run.outcome == "success"
        assert run.strategy == "go-native"
        assert [s.status for s in run.steps] == [StepStatus.COMPLETED]
        destination = config.outputs_dir / "linux" / "demo-app"
        assert destination.is_file()
        assert run.artifact.destination_path == destination
        assert run.artifact.size_bytes == destination.stat().st_size > 0
        assert run.artifact.platform == "linux"
        assert runner.calls[0][1] == go_project

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_frontend_step_runs_in_frontend_dir(self, config: Config, stub_runner_factory):
        project = make_project(
            config.drafts_dir / "web-app",
            {"go.mod": "", "frontend/package.json": "{}"},
        )
        runner = stub_runner_factory(effects={"go build": _go_build_effect})
        run = await BuildOrchestrator(config, runner=runner, quiet=True).run("web-app", project)

        assert run.success
        assert runner.commands[0] == "npm run build"
        assert runner.calls[0][1] == project / "frontend"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_static_build(self, config: Config, static_project, stub_runner_factory):
        runner = stub_runner_factory()
        run = await BuildOrchestrator(config, runner=runner, quiet=True).run(
            "hello-page", static_project
        )
        assert run.success
        assert runner.calls == []
        assert (config.output_dir_for() / "hello-page.html").read_text().startswith("<!doctype")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_windows_target(self, config: Config, go_project, stub_runner_factory):
        def effect(cwd: Path) -> None:
            write_binary(cwd / "demo-app.exe")

        runner = stub_runner_factory(effects={"go build": effect})
        run = await BuildOrchestrator(config, runner=runner, quiet=True).run(
            "demo-app", go_project, platform=TargetPlatform.WINDOWS
        )
        assert run.success
        assert runner.commands == ['go build -ldflags="-s -w" -o demo-app.exe']
        assert (config.outputs_dir / "windows" / "demo-app.exe").is_file()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rebuild_replaces_artifact(self, config: Config, go_project, stub_runner_factory):
        contents = iter([b"first build", b"second build!"])

        def effect(cwd: Path) -> None:
            write_binary(cwd / "demo-app", next(contents))

        runner = stub_runner_factory(effects={"go build": effect})
        orchestrator = BuildOrchestrator(config, runner=runner, quiet=True)
        await orchestrator.run("demo-app", go_project)
        run = await orchestrator.run("demo-app", go_project)

        destination = config.output_dir_for() / "demo-app"
        assert destination.read_bytes() == b"second build!"
        assert run.artifact.size_bytes == len(b"second build!")
        assert sorted(p.name for p in config.output_dir_for().iterdir()) == ["demo-app"]


class TestFailedBuilds:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_step_halts_run(self, config: Config, stub_runner_factory):
        project = make_project(
            config.drafts_dir / "web-app",
            {"go.mod": "", "frontend/package.json": "{}"},
        )
        runner = stub_runner_factory(fail_on="npm run build")
        run = await BuildOrchestrator(config, runner=runner, quiet=True).run("web-app", project)

        assert run.success is False
        assert run.failed_step == 1
        assert run.outcome == "failed-at-step-1"
        assert run.failure_kind is FailureKind.COMMAND_FAILED
        assert len(run.steps) == 1
        assert run.steps[-1].status is StepStatus.FAILED
        assert run.steps[-1].stderr == "boom"
        assert runner.commands == ["npm run build"]
        assert not (config.output_dir_for() / "web-app").exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failure_at_second_step(self, config: Config, stub_runner_factory):
        project = make_project(
            config.drafts_dir / "web-app",
            {"go.mod": "", "frontend/package.json": "{}"},
        )
        runner = stub_runner_factory(fail_on="go build")
        run = await BuildOrchestrator(config, runner=runner, quiet=True).run("web-app", project)

        assert run.failed_step == 2
        assert [s.status for s in run.steps] == [StepStatus.COMPLETED, StepStatus.FAILED]
        assert run.steps[1].to_dict()["failureKind"] == "command-failed"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_artifact(self, config: Config, go_project, stub_runner_factory):
        run = await BuildOrchestrator(config, runner=stub_runner_factory(), quiet=True).run(
            "demo-app", go_project
        )
        assert run.success is False
        assert run.failure_kind is FailureKind.ARTIFACT_NOT_FOUND
        assert run.failed_step is None
        assert run.outcome == "failed"
        assert "demo-app" in run.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_project_raises_before_commands(self, config: Config, stub_runner_factory):
        project = make_project(config.drafts_dir / "mystery", {"README.md": "hi"})
        runner = stub_runner_factory()
        with pytest.raises(UnknownProjectTypeError):
            await BuildOrchestrator(config, runner=runner, quiet=True).run("mystery", project)
        assert runner.calls == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_directory(self, config: Config, stub_runner_factory):
        with pytest.raises(ProjectNotFoundError):
            await BuildOrchestrator(config, runner=stub_runner_factory(), quiet=True).run(
                "ghost", config.drafts_dir / "ghost"
            )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_real_runner_timeout(self, config: Config, go_project):
        class SlowRunner(CommandRunner):
            async def execute(self, command, cwd, env=None, timeout=None):
                return await super().execute("sleep 5", cwd, env, timeout)

        runner = SlowRunner(timeout=0.3, kill_grace=0.2)
        run = await BuildOrchestrator(config, runner=runner, quiet=True).run(
            "demo-app", go_project
        )

        assert run.failure_kind is FailureKind.TIMEOUT
        assert run.failed_step == 1
        assert run.steps[0].to_dict()["failureKind"] == "timeout"


class TestConcurrency:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_second_concurrent_build_rejected(self, config: Config, go_project, stub_runner_factory):
        runner = stub_runner_factory(effects={"go build": _go_build_effect}, delay=0.3)
        orchestrator = BuildOrchestrator(config, runner=runner, quiet=True)

        first = asyncio.create_task(orchestrator.run("demo-app", go_project))
        await asyncio.sleep(0.05)
        with pytest.raises(BuildInProgressError, match="already in progress"):
            await orchestrator.run("demo-app", go_project)

        run = await first
        assert run.success
        assert len(runner.calls) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_different_slugs_build_concurrently(self, config: Config, stub_runner_factory):
        first = make_project(config.drafts_dir / "one", {"go.mod": ""})
        second = make_project(config.drafts_dir / "two", {"go.mod": ""})
        runner = stub_runner_factory(effects={"go build": _go_build_effect}, delay=0.1)
        orchestrator = BuildOrchestrator(config, runner=runner, quiet=True)

        runs = await asyncio.gather(
            orchestrator.run("one", first), orchestrator.run("two", second)
        )
        assert all(run.success for run in runs)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lock_released_after_failure(self, config: Config, go_project, stub_runner_factory):
        locks = BuildLockTable(config.locks_dir)
        runner = stub_runner_factory(fail_on="go build")
        orchestrator = BuildOrchestrator(config, runner=runner, locks=locks, quiet=True)

        await orchestrator.run("demo-app", go_project)
        assert not locks.is_locked("demo-app")
        assert not (config.locks_dir / "demo-app.lock").exists()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cancellation(self, config: Config, go_project, stub_runner_factory):
        runner = stub_runner_factory(delay=5)
        orchestrator = BuildOrchestrator(config, runner=runner, quiet=True)

        task = asyncio.create_task(orchestrator.run("demo-app", go_project))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not orchestrator.locks.is_locked("demo-app")
