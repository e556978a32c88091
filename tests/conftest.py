"""Shared pytest fixtures for the TinyApp Factory test suite.

Provides reusable fixtures for:
- A configuration rooted in a temporary directory
- A stub command runner that records commands and fakes toolchain output
- Hand-made project directories for each backend
- Pre-built cherry requests and specs
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest

from tinyapp.builder.runner import CommandFailedError, CommandResult
from tinyapp.cherry.models import CherryRequest, CherrySpec
from tinyapp.config import BuildConfig, Config, PublishConfig, TargetPlatform


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Linux-targeted configuration rooted in ``tmp_path``."""
    return Config(
        root_dir=tmp_path,
        platform=TargetPlatform.LINUX,
        build=BuildConfig(step_timeout=10.0, kill_grace=0.5),
        publish=PublishConfig(execute_release=False, homepage_owner="octo"),
    )


# ---------------------------------------------------------------------------
# Stub command runner
# ---------------------------------------------------------------------------

class StubRunner:
    """Records every command instead of spawning processes.

    Args:
        fail_on: Substring; the first command containing it fails with
            exit status 1.
        effects: Mapping of command substring -> callable receiving the cwd,
            used to fake the files a real toolchain would produce.
        delay: Seconds to sleep inside each command (for concurrency tests).
    """

    def __init__(
        self,
        fail_on: str | None = None,
        effects: Mapping[str, Callable[[Path], None]] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.fail_on = fail_on
        self.effects = dict(effects or {})
        self.delay = delay
        self.calls: list[tuple[str, Path, dict[str, str] | None]] = []

    @property
    def commands(self) -> list[str]:
        return [command for command, _, _ in self.calls]

    async def execute(
        self,
        command: str,
        cwd: str | Path,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        cwd = Path(cwd)
        self.calls.append((command, cwd, dict(env) if env else None))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on is not None and self.fail_on in command:
            result = CommandResult(
                command=command, cwd=str(cwd), exit_code=1, stderr="boom"
            )
            raise CommandFailedError(f"Command failed (exit 1): {command}", command, result)
        for marker, effect in self.effects.items():
            if marker in command:
                effect(cwd)
        return CommandResult(command=command, cwd=str(cwd), exit_code=0, stdout="ok")


@pytest.fixture
def stub_runner_factory() -> Callable[..., StubRunner]:
    """Factory for :class:`StubRunner` instances.

    Usage:
        def test_build(stub_runner_factory):
            runner = stub_runner_factory(fail_on="go build")
    """
    return StubRunner


def write_binary(path: Path, content: bytes = b"\x7fELF fake binary") -> Path:
    """Create a fake executable at *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    path.chmod(0o755)
    return path


# ---------------------------------------------------------------------------
# Project directories
# ---------------------------------------------------------------------------

def make_project(root: Path, files: dict[str, str]) -> Path:
    """Create *root* and populate it with ``relative path -> content`` files."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def go_project(config: Config) -> Path:
    """A minimal Go draft without a frontend: ``projects/drafts/demo-app``."""
    return make_project(
        config.drafts_dir / "demo-app",
        {"go.mod": "module demo-app\n\ngo 1.21\n", "main.go": "package main\n"},
    )


@pytest.fixture
def static_project(config: Config) -> Path:
    return make_project(
        config.drafts_dir / "hello-page",
        {"index.html": "<!doctype html><title>Hello</title>\n"},
    )


@pytest.fixture
def bun_project(tmp_path: Path) -> Path:
    return make_project(
        tmp_path / "bun-app",
        {
            "package.json": '{"name": "bun-app", "version": "1.0.0", "dependencies": {}}\n',
            "src/server.ts": "export {}\n",
        },
    )


# ---------------------------------------------------------------------------
# Cherries
# ---------------------------------------------------------------------------

@pytest.fixture
def cherry_request() -> CherryRequest:
    return CherryRequest(
        description="Track daily water intake with reminders",
        category="personal",
        stack="go-gin",
        include_database=True,
    )


@pytest.fixture
def cherry_spec_data() -> dict[str, Any]:
    """camelCase payload of a stored spec."""
    return {
        "id": "cherry-1700000000000-abc123xyz",
        "name": "Track Daily Water",
        "description": "Track daily water intake with reminders",
        "category": "personal",
        "stack": "go-gin",
        "features": ["Fireproof Database", "Offline-First"],
        "size": "14 MB",
        "commands": [
            'tinyapp new --name "Track Daily Water" --stack go-gin',
            "tinyapp build --project track-daily-water",
        ],
        "icon": "🧑",
        "includeDatabase": True,
        "includeSync": False,
        "includeAuth": False,
    }


@pytest.fixture
def cherry_spec(cherry_spec_data: dict[str, Any]) -> CherrySpec:
    return CherrySpec.model_validate(cherry_spec_data)
