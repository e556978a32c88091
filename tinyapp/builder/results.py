"""Structured records produced by a build run.

A :class:`BuildRun` is the ordered list of :class:`BuildStep` entries executed
for one project plus its outcome.  Runs are returned, not raised: a failed run
still carries every step that executed so the caller can show diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Why a run (or a single step) failed."""

    COMMAND_FAILED = "command-failed"
    SPAWN_FAILED = "spawn-failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    ARTIFACT_NOT_FOUND = "artifact-not-found"


@dataclass
class BuildStep:
    """One external command execution within a run."""

    command: str
    cwd: str = "."
    description: str = ""
    status: StepStatus = StepStatus.PENDING
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    failure_kind: FailureKind | None = None
    exit_code: int | None = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Serialise for JSON responses; ``error`` only appears on failure."""
        data: dict[str, Any] = {
            "command": self.command,
            "description": self.description,
            "status": self.status.value,
            "output": self.stdout,
            "durationSeconds": round(self.duration_seconds, 3),
        }
        if self.stderr:
            data["warnings"] = self.stderr
        if self.status is StepStatus.FAILED:
            data["error"] = self.error or ""
            data["failureKind"] = self.failure_kind.value if self.failure_kind else None
        return data


@dataclass
class Artifact:
    """The file produced by a successful run, after relocation."""

    source_path: Path
    destination_path: Path
    size_bytes: int
    platform: str


@dataclass
class BuildRun:
    """The full execution record of a strategy's command sequence."""

    slug: str
    strategy: str
    steps: list[BuildStep] = field(default_factory=list)
    success: bool = False
    failure_kind: FailureKind | None = None
    failed_step: int | None = None
    error: str | None = None
    artifact: Artifact | None = None
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    duration_seconds: float = 0.0

    @property
    def outcome(self) -> str:
        """``"success"`` or ``"failed-at-step-N"`` (``"failed"`` if no step failed)."""
        if self.success:
            return "success"
        if self.failed_step is not None:
            return f"failed-at-step-{self.failed_step}"
        return "failed"

    def summary(self) -> str:
        """Return a human-readable summary of the run."""
        status = "SUCCESS" if self.success else "FAILED"
        lines = [
            f"Project: {self.slug}",
            f"Strategy: {self.strategy}",
            f"Status: {status}",
            f"Steps: {len(self.steps)}",
            f"Duration: {self.duration_seconds:.1f}s",
        ]
        if self.artifact is not None:
            lines.append(f"Artifact: {self.artifact.destination_path}")
        if self.error:
            lines.append(f"Error: {self.error[:200]}")
        return "\n".join(lines)
