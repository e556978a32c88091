"""TinyApp Factory builder module.

Turns a project directory into a platform artifact: toolchain detection,
per-backend command strategies, subprocess execution, and artifact relocation.

Key classes:
    StackDetector     - Manifest-based toolchain detection
    CommandRunner     - Subprocess execution with timeout and group kill
    BuildStrategy     - Ordered commands plus an artifact rule per backend
    BuildOrchestrator - Runs a strategy and copies the artifact to outputs/
    BuildLockTable    - Per-slug build exclusion
"""

from .detector import BuildStrategyKind, StackDetector
from .locks import BuildLockTable
from .orchestrator import BuildOrchestrator
from .results import Artifact, BuildRun, BuildStep, FailureKind, StepStatus
from .runner import (
    CommandError,
    CommandExecutor,
    CommandFailedError,
    CommandResult,
    CommandRunner,
    CommandSpawnError,
    CommandTimeoutError,
)
from .strategies import ArtifactRule, BuildCommand, BuildStrategy, strategy_for

__all__ = [
    # Detection
    "StackDetector",
    "BuildStrategyKind",
    # Strategies
    "BuildStrategy",
    "BuildCommand",
    "ArtifactRule",
    "strategy_for",
    # Execution
    "CommandRunner",
    "CommandExecutor",
    "CommandResult",
    "CommandError",
    "CommandFailedError",
    "CommandSpawnError",
    "CommandTimeoutError",
    # Orchestration
    "BuildOrchestrator",
    "BuildLockTable",
    "BuildRun",
    "BuildStep",
    "Artifact",
    "FailureKind",
    "StepStatus",
]
