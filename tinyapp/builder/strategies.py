"""Build strategies, one per backend.

A strategy is an ordered tuple of commands plus an :class:`ArtifactRule`
telling the orchestrator where the finished binary ends up.  Strategies are
built through a single table keyed by :class:`BuildStrategyKind`; the module
refuses to import if a kind has no entry, so adding a backend means adding a
builder here.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..config import TargetPlatform
from ..errors import UnknownProjectTypeError
from .detector import BuildStrategyKind


@dataclass(frozen=True)
class BuildCommand:
    """A command template resolved for one project."""

    command: str
    cwd: str = "."
    description: str = ""


@dataclass(frozen=True)
class ArtifactRule:
    """Where to look for the artifact once every command has succeeded.

    Attributes:
        directory: Directory to search, relative to the project root.
        candidates: Exact filenames tried in order.
        destination_name: Filename used in the shared output area.
        predicate: When no candidate exists, the first entry (sorted by
            name) in *directory* satisfying this predicate is used.
    """

    directory: str
    candidates: tuple[str, ...]
    destination_name: str
    predicate: Callable[[Path], bool] | None = None

    def resolve(self, project_dir: str | Path) -> Path | None:
        """Return the artifact path, or ``None`` if nothing matches."""
        search_dir = Path(project_dir) / self.directory
        if not search_dir.is_dir():
            return None

        for name in self.candidates:
            candidate = search_dir / name
            if candidate.exists():
                return candidate

        if self.predicate is not None:
            for entry in sorted(search_dir.iterdir()):
                if self.predicate(entry):
                    return entry
        return None


@dataclass(frozen=True)
class BuildStrategy:
    kind: BuildStrategyKind
    commands: tuple[BuildCommand, ...]
    artifact: ArtifactRule


def is_native_binary(path: Path, platform: TargetPlatform = TargetPlatform.LINUX) -> bool:
    """True for a visible regular file that looks like an executable.

    On Windows that means a ``.exe`` file; elsewhere a file without an
    extension.
    """
    if not path.is_file() or path.name.startswith("."):
        return False
    if platform is TargetPlatform.WINDOWS:
        return path.suffix.lower() == ".exe"
    return path.suffix == ""


def _frontend_steps(project_dir: Path) -> tuple[BuildCommand, ...]:
    if (project_dir / "frontend").is_dir():
        return (
            BuildCommand("npm run build", cwd="frontend", description="Build frontend"),
        )
    return ()


def _go_strategy(project_dir: Path, slug: str, platform: TargetPlatform) -> BuildStrategy:
    binary = f"{slug}{platform.executable_suffix}"
    return BuildStrategy(
        kind=BuildStrategyKind.GO_NATIVE,
        commands=_frontend_steps(project_dir)
        + (
            BuildCommand(
                f'go build -ldflags="-s -w" -o {binary}',
                description="Compile stripped Go binary",
            ),
        ),
        artifact=ArtifactRule(directory=".", candidates=(binary,), destination_name=binary),
    )


def _rust_strategy(project_dir: Path, slug: str, platform: TargetPlatform) -> BuildStrategy:
    binary = f"{slug}{platform.executable_suffix}"
    return BuildStrategy(
        kind=BuildStrategyKind.RUST_NATIVE,
        commands=_frontend_steps(project_dir)
        + (BuildCommand("cargo build --release", description="Compile release binary"),),
        artifact=ArtifactRule(
            directory="target/release",
            candidates=(binary,),
            destination_name=binary,
            predicate=lambda path: is_native_binary(path, platform),
        ),
    )


def _bun_strategy(project_dir: Path, slug: str, platform: TargetPlatform) -> BuildStrategy:
    binary = f"{slug}{platform.executable_suffix}"
    return BuildStrategy(
        kind=BuildStrategyKind.BUN_BUNDLE,
        commands=(BuildCommand("bun run build", description="Compile and bundle"),),
        artifact=ArtifactRule(directory=".", candidates=(binary,), destination_name=binary),
    )


def _tauri_strategy(project_dir: Path, slug: str, platform: TargetPlatform) -> BuildStrategy:
    preferred = f"{slug}{platform.executable_suffix}"
    candidates = tuple(dict.fromkeys((preferred, slug, f"{slug}.exe", f"{slug}.app")))
    return BuildStrategy(
        kind=BuildStrategyKind.TAURI_HYBRID,
        commands=(BuildCommand("npm run tauri:build", description="Tauri bundle"),),
        artifact=ArtifactRule(
            directory="src-tauri/target/release",
            candidates=candidates,
            destination_name=preferred,
        ),
    )


def _static_strategy(project_dir: Path, slug: str, platform: TargetPlatform) -> BuildStrategy:
    return BuildStrategy(
        kind=BuildStrategyKind.STATIC_FILE,
        commands=(),
        artifact=ArtifactRule(
            directory=".", candidates=("index.html",), destination_name=f"{slug}.html"
        ),
    )


_StrategyBuilder = Callable[[Path, str, TargetPlatform], BuildStrategy]

_BUILDERS: dict[BuildStrategyKind, _StrategyBuilder] = {
    BuildStrategyKind.GO_NATIVE: _go_strategy,
    BuildStrategyKind.RUST_NATIVE: _rust_strategy,
    BuildStrategyKind.BUN_BUNDLE: _bun_strategy,
    BuildStrategyKind.TAURI_HYBRID: _tauri_strategy,
    BuildStrategyKind.STATIC_FILE: _static_strategy,
}

_missing = set(BuildStrategyKind) - {BuildStrategyKind.UNKNOWN} - set(_BUILDERS)
if _missing:
    raise RuntimeError(
        "No build strategy registered for: " + ", ".join(sorted(k.value for k in _missing))
    )


def strategy_for(
    kind: BuildStrategyKind,
    project_dir: str | Path,
    slug: str,
    platform: TargetPlatform = TargetPlatform.LINUX,
) -> BuildStrategy:
    """Resolve the strategy for *kind* against a concrete project.

    Raises:
        UnknownProjectTypeError: For :attr:`BuildStrategyKind.UNKNOWN`.
    """
    if kind is BuildStrategyKind.UNKNOWN:
        raise UnknownProjectTypeError(
            f"Unknown project type in {project_dir}: no go.mod, Cargo.toml, "
            "package.json or index.html found"
        )
    return _BUILDERS[kind](Path(project_dir), slug, platform)
