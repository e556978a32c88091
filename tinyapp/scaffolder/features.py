"""Feature injection into existing projects (``tinyapp add ...``).

Each feature merges npm dependencies into the project's ``package.json`` and
renders support files next to the frontend sources.  Which ``package.json``
is used depends on the detected toolchain: Go and Rust projects keep their
web code under ``frontend/``; Bun and Tauri projects use ``frontend/`` when
present and the project root otherwise.  Static projects have no package
manager and only support sync, through a standalone ``sync.js``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from ..builder.detector import BuildStrategyKind, StackDetector
from ..errors import FeatureError
from ..models import PROJECT_METADATA_FILE, Project, ProjectStatus
from ..utils import load_json, write_json
from .templates import TemplateRenderer

FIREPROOF_DEPENDENCIES: dict[str, str] = {
    "@fireproof/core": "^0.19.0",
    "use-fireproof": "^0.19.0",
}

SYNC_DEPENDENCIES: dict[str, dict[str, str]] = {
    "fireproof-cloud": {"@fireproof/cloud": "^0.19.0"},
    "partykit": {"partykit": "^0.0.1"},
    "s3": {"@aws-sdk/client-s3": "^3.0.0"},
}

SYNC_PROVIDERS = tuple(SYNC_DEPENDENCIES)
AUTH_PROVIDERS = ("device",)

_FIREPROOF_RULES_MARKER = "## Fireproof Database Patterns"


@dataclass
class FeatureResult:
    """What ``add`` changed in a project."""

    feature: str
    project_dir: Path
    files: list[Path] = field(default_factory=list)
    dependencies: dict[str, str] = field(default_factory=dict)
    provider: str | None = None


class FeatureInstaller:
    """Adds database, sync and auth support to a scaffolded project."""

    def __init__(
        self,
        renderer: TemplateRenderer | None = None,
        detector: StackDetector | None = None,
    ) -> None:
        self.renderer = renderer or TemplateRenderer()
        self.detector = detector or StackDetector()

    # -- Public API --------------------------------------------------------

    async def add_database(self, project_dir: str | Path) -> FeatureResult:
        """Add the Fireproof document store."""
        project_dir = Path(project_dir)
        web_root = self._web_root(project_dir, "database")
        if web_root is None:
            raise FeatureError(
                "Static HTML projects have no package manager; "
                "use 'tinyapp add sync' to load Fireproof from sync.js"
            )

        project = self._load_project(project_dir)
        context = self._context(project)
        result = FeatureResult(feature="database", project_dir=project_dir)

        result.dependencies = await asyncio.to_thread(
            _merge_dependencies, web_root / "package.json", FIREPROOF_DEPENDENCIES
        )
        result.files.append(
            await self.renderer.render_to_file(
                "features/database.ts.j2", web_root / "src" / "lib" / "database.ts", context
            )
        )
        result.files.append(
            await self.renderer.render_to_file(
                "features/useDatabase.ts.j2",
                web_root / "src" / "hooks" / "useDatabase.ts",
                context,
            )
        )

        rules = project_dir / ".cursorrules"
        if rules.is_file():
            existing = await asyncio.to_thread(rules.read_text, encoding="utf-8")
            if _FIREPROOF_RULES_MARKER not in existing:
                addition = self.renderer.render("guidance/fireproof_rules.md.j2", context)
                await asyncio.to_thread(
                    rules.write_text,
                    existing.rstrip("\n") + "\n" + addition,
                    encoding="utf-8",
                )
                result.files.append(rules)

        await asyncio.to_thread(_record_feature, project, "database")
        return result

    async def add_sync(self, project_dir: str | Path, provider: str) -> FeatureResult:
        """Add cloud sync through *provider* (``fireproof-cloud``, ``partykit``, ``s3``)."""
        if provider not in SYNC_DEPENDENCIES:
            raise FeatureError(
                f"Unknown sync provider '{provider}' "
                f"(available: {', '.join(SYNC_PROVIDERS)})"
            )
        project_dir = Path(project_dir)
        web_root = self._web_root(project_dir, "sync")
        project = self._load_project(project_dir)
        context = {**self._context(project), "provider": provider}
        result = FeatureResult(feature="sync", project_dir=project_dir, provider=provider)

        if web_root is None:
            result.files.append(
                await self.renderer.render_to_file(
                    "features/sync.js.j2", project_dir / "sync.js", context
                )
            )
        else:
            dependencies = {**FIREPROOF_DEPENDENCIES, **SYNC_DEPENDENCIES[provider]}
            result.dependencies = await asyncio.to_thread(
                _merge_dependencies, web_root / "package.json", dependencies
            )
            result.files.append(
                await self.renderer.render_to_file(
                    "features/sync.ts.j2", web_root / "src" / "lib" / "sync.ts", context
                )
            )
            result.files.append(
                await self.renderer.render_to_file(
                    "features/useSync.ts.j2",
                    web_root / "src" / "hooks" / "useSync.ts",
                    context,
                )
            )

        await asyncio.to_thread(_record_feature, project, f"sync:{provider}")
        return result

    async def add_auth(
        self, project_dir: str | Path, provider: str = "device"
    ) -> FeatureResult:
        """Add a device-bound identity helper."""
        if provider not in AUTH_PROVIDERS:
            raise FeatureError(
                f"Unknown auth provider '{provider}' "
                f"(available: {', '.join(AUTH_PROVIDERS)})"
            )
        project_dir = Path(project_dir)
        web_root = self._web_root(project_dir, "auth")
        if web_root is None:
            raise FeatureError("Device auth needs a TypeScript frontend")

        project = self._load_project(project_dir)
        result = FeatureResult(feature="auth", project_dir=project_dir, provider=provider)
        result.files.append(
            await self.renderer.render_to_file(
                "features/auth.ts.j2",
                web_root / "src" / "lib" / "auth.ts",
                self._context(project),
            )
        )
        await asyncio.to_thread(_record_feature, project, f"auth:{provider}")
        return result

    # -- Helpers -----------------------------------------------------------

    def _web_root(self, project_dir: Path, feature: str) -> Path | None:
        """Return the directory holding the frontend ``package.json``.

        ``None`` means a static project.

        Raises:
            FeatureError: Not a project, or the expected frontend is missing.
        """
        kind = self.detector.detect(project_dir)
        if kind is BuildStrategyKind.UNKNOWN:
            raise FeatureError(
                f"Cannot add {feature}: {project_dir} is not a TinyApp project directory"
            )
        if kind is BuildStrategyKind.STATIC_FILE:
            return None

        frontend = project_dir / "frontend"
        if (frontend / "package.json").is_file():
            return frontend
        if kind in (BuildStrategyKind.GO_NATIVE, BuildStrategyKind.RUST_NATIVE):
            raise FeatureError(
                f"Cannot add {feature}: frontend directory not found in {project_dir}"
            )
        return project_dir

    @staticmethod
    def _load_project(project_dir: Path) -> Project:
        return Project.load(project_dir, ProjectStatus.DRAFT)

    @staticmethod
    def _context(project: Project) -> dict[str, str]:
        return {"project_name": project.name, "project_slug": project.slug}


def _merge_dependencies(package_json: Path, dependencies: dict[str, str]) -> dict[str, str]:
    """Merge *dependencies* into ``package_json`` and return what was added."""
    data = load_json(package_json)
    current = data.setdefault("dependencies", {})
    added = {
        name: version
        for name, version in dependencies.items()
        if current.get(name) != version
    }
    current.update(dependencies)
    write_json(data, package_json)
    return added


def _record_feature(project: Project, feature: str) -> None:
    """Persist *feature* in the project record when the project has one."""
    if not (project.directory / PROJECT_METADATA_FILE).is_file():
        return
    if feature not in project.features:
        project.features.append(feature)
        project.save()
