"""Project lifecycle: draft -> built/failed -> finished -> published.

:class:`ProjectLifecycleManager` owns the transition table and every side
effect attached to a transition: scaffolding on ``new``, status persistence
on ``build``, the drafts-to-finished move plus git initialisation on
``finish``, and release notes / Homebrew formula generation on ``publish``.

Git problems during ``finish`` (and the implicit ``git init`` of
``publish``) are printed as warnings and never abort the transition.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .builder import (
    BuildOrchestrator,
    BuildRun,
    CommandError,
    CommandExecutor,
    CommandRunner,
)
from .config import Config
from .errors import (
    ConfigurationError,
    FeatureError,
    LifecycleTransitionError,
    ProjectExistsError,
    ProjectNotFoundError,
    PublishError,
    TinyAppError,
)
from .models import Project, ProjectStatus
from .scaffolder import (
    FeatureInstaller,
    ProjectScaffolder,
    ScaffoldOptions,
    TemplateRenderer,
)
from .utils import console, load_json, print_hint, print_warning, run_command

DEFAULT_VERSION = "1.0.0"
DEFAULT_DESCRIPTION = "A tiny, portable application"

_GIT_IDENTITY = {
    "GIT_AUTHOR_NAME": "TinyApp Factory",
    "GIT_AUTHOR_EMAIL": "tinyapp@localhost",
    "GIT_COMMITTER_NAME": "TinyApp Factory",
    "GIT_COMMITTER_EMAIL": "tinyapp@localhost",
}

_BUILDABLE = {ProjectStatus.DRAFT, ProjectStatus.BUILT, ProjectStatus.FAILED}
_PUBLISHABLE = {ProjectStatus.FINISHED, ProjectStatus.PUBLISHED}


class GitError(TinyAppError):
    """Raised when a git command fails."""

    label = "Git command failed"

    def __init__(self, message: str, command: str = "", stderr: str = ""):
        self.command = command
        self.stderr = stderr
        super().__init__(message)


async def _run_git(
    *args: str,
    cwd: str | Path,
    timeout: int = 60,
) -> str:
    """Run a git command and return its stdout.

    A fallback author/committer identity is supplied for machines without a
    git configuration; explicit environment settings win.

    Raises GitError if the command exits with a non-zero code.
    """
    cmd = ["git", *args]
    cmd_str = " ".join(cmd)
    env = {key: value for key, value in _GIT_IDENTITY.items() if key not in os.environ}
    returncode, stdout, stderr = await run_command(cmd, cwd=cwd, timeout=timeout, env=env)
    if returncode != 0:
        raise GitError(
            f"Git command failed (exit {returncode}): {cmd_str}\n{stderr}",
            command=cmd_str,
            stderr=stderr,
        )
    return stdout


@dataclass
class PublishResult:
    """Everything ``publish`` produced."""

    project: Project
    version: str
    remote_url: str
    release_command: str
    release_executed: bool
    release_notes_path: Path
    formula_path: Path


class ProjectLifecycleManager:
    """Drives projects through their lifecycle areas.

    Args:
        config: Root layout and publish settings.
        orchestrator: Builds drafts; defaults to one sharing *runner*.
        runner: Executes the release command when
            ``config.publish.execute_release`` is set.
        scaffolder: Creates drafts.
        features: Adds database/auth support during ``new``.
    """

    def __init__(
        self,
        config: Config,
        orchestrator: BuildOrchestrator | None = None,
        runner: CommandExecutor | None = None,
        scaffolder: ProjectScaffolder | None = None,
        features: FeatureInstaller | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer()
        self.runner = runner or CommandRunner(
            timeout=config.build.step_timeout,
            kill_grace=config.build.kill_grace,
        )
        self.orchestrator = orchestrator or BuildOrchestrator(config, runner=self.runner)
        self.scaffolder = scaffolder or ProjectScaffolder(config, self.renderer)
        self.features = features or FeatureInstaller(self.renderer)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def draft_dir(self, slug: str) -> Path:
        return self.config.drafts_dir / slug

    def finished_dir(self, slug: str) -> Path:
        return self.config.finished_dir / slug

    def list_projects(self) -> list[Project]:
        """Return every draft and finished project, drafts first."""
        projects: list[Project] = []
        for area, default_status in (
            (self.config.drafts_dir, ProjectStatus.DRAFT),
            (self.config.finished_dir, ProjectStatus.FINISHED),
        ):
            if not area.is_dir():
                continue
            for entry in sorted(area.iterdir()):
                if not entry.is_dir() or entry.name.startswith("."):
                    continue
                try:
                    projects.append(Project.load(entry, default_status))
                except ConfigurationError as exc:
                    print_warning(str(exc))
        return projects

    def resolve_project_dir(self, project: str | None = None) -> Path:
        """Map a ``--project`` value to a directory.

        ``None`` means the current directory.  A slug is looked up in drafts,
        then in finished; anything else is treated as a path.
        """
        if project is None:
            return Path.cwd()
        for candidate in (self.draft_dir(project), self.finished_dir(project), Path(project)):
            if candidate.is_dir():
                return candidate
        raise ProjectNotFoundError(f"Project {project} not found in drafts or finished")

    # ------------------------------------------------------------------
    # new
    # ------------------------------------------------------------------

    async def new(self, options: ScaffoldOptions) -> Project:
        """Scaffold a draft, then add the requested features.

        A feature that cannot be added to the chosen stack is reported as a
        warning; the draft itself is kept.
        """
        project = await self.scaffolder.create(options)
        if options.database:
            try:
                await self.features.add_database(project.directory)
            except FeatureError as exc:
                print_warning(f"Database not added: {exc}")
        if options.auth:
            try:
                await self.features.add_auth(project.directory)
            except FeatureError as exc:
                print_warning(f"Auth not added: {exc}")
        return Project.load(project.directory, ProjectStatus.DRAFT)

    # ------------------------------------------------------------------
    # build
    # ------------------------------------------------------------------

    async def build(self, slug: str) -> tuple[Project, BuildRun]:
        """Build a draft and persist ``Built`` or ``Failed``.

        Raises:
            ProjectNotFoundError: No draft named *slug*.
            LifecycleTransitionError: *slug* is already finished.
            BuildInProgressError: *slug* is being built or moved.
        """
        project_dir = self.draft_dir(slug)
        if not project_dir.is_dir():
            if self.finished_dir(slug).is_dir():
                raise LifecycleTransitionError(
                    f"Project {slug} is finished; finished projects are not rebuilt"
                )
            raise ProjectNotFoundError(f"Project {slug} not found in drafts")

        async with self.orchestrator.locks.hold(slug):
            project = Project.load(project_dir, ProjectStatus.DRAFT)
            self._require(project, _BUILDABLE, "build")

            run = await self.orchestrator.run(slug, project_dir, hold_lock=False)
            project.status = ProjectStatus.BUILT if run.success else ProjectStatus.FAILED
            if run.artifact is not None:
                project.last_artifact = str(run.artifact.destination_path)
            await asyncio.to_thread(project.save)
        return project, run

    # ------------------------------------------------------------------
    # finish
    # ------------------------------------------------------------------

    async def finish(self, slug: str) -> Project:
        """Move a draft to the finished area and put it under git.

        Raises:
            ProjectNotFoundError: No draft named *slug*.
            ProjectExistsError: A finished project with that slug exists.
            LifecycleTransitionError: The draft's status forbids finishing.
            BuildInProgressError: A build of *slug* is running.
        """
        source = self.draft_dir(slug)
        destination = self.finished_dir(slug)
        if not source.is_dir():
            if destination.is_dir():
                raise LifecycleTransitionError(f"Project {slug} is already finished")
            raise ProjectNotFoundError(f"Project {slug} not found in drafts")
        if destination.exists():
            raise ProjectExistsError(f"Project {slug} already exists in finished")

        async with self.orchestrator.locks.hold(slug):
            project = Project.load(source, ProjectStatus.DRAFT)
            self._require(project, _BUILDABLE, "finish")

            await asyncio.to_thread(destination.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.move, str(source), str(destination))

            project.directory = destination
            project.status = ProjectStatus.FINISHED
            await asyncio.to_thread(project.save)

            target = await asyncio.to_thread(self._copy_finished_artifact, slug)
            if target is not None:
                console.print(f"  [green]+[/green] Binary copied to {target}")
            await self._init_git(destination, slug)
        return project

    def _copy_finished_artifact(self, slug: str) -> Path | None:
        output_dir = self.config.output_dir_for()
        for suffix in (self.config.platform.executable_suffix, ".html"):
            artifact = output_dir / f"{slug}{suffix}"
            if artifact.is_file():
                target = output_dir / f"{slug}-finished{suffix}"
                shutil.copy2(artifact, target)
                return target
        return None

    async def _init_git(self, project_dir: Path, slug: str) -> bool:
        """``git init`` + initial commit; failures are warnings only."""
        try:
            await _run_git("init", cwd=project_dir)
            await _run_git("add", ".", cwd=project_dir)
            await _run_git("commit", "-m", f"Initial commit: {slug}", cwd=project_dir)
        except GitError as exc:
            print_warning(f"Git initialization failed: {exc}")
            return False
        console.print("  [green]+[/green] Git repository initialized")
        return True

    # ------------------------------------------------------------------
    # publish
    # ------------------------------------------------------------------

    async def publish(self, slug: str) -> PublishResult:
        """Prepare a GitHub release and a Homebrew formula for a finished project.

        Raises:
            ProjectNotFoundError: *slug* is not in the finished area.
            LifecycleTransitionError: The project's status forbids publishing.
            PublishError: No ``origin`` remote, or the release command failed.
            BuildInProgressError: *slug* is locked by another transition.
        """
        project_dir = self.finished_dir(slug)
        if not project_dir.is_dir():
            raise ProjectNotFoundError(
                f"Project {slug} not found in finished/. "
                f"Run 'tinyapp finish --project {slug}' first"
            )

        async with self.orchestrator.locks.hold(slug):
            return await self._publish(slug, project_dir)

    async def _publish(self, slug: str, project_dir: Path) -> PublishResult:
        project = Project.load(project_dir, ProjectStatus.FINISHED)
        self._require(project, _PUBLISHABLE, "publish")

        if not (project_dir / ".git").exists():
            print_warning("Project is not a Git repository. Initializing...")
            await self._init_git(project_dir, slug)

        owner = self.config.publish.homepage_owner
        try:
            remote_url = await _run_git("remote", "get-url", "origin", cwd=project_dir)
        except GitError:
            raise PublishError(
                "No GitHub remote found. Add one with:\n"
                f"  git remote add origin https://github.com/{owner}/{slug}.git"
            ) from None
        console.print(f"  [green]+[/green] Found GitHub remote: {remote_url}")

        version, description = _read_package_info(project_dir)
        context = {
            "project_name": project.name,
            "project_slug": slug,
            "version": version,
            "description": description,
            "owner": owner,
        }

        notes_path = await self.renderer.render_to_file(
            "publish/RELEASE_NOTES.md.j2", project_dir / "RELEASE_NOTES.md", context
        )

        release_cli = self.config.publish.release_cli
        release_command = (
            f'{release_cli} release create v{version} --title "{slug} v{version}" '
            f"--notes-file RELEASE_NOTES.md"
        )
        executed = False
        if self.config.publish.execute_release:
            try:
                await self.runner.execute(release_command, project_dir)
            except CommandError as exc:
                raise PublishError(f"Release command failed: {exc}") from exc
            executed = True
            console.print("  [green]+[/green] GitHub release created")
        else:
            console.print("  [green]+[/green] GitHub release command prepared")
            print_hint("Run this command to create the release:")
            print_hint(f"  cd {project_dir}")
            print_hint(f"  {release_command}")

        formula_path = await self.renderer.render_to_file(
            "publish/formula.rb.j2", project_dir / f"{slug}.rb", context
        )
        console.print(f"  [green]+[/green] Homebrew formula created: {formula_path}")

        project.status = ProjectStatus.PUBLISHED
        await asyncio.to_thread(project.save)

        return PublishResult(
            project=project,
            version=version,
            remote_url=remote_url,
            release_command=release_command,
            release_executed=executed,
            release_notes_path=notes_path,
            formula_path=formula_path,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require(project: Project, allowed: set[ProjectStatus], action: str) -> None:
        if project.status not in allowed:
            raise LifecycleTransitionError(
                f"Cannot {action} project {project.slug} from status "
                f"'{project.status.value}'"
            )


def _read_package_info(project_dir: Path) -> tuple[str, str]:
    """Return ``(version, description)`` from ``package.json`` with defaults."""
    package_json = project_dir / "package.json"
    if not package_json.is_file():
        return DEFAULT_VERSION, DEFAULT_DESCRIPTION
    try:
        data = load_json(package_json)
    except ValueError:
        return DEFAULT_VERSION, DEFAULT_DESCRIPTION
    version = data.get("version") or DEFAULT_VERSION
    description = data.get("description") or DEFAULT_DESCRIPTION
    return str(version), str(description)
