"""Cherry pipeline service.

Drives one cherry from request to download:

Requested  -- validate the request (description, category, stack, flags).
Generating -- produce a spec through the configured :class:`SpecGenerator`.
SpecReady  -- assign an id and persist the spec (write-once).
Building   -- run the spec's commands in ``workspace/<id>/``.
Built      -- copy the artifact into the builds directory.
Downloadable -- serve ``<builds>/<id>-<name><suffix>``.

Each spec gets exactly one build attempt.  A successful build is idempotent
(asking again returns the stored result); a failed one consumes the spec.

Usage::

    service = CherryPipelineService.from_config(Config.from_env())
    spec = await service.generate({"description": "A habit tracker"})
    result = await service.build(spec.id)
"""

from __future__ import annotations

import asyncio
import secrets
import shutil
import string
import time
from pathlib import Path
from typing import Any

from pydantic import ValidationError
from rich.panel import Panel

from .builder.locks import BuildLockTable
from .builder.results import BuildStep, StepStatus
from .builder.runner import CommandError, CommandExecutor, CommandRunner
from .cherry.deepseek_client import DeepSeekClient
from .cherry.models import (
    CherryBuildRecord,
    CherryBuildResult,
    CherryBuildStatus,
    CherryRequest,
    CherrySpec,
)
from .cherry.spec_gen import (
    DeepSeekSpecGenerator,
    FallbackSpecGenerator,
    RuleBasedSpecGenerator,
    SpecGenerator,
)
from .cherry.store import (
    SPEC_SUFFIX,
    BuildRecordStore,
    FileBuildRecordStore,
    FileSpecStore,
    SpecStore,
    is_valid_cherry_id,
)
from .config import Config
from .errors import (
    CherryBuildError,
    CherryNotFoundError,
    CherryRequestError,
    SpecConsumedError,
)
from .utils import (
    console,
    create_slug,
    format_duration,
    format_size,
    print_error,
    print_step_header,
    print_success,
)

_ID_ALPHABET = string.digits + string.ascii_lowercase
_BINARY_SUFFIXES = ("", ".exe", ".app")


def new_cherry_id() -> str:
    """Return ``cherry-<epoch ms>-<9 base36 chars>``."""
    millis = int(time.time() * 1000)
    token = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"cherry-{millis}-{token}"


def download_url_for(cherry_id: str) -> str:
    return f"/api/download/{cherry_id}"


def find_cherry_artifact(outputs_dir: Path) -> Path | None:
    """Newest binary-like file or ``.html`` bundle under *outputs_dir*.

    Hidden entries and JSON files are skipped.  A ``.app`` bundle is
    considered as a whole and its contents are not searched; it is served
    as a zip archive.
    """
    if not outputs_dir.is_dir():
        return None

    candidates: list[Path] = []
    bundles: list[Path] = []
    for path in outputs_dir.rglob("*"):
        relative = path.relative_to(outputs_dir)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_dir():
            if path.suffix == ".app":
                bundles.append(path)
                candidates.append(path)
            continue
        if path.suffix == ".json":
            continue
        if path.suffix in _BINARY_SUFFIXES or path.suffix == ".html":
            candidates.append(path)

    candidates = [c for c in candidates if not any(b in c.parents for b in bundles)]
    if not candidates:
        return None
    return max(candidates, key=lambda p: p.stat().st_mtime)


class CherryPipelineService:
    """Generates, stores and builds cherries.

    Attributes:
        config: Supplies the builds/workspace/outputs areas and build limits.
        generator: Produces specs from requests.
        specs: Write-once spec storage.
        records: Per-id build state.
        runner: Executes each spec command.
        locks: Per-id reject-on-contention locks.
    """

    def __init__(
        self,
        config: Config,
        generator: SpecGenerator | None = None,
        spec_store: SpecStore | None = None,
        record_store: BuildRecordStore | None = None,
        runner: CommandExecutor | None = None,
        locks: BuildLockTable | None = None,
        quiet: bool = False,
    ) -> None:
        self.config = config
        self.generator = generator or RuleBasedSpecGenerator()
        self.specs = spec_store or FileSpecStore(config.cherry_builds_dir)
        self.records = record_store or FileBuildRecordStore(config.cherry_builds_dir)
        self.runner = runner or CommandRunner(
            timeout=config.build.step_timeout,
            kill_grace=config.build.kill_grace,
        )
        self.locks = locks or BuildLockTable()
        self.quiet = quiet

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> "CherryPipelineService":
        """Production wiring: DeepSeek first, rule-based fallback."""
        generator = FallbackSpecGenerator(
            primary=DeepSeekSpecGenerator(
                DeepSeekClient.from_config(config.llm),
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
            ),
            fallback=RuleBasedSpecGenerator(),
        )
        return cls(config, generator=generator, **kwargs)

    # ------------------------------------------------------------------
    # Generate
    # ------------------------------------------------------------------

    async def generate(self, request: CherryRequest | dict[str, Any]) -> CherrySpec:
        """Validate *request*, generate a spec, assign an id and persist it.

        Raises:
            CherryRequestError: The request is invalid; nothing was stored.
        """
        if not isinstance(request, CherryRequest):
            try:
                request = CherryRequest.model_validate(request)
            except ValidationError as exc:
                raise CherryRequestError(_first_validation_message(exc)) from exc

        spec = await self.generator.generate(request)
        spec = spec.model_copy(update={"id": new_cherry_id()})
        await asyncio.to_thread(self.config.ensure_service_directories)
        await self.specs.put(spec)

        self._print(
            f"[bold green]Generated[/bold green] {spec.icon} {spec.name} "
            f"([cyan]{spec.id}[/cyan], {spec.stack}, {spec.size})"
        )
        return spec

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def build(self, cherry_id: str) -> CherryBuildResult:
        """Run the spec's commands once and publish the artifact for download.

        Raises:
            CherryNotFoundError: No spec is stored under *cherry_id*.
            BuildInProgressError: The same id is being built right now.
            SpecConsumedError: The spec's build already failed.
            CherryBuildError: A command failed or no artifact was produced.
        """
        spec = await self.specs.get(cherry_id)
        if spec is None:
            raise CherryNotFoundError(cherry_id)

        async with self.locks.hold(cherry_id):
            record = await self.records.get(cherry_id)
            if record is not None and record.status is CherryBuildStatus.BUILT:
                return CherryBuildResult(
                    cherry_id=cherry_id,
                    download_url=record.download_url or download_url_for(cherry_id),
                    build_steps=record.steps,
                )
            if record is not None:
                # A record left in BUILDING belongs to an attempt that died.
                raise SpecConsumedError(cherry_id)

            await self.records.put(
                CherryBuildRecord(cherry_id=cherry_id, status=CherryBuildStatus.BUILDING)
            )
            try:
                return await self._build(spec)
            except CherryBuildError as exc:
                await self.records.put(
                    CherryBuildRecord(
                        cherry_id=cherry_id,
                        status=CherryBuildStatus.FAILED,
                        steps=exc.steps,
                        error=str(exc),
                    )
                )
                print_error(f"Cherry {cherry_id} failed: {exc}")
                raise
            except asyncio.CancelledError:
                await self.records.put(
                    CherryBuildRecord(
                        cherry_id=cherry_id,
                        status=CherryBuildStatus.FAILED,
                        error="Build cancelled",
                    )
                )
                raise

    async def _build(self, spec: CherrySpec) -> CherryBuildResult:
        start = time.monotonic()
        project_dir = self.config.cherry_workspace_dir / spec.id
        await asyncio.to_thread(project_dir.mkdir, parents=True, exist_ok=True)
        env = {
            "TINYAPP_ROOT": str(project_dir.resolve()),
            "TINYAPP_TEMPLATES_DIR": str(Path(self.config.templates_dir).resolve()),
        }

        if not self.quiet:
            console.print(
                Panel(
                    f"[bold]{spec.icon} {spec.name}[/bold]\n{spec.id} ({spec.stack})",
                    title="Building cherry",
                    style="cyan",
                )
            )

        steps: list[BuildStep] = []
        total = len(spec.commands)
        for index, command in enumerate(spec.commands, start=1):
            step = BuildStep(
                command=command,
                description=f"Step {index}/{total}",
                status=StepStatus.RUNNING,
            )
            steps.append(step)
            if not self.quiet:
                print_step_header(index, total, command)

            step_start = time.monotonic()
            try:
                result = await self.runner.execute(command, project_dir, env=env)
            except CommandError as exc:
                step.duration_seconds = time.monotonic() - step_start
                step.status = StepStatus.FAILED
                step.failure_kind = exc.kind
                step.error = str(exc)
                step.stdout = exc.stdout
                step.stderr = exc.stderr
                raise CherryBuildError(
                    f"Step {index} failed: {exc}", [s.to_dict() for s in steps]
                ) from exc

            step.duration_seconds = time.monotonic() - step_start
            step.status = StepStatus.COMPLETED
            step.stdout = result.stdout
            step.stderr = result.stderr
            step.exit_code = result.exit_code

        step_log = [s.to_dict() for s in steps]
        source = await asyncio.to_thread(find_cherry_artifact, project_dir / "outputs")
        if source is None:
            raise CherryBuildError(
                f"Built binary not found under {project_dir / 'outputs'}", step_log
            )

        destination = self._download_path(spec, source)
        size_bytes = await asyncio.to_thread(_copy_download, source, destination)

        download_url = download_url_for(spec.id)
        await self.records.put(
            CherryBuildRecord(
                cherry_id=spec.id,
                status=CherryBuildStatus.BUILT,
                steps=step_log,
                download_url=download_url,
                artifact_path=str(destination),
            )
        )
        if not self.quiet:
            print_success(
                f"Cherry ready: {destination.name} ({format_size(size_bytes)}) "
                f"in {format_duration(time.monotonic() - start)}"
            )
        return CherryBuildResult(
            cherry_id=spec.id, download_url=download_url, build_steps=step_log
        )

    def _download_path(self, spec: CherrySpec, source: Path) -> Path:
        if source.suffix == ".html":
            suffix = source.suffix
        elif source.is_dir():
            suffix = f"{source.suffix}.zip"
        else:
            suffix = self.config.platform.executable_suffix
        name = create_slug(spec.name) or "cherry"
        return self.config.cherry_builds_dir / f"{spec.id}-{name}{suffix}"

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def resolve_download(self, cherry_id: str) -> Path:
        """Return the built artifact for *cherry_id*.

        Raises:
            CherryNotFoundError: Unknown id or nothing built yet.
        """
        builds_dir = self.config.cherry_builds_dir
        if not is_valid_cherry_id(cherry_id) or not builds_dir.is_dir():
            raise CherryNotFoundError(cherry_id, f"Cherry build '{cherry_id}' not found")

        prefix = f"{cherry_id}-"
        for path in sorted(builds_dir.iterdir()):
            if (
                path.is_file()
                and path.name.startswith(prefix)
                and not path.name.endswith(SPEC_SUFFIX)
            ):
                return path
        raise CherryNotFoundError(cherry_id, f"Cherry build '{cherry_id}' not found")

    def latest_desktop_artifact(self) -> Path | None:
        """Newest desktop build in the outputs area, else in the fallback project."""
        patterns = self.config.desktop_artifact_patterns
        for directory in (self.config.outputs_dir, self.config.desktop_fallback_dir):
            if not directory.is_dir():
                continue
            matches = [
                path
                for path in directory.rglob("*")
                if path.is_file() and any(p in path.name for p in patterns)
            ]
            if matches:
                return max(matches, key=lambda p: p.stat().st_mtime)
        return None

    def _print(self, message: str) -> None:
        if not self.quiet:
            console.print(message)


def _first_validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    message = str(first.get("msg", "Invalid request"))
    # pydantic prefixes messages raised from validators.
    message = message.removeprefix("Value error, ")
    location = ".".join(str(part) for part in first.get("loc", ()))
    if first.get("type") == "missing":
        return f"{location.capitalize()} is required"
    return message


def _copy_download(source: Path, destination: Path) -> int:
    """Place *source* at *destination*; bundles are zipped with their folder."""
    destination.parent.mkdir(parents=True, exist_ok=True)
    if source.is_dir():
        # make_archive appends ".zip" to the base name.
        archive = shutil.make_archive(
            str(destination.with_suffix("")),
            "zip",
            root_dir=source.parent,
            base_dir=source.name,
        )
        return Path(archive).stat().st_size
    shutil.copy2(source, destination)
    return destination.stat().st_size
