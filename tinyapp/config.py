"""TinyApp Factory configuration.

Centralised, typed configuration for the CLI, the build pipeline, and the
cherry service. All settings use Pydantic v2 models so they can be validated
at construction time and serialised to/from JSON or environment variables
without boiler-plate.
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from .utils import ensure_dir

_PACKAGE_DIR = Path(__file__).parent


class TargetPlatform(str, Enum):
    """Platform an artifact is built for; selects the output subdirectory."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"

    @property
    def executable_suffix(self) -> str:
        return ".exe" if self is TargetPlatform.WINDOWS else ""

    @classmethod
    def host(cls) -> "TargetPlatform":
        """Return the platform of the running interpreter."""
        if sys.platform.startswith("win"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MACOS
        return cls.LINUX


class BuildConfig(BaseModel):
    """Tuning knobs for external build commands."""

    step_timeout: float | None = Field(
        default=1800.0,
        description="Per-command wall-clock limit in seconds (None disables)",
    )
    kill_grace: float = Field(
        default=5.0, ge=0, description="Seconds between SIGTERM and SIGKILL"
    )


class LLMConfig(BaseModel):
    """Configuration for the remote spec-generation model."""

    api_url: str = Field(default="https://api.deepseek.com/v1/chat/completions")
    api_key: str = Field(default="", repr=False)
    model: str = Field(default="deepseek-chat")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=2000, ge=1)
    timeout: int = Field(default=60, ge=5, description="Per-request timeout in seconds")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class ServerConfig(BaseModel):
    """HTTP server binding."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000, ge=1, le=65535)


class PublishConfig(BaseModel):
    """Controls the side effects of ``publish``."""

    execute_release: bool = Field(
        default=False,
        description="Run the release CLI instead of printing the command",
    )
    release_cli: str = Field(default="gh")
    homepage_owner: str = Field(default="username")


class Config(BaseModel):
    """Global TinyApp Factory configuration.

    Holds every tuneable parameter and derived path. Instances are created once
    by the CLI entry point or the HTTP server and passed through the rest of
    the system.
    """

    root_dir: Path = Field(default=Path("."))
    templates_dir: Path = Field(default=_PACKAGE_DIR / "stacks")
    builds_dir: Path | None = Field(default=None)
    workspace_dir: Path | None = Field(default=None)
    platform: TargetPlatform = Field(default_factory=TargetPlatform.host)
    build: BuildConfig = Field(default_factory=BuildConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)

    desktop_artifact_patterns: list[str] = Field(
        default=["task-cherry-desktop", "filecherry-desktop"]
    )
    desktop_fallback_project: str = Field(default="go-desktop-demo")

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def projects_dir(self) -> Path:
        return self.root_dir / "projects"

    @property
    def drafts_dir(self) -> Path:
        """Lifecycle area for projects under construction."""
        return self.projects_dir / "drafts"

    @property
    def finished_dir(self) -> Path:
        """Lifecycle area for finished (and published) projects."""
        return self.projects_dir / "finished"

    @property
    def outputs_dir(self) -> Path:
        """Shared output area; one subdirectory per platform."""
        return self.root_dir / "outputs"

    @property
    def locks_dir(self) -> Path:
        """Directory holding advisory build lock files."""
        return self.outputs_dir / ".locks"

    @property
    def cherry_builds_dir(self) -> Path:
        """Where cherry specs and downloadable artifacts are kept."""
        return self.builds_dir or (self.root_dir / "builds")

    @property
    def cherry_workspace_dir(self) -> Path:
        """Parent of the per-cherry project directories."""
        return self.workspace_dir or (self.root_dir / "workspace")

    @property
    def desktop_fallback_dir(self) -> Path:
        return self.finished_dir / self.desktop_fallback_project

    def output_dir_for(self, platform: TargetPlatform | None = None) -> Path:
        """Return ``outputs/<platform>`` for *platform* (default: configured)."""
        return self.outputs_dir / (platform or self.platform).value

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``<root>/tinyapp.json``.

        Returns:
            The resolved path where the file was written.
        """
        target = path or (self.root_dir / "tinyapp.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            self.model_dump_json(indent=2, exclude={"llm": {"api_key"}}),
            encoding="utf-8",
        )
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            TINYAPP_ROOT, TINYAPP_TEMPLATES_DIR, TINYAPP_BUILDS_DIR,
            TINYAPP_WORKSPACE_DIR, TINYAPP_PLATFORM, TINYAPP_STEP_TIMEOUT,
            TINYAPP_KILL_GRACE, DEEPSEEK_API_KEY, DEEPSEEK_API_URL,
            DEEPSEEK_MODEL, TINYAPP_LLM_TIMEOUT, TINYAPP_HOST, PORT,
            TINYAPP_EXECUTE_RELEASE.
        """
        kwargs: dict[str, Any] = {
            "root_dir": Path(os.environ.get("TINYAPP_ROOT", ".")),
        }
        if os.environ.get("TINYAPP_TEMPLATES_DIR"):
            kwargs["templates_dir"] = Path(os.environ["TINYAPP_TEMPLATES_DIR"])
        if os.environ.get("TINYAPP_BUILDS_DIR"):
            kwargs["builds_dir"] = Path(os.environ["TINYAPP_BUILDS_DIR"])
        if os.environ.get("TINYAPP_WORKSPACE_DIR"):
            kwargs["workspace_dir"] = Path(os.environ["TINYAPP_WORKSPACE_DIR"])
        if os.environ.get("TINYAPP_PLATFORM"):
            kwargs["platform"] = TargetPlatform(os.environ["TINYAPP_PLATFORM"])

        build_kwargs: dict[str, Any] = {}
        if os.environ.get("TINYAPP_STEP_TIMEOUT"):
            timeout = float(os.environ["TINYAPP_STEP_TIMEOUT"])
            build_kwargs["step_timeout"] = timeout if timeout > 0 else None
        if os.environ.get("TINYAPP_KILL_GRACE"):
            build_kwargs["kill_grace"] = float(os.environ["TINYAPP_KILL_GRACE"])

        llm_kwargs: dict[str, Any] = {}
        if os.environ.get("DEEPSEEK_API_KEY"):
            llm_kwargs["api_key"] = os.environ["DEEPSEEK_API_KEY"]
        if os.environ.get("DEEPSEEK_API_URL"):
            llm_kwargs["api_url"] = os.environ["DEEPSEEK_API_URL"]
        if os.environ.get("DEEPSEEK_MODEL"):
            llm_kwargs["model"] = os.environ["DEEPSEEK_MODEL"]
        if os.environ.get("TINYAPP_LLM_TIMEOUT"):
            llm_kwargs["timeout"] = int(os.environ["TINYAPP_LLM_TIMEOUT"])

        server_kwargs: dict[str, Any] = {}
        if os.environ.get("TINYAPP_HOST"):
            server_kwargs["host"] = os.environ["TINYAPP_HOST"]
        if os.environ.get("PORT"):
            server_kwargs["port"] = int(os.environ["PORT"])

        publish_kwargs: dict[str, Any] = {}
        if os.environ.get("TINYAPP_EXECUTE_RELEASE"):
            publish_kwargs["execute_release"] = os.environ[
                "TINYAPP_EXECUTE_RELEASE"
            ].strip().lower() in ("1", "true", "yes")

        return cls(
            **kwargs,
            build=BuildConfig(**build_kwargs),
            llm=LLMConfig(**llm_kwargs),
            server=ServerConfig(**server_kwargs),
            publish=PublishConfig(**publish_kwargs),
        )

    def ensure_directories(self) -> None:
        """Create every directory the CLI and the service write into."""
        directories = [
            self.drafts_dir,
            self.finished_dir,
            self.outputs_dir,
            *(self.output_dir_for(p) for p in TargetPlatform),
        ]
        for directory in directories:
            ensure_dir(directory)

    def ensure_service_directories(self) -> None:
        """Create the cherry builds and workspace directories."""
        for directory in (self.cherry_builds_dir, self.cherry_workspace_dir):
            ensure_dir(directory)
