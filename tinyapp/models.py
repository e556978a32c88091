"""Core data models: the stack registry and the project record.

The stack registry mirrors the table shown by ``tinyapp stacks``; each stack
names the template directory it is scaffolded from and the kind of backend it
produces.  :class:`Project` is persisted as ``.tinyapp.json`` inside the
project directory.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .errors import ConfigurationError, UnknownStackError
from .utils import load_json

PROJECT_METADATA_FILE = ".tinyapp.json"


class StackKind(str, Enum):
    NATIVE_COMPILED_WEB = "native-compiled-web"
    BUNDLED_RUNTIME_WEB = "bundled-runtime-web"
    NATIVE_DESKTOP = "native-desktop"
    HYBRID_DESKTOP_MOBILE = "hybrid-desktop-mobile"
    STATIC_FILE = "static-file"


class Stack(BaseModel):
    """A selectable backend/toolchain combination."""

    key: str
    name: str
    size: str
    compile_time: str
    description: str
    template: str
    kind: StackKind
    base_size_mb: float = Field(description="Typical artifact size used for estimates")


STACKS: dict[str, Stack] = {
    stack.key: stack
    for stack in (
        Stack(
            key="go-gin",
            name="Go + Gin (Web Server)",
            size="8-18 MB",
            compile_time="Fast (15s)",
            description="Web server with embedded frontend - serves HTML via HTTP",
            template="go-gin",
            kind=StackKind.NATIVE_COMPILED_WEB,
            base_size_mb=12,
        ),
        Stack(
            key="go-fyne",
            name="Go + Fyne (Native Desktop)",
            size="20-30 MB",
            compile_time="Fast (15s)",
            description="True native desktop app - opens in its own window",
            template="go-fyne",
            kind=StackKind.NATIVE_DESKTOP,
            base_size_mb=25,
        ),
        Stack(
            key="bun-hono",
            name="Bun + Hono (Web Server)",
            size="50-100 MB",
            compile_time="Fast (10s)",
            description="TypeScript web server with embedded frontend",
            template="bun-hono",
            kind=StackKind.BUNDLED_RUNTIME_WEB,
            base_size_mb=70,
        ),
        Stack(
            key="rust-axum",
            name="Rust + Axum (Web Server)",
            size="5-10 MB",
            compile_time="Medium (30s)",
            description="Maximum performance web server with embedded frontend",
            template="rust-axum",
            kind=StackKind.NATIVE_COMPILED_WEB,
            base_size_mb=8,
        ),
        Stack(
            key="tauri-react",
            name="Tauri + React (Hybrid)",
            size="6-14 MB",
            compile_time="Medium (45s)",
            description="Desktop native + mobile PWA - true cross-platform",
            template="tauri-react",
            kind=StackKind.HYBRID_DESKTOP_MOBILE,
            base_size_mb=10,
        ),
        Stack(
            key="static-html",
            name="Static HTML (Web)",
            size="< 2 MB",
            compile_time="Instant",
            description="Pure HTML/CSS/JS - works in any browser",
            template="static-html",
            kind=StackKind.STATIC_FILE,
            base_size_mb=0.6,
        ),
    )
}

DEFAULT_STACK = "go-gin"

# Names accepted from the cherry service in addition to the registry keys.
STACK_ALIASES: dict[str, str] = {"static": "static-html"}


def get_stack(key: str) -> Stack:
    """Look up a stack by key or alias.

    Raises:
        UnknownStackError: If *key* names no registered stack.
    """
    resolved = STACK_ALIASES.get(key, key)
    try:
        return STACKS[resolved]
    except KeyError:
        raise UnknownStackError(key, sorted(STACKS)) from None


class ProjectStatus(str, Enum):
    DRAFT = "draft"
    BUILT = "built"
    FAILED = "failed"
    FINISHED = "finished"
    PUBLISHED = "published"


class Project(BaseModel):
    """A named, slugified unit of work living in one lifecycle area."""

    slug: str
    name: str
    stack: str | None = None
    status: ProjectStatus = ProjectStatus.DRAFT
    directory: Path
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    updated_at: str | None = None
    features: list[str] = Field(default_factory=list)
    last_artifact: str | None = None

    @property
    def metadata_path(self) -> Path:
        return self.directory / PROJECT_METADATA_FILE

    def save(self) -> Path:
        """Write the record into the project directory."""
        self.updated_at = datetime.now(timezone.utc).isoformat()
        # The directory is implied by where the file lives.
        self.metadata_path.write_text(
            self.model_dump_json(indent=2, exclude={"directory"}), encoding="utf-8"
        )
        return self.metadata_path

    @classmethod
    def load(cls, directory: Path, default_status: ProjectStatus) -> "Project":
        """Read the record from *directory*, inferring one when none exists.

        Raises:
            ConfigurationError: The metadata file is not valid JSON or does
                not describe a project.
        """
        metadata = directory / PROJECT_METADATA_FILE
        if metadata.is_file():
            try:
                data = load_json(metadata)
                data["directory"] = directory
                return cls.model_validate(data)
            except ValueError as exc:
                raise ConfigurationError(f"Corrupt project metadata: {metadata}") from exc
        return cls(
            slug=directory.name,
            name=directory.name,
            status=default_status,
            directory=directory,
        )
