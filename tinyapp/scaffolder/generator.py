"""Main scaffolding orchestrator.

Takes a ``ScaffoldOptions`` and materialises a new draft under
``projects/drafts/<slug>/`` by copying the stack's template directory,
substituting the ``{{PROJECT_NAME}}``-style placeholders, and writing the
editor guidance files (``.cursorrules`` and ``PROMPT.md``).
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ..config import Config
from ..errors import ConfigurationError, ProjectExistsError, TemplateNotFoundError
from ..models import DEFAULT_STACK, Project, ProjectStatus, Stack, get_stack
from ..utils import create_slug
from .templates import TemplateRenderer


# Port baked into every generated server.
DEFAULT_APP_PORT = 3000


# ---------------------------------------------------------------------------
# Configuration model
# ---------------------------------------------------------------------------


class ScaffoldOptions(BaseModel):
    """Pydantic model describing the project to scaffold."""

    name: str = Field(..., description="Human-readable project name")
    stack: str = Field(default=DEFAULT_STACK, description="Stack registry key")
    database: bool = Field(default=False, description="Add the document store")
    auth: bool = Field(default=False, description="Add device authentication")
    external_apis: bool = Field(default=False, description="App calls external APIs")


# ---------------------------------------------------------------------------
# Main generator
# ---------------------------------------------------------------------------


class ProjectScaffolder:
    """Creates drafts from the stack templates.

    Template files are copied verbatim and only get literal placeholder
    substitution; the guidance files are rendered with Jinja2.
    """

    def __init__(
        self, config: Config, renderer: TemplateRenderer | None = None
    ) -> None:
        self.config = config
        self.renderer = renderer or TemplateRenderer()

    # -- Public API --------------------------------------------------------

    async def create(self, options: ScaffoldOptions) -> Project:
        """Scaffold a new draft and return its project record.

        Raises:
            UnknownStackError: ``options.stack`` is not registered.
            ConfigurationError: The name produces an empty slug.
            ProjectExistsError: A draft with the same slug exists.
            TemplateNotFoundError: The stack's template directory is missing.
        """
        stack = get_stack(options.stack)
        slug = create_slug(options.name)
        if not slug:
            raise ConfigurationError(
                f"Project name {options.name!r} contains no usable characters"
            )

        project_dir = self.config.drafts_dir / slug
        if project_dir.exists():
            raise ProjectExistsError(f"Project {slug} already exists in drafts")

        template_dir = self.config.templates_dir / stack.template
        if not template_dir.is_dir():
            raise TemplateNotFoundError(f"Template not found: {template_dir}")

        await asyncio.to_thread(project_dir.parent.mkdir, parents=True, exist_ok=True)
        try:
            await asyncio.to_thread(project_dir.mkdir)
        except FileExistsError:
            raise ProjectExistsError(f"Project {slug} already exists in drafts") from None

        try:
            await asyncio.to_thread(
                shutil.copytree, template_dir, project_dir, dirs_exist_ok=True
            )

            replacements = placeholder_values(options.name, slug, stack)
            await asyncio.to_thread(substitute_placeholders, project_dir, replacements)

            context = self.build_context(options.name, slug, stack, options)
            await self.write_guidance(project_dir, context)

            project = Project(
                slug=slug,
                name=options.name,
                stack=stack.key,
                status=ProjectStatus.DRAFT,
                directory=project_dir,
            )
            await asyncio.to_thread(project.save)
        except BaseException:
            # Leave no partial draft behind so the name can be retried.
            shutil.rmtree(project_dir, ignore_errors=True)
            raise
        return project

    async def write_guidance(self, project_dir: Path, context: dict[str, Any]) -> None:
        """Render ``.cursorrules`` and ``PROMPT.md`` into *project_dir*."""
        await self.renderer.render_to_file(
            "guidance/cursorrules.j2", project_dir / ".cursorrules", context
        )
        await self.renderer.render_to_file(
            "guidance/PROMPT.md.j2", project_dir / "PROMPT.md", context
        )

    # -- Context building --------------------------------------------------

    @staticmethod
    def build_context(
        name: str, slug: str, stack: Stack, options: ScaffoldOptions | None = None
    ) -> dict[str, Any]:
        """Build the Jinja2 template context for one project."""
        options = options or ScaffoldOptions(name=name, stack=stack.key)
        return {
            "project_name": name,
            "project_slug": slug,
            "stack": stack,
            "port": DEFAULT_APP_PORT,
            "features": {
                "database": options.database,
                "auth": options.auth,
                "external_apis": options.external_apis,
            },
        }


# ---------------------------------------------------------------------------
# Placeholder substitution
# ---------------------------------------------------------------------------


def placeholder_values(name: str, slug: str, stack: Stack) -> dict[str, str]:
    return {
        "{{PROJECT_NAME}}": name,
        "{{PROJECT_SLUG}}": slug,
        "{{PORT}}": str(DEFAULT_APP_PORT),
        "{{STACK}}": stack.name,
    }


def substitute_placeholders(root: Path, replacements: dict[str, str]) -> list[Path]:
    """Replace every placeholder in the non-hidden text files under *root*.

    Files that are not valid UTF-8 are left alone.  Returns the files that
    were rewritten.
    """
    changed: list[Path] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.name.startswith("."):
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            continue

        updated = content
        for placeholder, value in replacements.items():
            updated = updated.replace(placeholder, value)
        if updated != content:
            path.write_text(updated, encoding="utf-8")
            changed.append(path)
    return changed
