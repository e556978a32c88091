"""Request, spec and build-record models for the cherry service.

Every model serialises with camelCase keys (``includeDatabase``,
``technicalDetails``) because that is the shape of the HTTP API; Python code
uses the snake_case attribute names.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..models import DEFAULT_STACK, STACK_ALIASES, STACKS

SIZE_PATTERN = re.compile(r"^\d+(\.\d+)? (KB|MB)$")
CHERRY_ID_PATTERN = re.compile(r"^cherry-\d+-[0-9a-z]{9}$")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CherryRequest(_CamelModel):
    """What the user asked for."""

    description: str
    category: str = "productivity"
    stack: str = DEFAULT_STACK
    include_database: bool = False
    include_sync: bool = False
    include_auth: bool = False

    @field_validator("description")
    @classmethod
    def _description_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Description is required")
        return value

    @field_validator("category")
    @classmethod
    def _normalise_category(cls, value: str) -> str:
        return value.strip().lower() or "productivity"

    @field_validator("stack")
    @classmethod
    def _known_stack(cls, value: str) -> str:
        key = STACK_ALIASES.get(value, value)
        if key not in STACKS:
            raise ValueError(
                f"Unknown stack '{value}' (available: {', '.join(sorted(STACKS))})"
            )
        return key


class TechnicalDetails(_CamelModel):
    frontend: str = ""
    backend: str = ""
    database: str = ""
    apis: list[str] = Field(default_factory=list)


class CherrySpec(_CamelModel):
    """A generated, buildable app specification.  Never mutated once stored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = ""
    name: str
    description: str
    category: str
    stack: str
    features: tuple[str, ...] = ()
    size: str
    commands: tuple[str, ...]
    icon: str = "🍒"
    include_database: bool = False
    include_sync: bool = False
    include_auth: bool = False
    technical_details: TechnicalDetails = Field(default_factory=TechnicalDetails)
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    @field_validator("size")
    @classmethod
    def _size_format(cls, value: str) -> str:
        if not SIZE_PATTERN.match(value):
            raise ValueError(f"Size must look like '12 MB' or '600 KB', got {value!r}")
        return value

    @field_validator("commands")
    @classmethod
    def _commands_required(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("A cherry needs at least one command")
        return value

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CherryBuildStatus(str, Enum):
    BUILDING = "building"
    BUILT = "built"
    FAILED = "failed"


class CherryBuildRecord(_CamelModel):
    """Build state of one spec id."""

    cherry_id: str
    status: CherryBuildStatus
    steps: list[dict[str, Any]] = Field(default_factory=list)
    download_url: str | None = None
    artifact_path: str | None = None
    error: str | None = None
    updated_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class CherryBuildResult(_CamelModel):
    """Response body of a successful build."""

    success: bool = True
    cherry_id: str
    download_url: str
    build_steps: list[dict[str, Any]] = Field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
