"""Cherry spec generation.

Three generators share the :class:`SpecGenerator` protocol:

* :class:`RuleBasedSpecGenerator` -- deterministic, offline, always succeeds.
* :class:`DeepSeekSpecGenerator` -- asks the LLM for name, description,
  features, size, icon and technical details.  The command sequence is
  always derived locally from the request, so the service never executes
  model-written shell text.
* :class:`FallbackSpecGenerator` -- tries a primary generator and falls back
  to a secondary one when the primary raises.

Generators return specs without an id; the service assigns ids.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Protocol

from pydantic import ValidationError

from ..errors import SpecGenerationError
from ..models import STACKS
from ..utils import create_slug, print_warning
from .deepseek_client import DeepSeekClient
from .models import SIZE_PATTERN, CherryRequest, CherrySpec, TechnicalDetails

DEFAULT_CHERRY_NAME = "My Cherry"

CATEGORY_ICONS: dict[str, str] = {
    "productivity": "✅",
    "creative": "🎨",
    "civic": "🏛️",
    "business": "💼",
    "personal": "🧑",
}
DEFAULT_ICON = "🍒"

DATABASE_OVERHEAD_MB = 2

BASE_FEATURES = ("Offline-First", "Beautiful UI", "Cross-Platform")


class SpecGenerator(Protocol):
    async def generate(self, request: CherryRequest) -> CherrySpec: ...


# ---------------------------------------------------------------------------
# Deterministic helpers
# ---------------------------------------------------------------------------


def generate_cherry_name(description: str) -> str:
    """First three words longer than three characters, capitalised.

    Characters that are not letters, digits or hyphens are dropped from each
    word so the name is safe inside a double-quoted shell argument.
    """
    words = []
    for raw in description.split():
        word = re.sub(r"[^A-Za-z0-9-]", "", raw)
        if len(word) > 3:
            words.append(word[0].upper() + word[1:].lower())
        if len(words) == 3:
            break
    return " ".join(words) or DEFAULT_CHERRY_NAME


def estimate_size(stack: str, include_database: bool = False) -> str:
    """Estimated artifact size, ``"600 KB"`` below one megabyte else ``"14 MB"``."""
    total = STACKS[stack].base_size_mb + (DATABASE_OVERHEAD_MB if include_database else 0)
    if total < 1:
        return f"{round(total * 1000)} KB"
    return f"{round(total)} MB"


def select_icon(category: str) -> str:
    return CATEGORY_ICONS.get(category, DEFAULT_ICON)


def build_commands(name: str, request: CherryRequest) -> tuple[str, ...]:
    """The CLI command sequence that scaffolds and builds a cherry."""
    slug = create_slug(name) or create_slug(DEFAULT_CHERRY_NAME)
    commands = [f'tinyapp new --name "{name}" --stack {request.stack}']
    if request.include_database:
        commands.append(f"tinyapp add database --project {slug}")
    if request.include_sync:
        commands.append(f"tinyapp add sync --provider fireproof-cloud --project {slug}")
    if request.include_auth:
        commands.append(f"tinyapp add auth --provider device --project {slug}")
    commands.append(f"tinyapp build --project {slug}")
    return tuple(commands)


def default_features(request: CherryRequest) -> tuple[str, ...]:
    features = []
    if request.include_database:
        features.append("Fireproof Database")
    if request.include_sync:
        features.append("Cloud Sync")
    if request.include_auth:
        features.append("Authentication")
    return (*features, *BASE_FEATURES)


def default_technical_details(request: CherryRequest) -> TechnicalDetails:
    return TechnicalDetails(
        frontend="React with Tailwind CSS, responsive design",
        backend=f"{request.stack} server with REST API",
        database=(
            "Fireproof embedded database with live queries"
            if request.include_database
            else "None"
        ),
        apis=[],
    )


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------


class RuleBasedSpecGenerator:
    """Builds a spec from the request alone."""

    async def generate(self, request: CherryRequest) -> CherrySpec:
        name = generate_cherry_name(request.description)
        return CherrySpec(
            name=name,
            description=request.description,
            category=request.category,
            stack=request.stack,
            features=default_features(request),
            size=estimate_size(request.stack, request.include_database),
            commands=build_commands(name, request),
            icon=select_icon(request.category),
            include_database=request.include_database,
            include_sync=request.include_sync,
            include_auth=request.include_auth,
            technical_details=default_technical_details(request),
        )


def build_system_prompt(request: CherryRequest) -> str:
    stack_lines = "\n".join(
        f"- {stack.key}: {stack.name} ({stack.size}) - {stack.description}"
        for stack in STACKS.values()
    )
    wanted = []
    if request.include_database:
        wanted.append("- Fireproof database with CRUD operations and live queries")
    if request.include_sync:
        wanted.append("- Cloud sync with Fireproof Cloud for real-time collaboration")
    if request.include_auth:
        wanted.append("- Device-based authentication using local keypairs")
    features = "\n".join(wanted) or "- None beyond the core app"

    return f"""You are an expert at creating portable desktop applications using TinyApp Factory.
Generate a complete cherry (portable app) specification based on the user's requirements.

Tech stack options:
{stack_lines}

Features to include:
{features}

Return ONLY a valid JSON object with this structure:
{{
  "name": "Cherry Name",
  "description": "One-line description",
  "features": ["feature1", "feature2", "feature3"],
  "size": "estimated size, for example 12 MB or 600 KB",
  "icon": "single emoji that represents the app",
  "technicalDetails": {{
    "frontend": "description of UI components",
    "backend": "description of backend logic",
    "database": "database schema if applicable",
    "apis": ["list of any APIs used"]
  }}
}}"""


def build_user_prompt(request: CherryRequest) -> str:
    def yes_no(flag: bool) -> str:
        return "Yes" if flag else "No"

    return (
        f"Create a {request.category} cherry that does: {request.description}\n\n"
        "Requirements:\n"
        f"- Stack: {request.stack}\n"
        f"- Database: {'Yes (Fireproof)' if request.include_database else 'No'}\n"
        f"- Cloud Sync: {yes_no(request.include_sync)}\n"
        f"- Authentication: {yes_no(request.include_auth)}\n\n"
        "Make it beautiful, functional, and production-ready."
    )


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the JSON object in an LLM reply, fenced in markdown or bare.

    Raises:
        SpecGenerationError: No parseable object was found.
    """
    fenced = re.search(r"```(?:json)?\s*\n(.+?)\n\s*```", text, re.DOTALL)
    candidate = fenced.group(1) if fenced else None
    if candidate is None:
        bare = re.search(r"\{.*\}", text, re.DOTALL)
        candidate = bare.group(0) if bare else None
    if candidate is None:
        raise SpecGenerationError("LLM reply contained no JSON object")
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise SpecGenerationError(f"LLM reply was not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SpecGenerationError("LLM reply JSON is not an object")
    return data


class DeepSeekSpecGenerator:
    """Asks DeepSeek for the descriptive parts of a spec.

    Raises :class:`SpecGenerationError` for a missing API key, transport
    errors and unusable replies.
    """

    def __init__(
        self, client: DeepSeekClient, temperature: float = 0.7, max_tokens: int = 2000
    ) -> None:
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, request: CherryRequest) -> CherrySpec:
        if not self.client.is_configured:
            raise SpecGenerationError("No DeepSeek API key configured")

        response = await self.client.chat(
            system=build_system_prompt(request),
            user=build_user_prompt(request),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        if not response.success:
            raise SpecGenerationError(response.error or "DeepSeek request failed")

        data = extract_json_object(response.text)
        return self._to_spec(data, request)

    @staticmethod
    def _to_spec(data: dict[str, Any], request: CherryRequest) -> CherrySpec:
        raw_name = data.get("name")
        name = (
            generate_cherry_name(raw_name)
            if isinstance(raw_name, str) and raw_name.strip()
            else generate_cherry_name(request.description)
        )

        size = data.get("size")
        if not isinstance(size, str) or not SIZE_PATTERN.match(size.strip()):
            size = estimate_size(request.stack, request.include_database)

        features = data.get("features")
        if not isinstance(features, list) or not features:
            features = list(default_features(request))

        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            description = request.description

        icon = data.get("icon")
        if not isinstance(icon, str) or not icon.strip():
            icon = select_icon(request.category)

        try:
            details = TechnicalDetails.model_validate(
                data.get("technicalDetails") or data.get("technical_details") or {}
            )
            return CherrySpec(
                name=name,
                description=description.strip(),
                category=request.category,
                stack=request.stack,
                features=tuple(str(f) for f in features),
                size=size.strip(),
                commands=build_commands(name, request),
                icon=icon.strip(),
                include_database=request.include_database,
                include_sync=request.include_sync,
                include_auth=request.include_auth,
                technical_details=details,
            )
        except ValidationError as exc:
            raise SpecGenerationError(f"LLM spec failed validation: {exc}") from exc


class FallbackSpecGenerator:
    """Uses *primary*, and *fallback* whenever *primary* fails."""

    def __init__(self, primary: SpecGenerator, fallback: SpecGenerator) -> None:
        self.primary = primary
        self.fallback = fallback

    async def generate(self, request: CherryRequest) -> CherrySpec:
        try:
            return await self.primary.generate(request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            print_warning(f"Spec generation fell back to rules: {exc}")
            return await self.fallback.generate(request)
