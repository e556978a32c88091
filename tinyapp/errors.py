"""Exception hierarchy shared by the CLI, the build pipeline and the service.

Every error the CLI or the HTTP layer is expected to report derives from
:class:`TinyAppError`.  Configuration errors are raised before any side effect
is performed; command errors live in :mod:`tinyapp.builder.runner`.
"""

from __future__ import annotations


class TinyAppError(Exception):
    """Base class for all handled TinyApp Factory errors."""

    #: Short machine-friendly label used by the HTTP error payload.
    label = "TinyApp error"


class ConfigurationError(TinyAppError):
    """Something about the request or the project layout is invalid."""

    label = "Invalid configuration"


class TemplateNotFoundError(ConfigurationError):
    label = "Template not found"


class UnknownStackError(ConfigurationError):
    label = "Unknown stack"

    def __init__(self, stack: str, known: list[str] | None = None) -> None:
        self.stack = stack
        hint = f" (available: {', '.join(known)})" if known else ""
        super().__init__(f"Unknown stack '{stack}'{hint}")


class UnknownProjectTypeError(ConfigurationError):
    """No toolchain manifest was recognised in the project directory."""

    label = "Unknown project type"


class ProjectNotFoundError(ConfigurationError):
    label = "Project not found"


class ProjectExistsError(ConfigurationError):
    label = "Project already exists"


class LifecycleTransitionError(ConfigurationError):
    """The requested transition is not allowed from the project's state."""

    label = "Transition not allowed"


class BuildInProgressError(TinyAppError):
    """Another build currently holds the lock for the same key."""

    label = "Build in progress"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"A build for '{key}' is already in progress")


class PublishError(TinyAppError):
    label = "Publish aborted"


class FeatureError(TinyAppError):
    """Adding a feature to an existing project failed."""

    label = "Feature not added"


class CherryRequestError(ConfigurationError):
    """A generate request was rejected before any state was created."""

    label = "Invalid cherry request"


class CherryNotFoundError(TinyAppError):
    label = "Cherry not found"

    def __init__(self, cherry_id: str, message: str | None = None) -> None:
        self.cherry_id = cherry_id
        super().__init__(message or f"Cherry '{cherry_id}' not found")


class SpecConsumedError(TinyAppError):
    """The spec's single build attempt has already failed."""

    label = "Cherry spec already consumed"

    def __init__(self, cherry_id: str) -> None:
        self.cherry_id = cherry_id
        super().__init__(
            f"Cherry '{cherry_id}' already failed to build; generate a new cherry"
        )


class CherryBuildError(TinyAppError):
    """A cherry's command sequence or artifact lookup failed."""

    label = "Build failed"

    def __init__(self, message: str, steps: list | None = None) -> None:
        self.steps = steps or []
        super().__init__(message)


class SpecGenerationError(TinyAppError):
    """The remote spec generator could not produce a usable spec."""

    label = "Spec generation failed"
