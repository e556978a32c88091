"""``tinyapp`` command-line interface.

Usage::

    tinyapp new --name "Demo App" --stack go-gin --database fireproof
    tinyapp build --project demo-app
    tinyapp finish --project demo-app
    tinyapp publish --project demo-app
    tinyapp add sync --provider fireproof-cloud --project demo-app
    tinyapp list
    tinyapp stacks

Every handled error is printed in red and exits with status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence

from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import Config
from .errors import TinyAppError
from .lifecycle import ProjectLifecycleManager
from .models import DEFAULT_STACK, STACKS, ProjectStatus
from .scaffolder import ScaffoldOptions
from .scaffolder.features import AUTH_PROVIDERS, SYNC_PROVIDERS
from .utils import (
    console,
    format_size,
    print_error,
    print_header,
    print_hint,
    print_success,
    print_summary_table,
)

_STATUS_STYLES = {
    ProjectStatus.DRAFT: "yellow",
    ProjectStatus.BUILT: "green",
    ProjectStatus.FAILED: "red",
    ProjectStatus.FINISHED: "cyan",
    ProjectStatus.PUBLISHED: "magenta",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tinyapp",
        description="TinyApp Factory -- build tiny, portable applications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            '  tinyapp new --name "Demo App" --stack go-gin\n'
            "  tinyapp build --project demo-app\n"
            "  tinyapp add database --project demo-app\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", metavar="<command>")
    commands.required = True

    new = commands.add_parser("new", help="Create a new draft project")
    new.add_argument("--name", required=True, help="Project name")
    new.add_argument(
        "--stack",
        default=DEFAULT_STACK,
        help=f"Stack to scaffold from (default: {DEFAULT_STACK}; see 'tinyapp stacks')",
    )
    new.add_argument(
        "--database",
        choices=("none", "fireproof"),
        default="none",
        help="Embedded document store (default: none)",
    )
    new.add_argument(
        "--auth",
        choices=("none", *AUTH_PROVIDERS),
        default="none",
        help="Authentication (default: none)",
    )

    for name, help_text in (
        ("build", "Build a draft into a platform artifact"),
        ("finish", "Move a draft to finished and initialise git"),
        ("publish", "Prepare a release and Homebrew formula for a finished project"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("--project", required=True, help="Project slug")

    commands.add_parser("list", help="List draft and finished projects")
    commands.add_parser("stacks", help="Show the available stacks")

    add = commands.add_parser("add", help="Add a feature to an existing project")
    features = add.add_subparsers(dest="feature", metavar="<feature>")
    features.required = True

    database = features.add_parser("database", help="Add the Fireproof document store")
    database.add_argument("--project", help="Project slug or path (default: current directory)")

    auth = features.add_parser("auth", help="Add device-based authentication")
    auth.add_argument("--provider", choices=AUTH_PROVIDERS, default="device")
    auth.add_argument("--project", help="Project slug or path (default: current directory)")

    sync = features.add_parser("sync", help="Add cloud sync")
    sync.add_argument("--provider", choices=SYNC_PROVIDERS, required=True)
    sync.add_argument("--project", help="Project slug or path (default: current directory)")

    return parser


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _cmd_new(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    print_header(f"New project: {args.name}")
    project = await manager.new(
        ScaffoldOptions(
            name=args.name,
            stack=args.stack,
            database=args.database != "none",
            auth=args.auth != "none",
        )
    )
    print_success(f"Created {project.slug} in {project.directory}")
    print_hint(f"Next: tinyapp build --project {project.slug}")
    return 0


async def _cmd_build(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    print_header(f"Build: {args.project}")
    project, run = await manager.build(args.project)

    summary = {
        "Project": project.slug,
        "Strategy": run.strategy,
        "Outcome": run.outcome,
        "Steps": str(len(run.steps)),
        "Duration": f"{run.duration_seconds:.1f}s",
    }
    if run.artifact is not None:
        summary["Artifact"] = str(run.artifact.destination_path)
        summary["Size"] = format_size(run.artifact.size_bytes)
    print_summary_table(summary, title="Build")

    if not run.success:
        print_error(f"Build failed ({run.failure_kind.value if run.failure_kind else 'error'})")
        if run.error:
            console.print(f"[dim]{escape(run.error)}[/dim]")
        return 1
    print_success(f"Built {project.slug}")
    return 0


async def _cmd_finish(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    print_header(f"Finish: {args.project}")
    project = await manager.finish(args.project)
    print_success(f"{project.slug} moved to {project.directory}")
    return 0


async def _cmd_publish(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    print_header(f"Publish: {args.project}")
    result = await manager.publish(args.project)
    print_summary_table(
        {
            "Version": result.version,
            "Remote": result.remote_url,
            "Release notes": str(result.release_notes_path),
            "Formula": str(result.formula_path),
            "Release": "created" if result.release_executed else "prepared (dry run)",
        },
        title="Publish",
    )
    print_success(f"{result.project.slug} published")
    return 0


async def _cmd_list(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    projects = manager.list_projects()
    if not projects:
        print_hint('No projects yet. Create one with: tinyapp new --name "My App"')
        return 0

    table = Table(title="Projects", show_header=True, header_style="bold cyan")
    table.add_column("Slug", no_wrap=True)
    table.add_column("Name")
    table.add_column("Stack")
    table.add_column("Status")
    for project in projects:
        style = _STATUS_STYLES.get(project.status, "white")
        table.add_row(
            escape(project.slug),
            escape(project.name),
            project.stack or "-",
            f"[{style}]{project.status.value}[/{style}]",
        )
    console.print(table)
    return 0


async def _cmd_stacks(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    table = Table(title="Stacks", show_header=True, header_style="bold cyan")
    table.add_column("Key", no_wrap=True)
    table.add_column("Name")
    table.add_column("Size")
    table.add_column("Compile time")
    table.add_column("Description")
    for stack in STACKS.values():
        key = f"{stack.key} (default)" if stack.key == DEFAULT_STACK else stack.key
        table.add_row(key, stack.name, stack.size, stack.compile_time, stack.description)
    console.print(table)
    return 0


async def _cmd_add(args: argparse.Namespace, manager: ProjectLifecycleManager) -> int:
    project_dir = manager.resolve_project_dir(args.project)
    if args.feature == "database":
        result = await manager.features.add_database(project_dir)
    elif args.feature == "auth":
        result = await manager.features.add_auth(project_dir, args.provider)
    else:
        result = await manager.features.add_sync(project_dir, args.provider)

    for path in result.files:
        console.print(f"  [green]+[/green] {escape(str(path))}")
    for name, version in result.dependencies.items():
        console.print(f"  [green]+[/green] {escape(name)}@{escape(version)}")
    label = f"{result.feature} ({result.provider})" if result.provider else result.feature
    print_success(f"Added {label} to {project_dir.name}")
    if result.dependencies:
        print_hint("Install the new dependencies with: npm install")
    return 0


_HANDLERS = {
    "new": _cmd_new,
    "build": _cmd_build,
    "finish": _cmd_finish,
    "publish": _cmd_publish,
    "list": _cmd_list,
    "stacks": _cmd_stacks,
    "add": _cmd_add,
}


def main(argv: Sequence[str] | None = None, config: Config | None = None) -> int:
    """Run the CLI and return the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        config = config or Config.from_env()
    except ValueError as exc:
        print_error(f"Error: invalid environment: {exc}")
        return 1

    try:
        config.ensure_directories()
        manager = ProjectLifecycleManager(config)
        return asyncio.run(_HANDLERS[args.command](args, manager))
    except TinyAppError as exc:
        print_error(f"Error: {exc}")
        return 1
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
