"""
dex CLI - Sync command for remote issue trackers.

Mirrors local tasks onto every configured integration (GitHub Issues,
Shortcut stories), then writes the returned metadata blocks and any
pulled remote changes back into the local store.
"""

import asyncio
import logging
import sys
from collections.abc import Callable
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from dex.cli.errors import (
    ExitCode,
    print_config_error,
    print_error,
    print_no_integrations_error,
    print_task_not_found_error,
)
from dex.core.config import DexConfig, SyncConfigError, load_config
from dex.core.github import (
    GitHubClientError,
    create_github_sync_service,
    create_github_sync_service_or_raise,
    get_issue_number,
)
from dex.core.shortcut import (
    ShortcutClientError,
    create_shortcut_sync_service,
    create_shortcut_sync_service_or_raise,
    get_story_id,
)
from dex.core.sync import SyncPhase, SyncProgress, SyncRegistry, SyncResult
from dex.core.tasks import (
    JsonlTaskStore,
    Task,
    TaskNotFoundError,
    TasksFileCorruptedError,
    TaskStore,
    TaskTree,
)

logger = logging.getLogger(__name__)

console = Console()

PHASE_GLYPHS = {
    SyncPhase.CREATING: "[green]+[/green]",
    SyncPhase.UPDATING: "[yellow]↻[/yellow]",
    SyncPhase.SKIPPED: "[dim]∙[/dim]",
}

# Remote ID readers for --dry-run, which makes no remote calls
REMOTE_ID_READERS: dict[str, Callable[[Task], int | None]] = {
    "github": get_issue_number,
    "shortcut": get_story_id,
}


def configure_logging(debug: bool) -> None:
    """
    Configure logging for the sync command.

    Args:
        debug: If True, enable DEBUG level logging
    """
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


class ProgressPrinter:
    """Progress callback printing one line per task once its phase is known."""

    def __init__(self, display_name: str) -> None:
        self.display_name = display_name

    def __call__(self, progress: SyncProgress) -> None:
        if progress.phase == SyncPhase.CHECKING:
            logger.debug(
                "%s: checking %s (%d/%d)",
                self.display_name,
                progress.task.id,
                progress.current,
                progress.total,
            )
            return
        glyph = PHASE_GLYPHS[progress.phase]
        console.print(
            f"  {glyph} [dim][{progress.current}/{progress.total}][/dim] "
            f"{escape(progress.task.name)} [dim]({progress.task.id})[/dim]"
        )


class SyncSummary:
    """Counts of what a sync run did, across every nested result."""

    def __init__(self) -> None:
        self.created = 0
        self.updated = 0
        self.unchanged = 0
        self.pulled = 0
        self.not_closing: list[tuple[str, str]] = []

    def add(self, result: SyncResult) -> None:
        for item in result.walk():
            if item.pulled_from_remote:
                self.pulled += 1
            elif item.created:
                self.created += 1
            elif item.skipped:
                self.unchanged += 1
            elif item.metadata is not None:
                self.updated += 1
            if item.not_closing_reason:
                self.not_closing.append((item.task_id, item.not_closing_reason))

    def render(self, display_name: str) -> str:
        parts = [
            f"{self.created} created",
            f"{self.updated} updated",
            f"{self.unchanged} unchanged",
        ]
        if self.pulled:
            parts.append(f"{self.pulled} pulled")
        return f"[green]✓[/green] {display_name}: " + ", ".join(parts)


def apply_results(store: JsonlTaskStore, integration_id: str, results: list[SyncResult]) -> None:
    """Write pulled patches and metadata blocks back to the local store."""
    for result in results:
        for item in result.walk():
            try:
                if item.local_updates:
                    store.update_task(item.task_id, item.local_updates)
                if item.metadata is not None:
                    store.save_integration_metadata(item.task_id, integration_id, item.metadata)
            except TaskNotFoundError:
                logger.warning("Task %s vanished during sync; result dropped", item.task_id)


def selected_integrations(config: DexConfig, github: bool, shortcut: bool) -> list[str]:
    """Integrations named on the command line, else the enabled ones."""
    if github or shortcut:
        return [name for name, flag in (("github", github), ("shortcut", shortcut)) if flag]
    return [
        name
        for name, enabled in (
            ("github", config.sync.github.enabled),
            ("shortcut", config.sync.shortcut.enabled),
        )
        if enabled
    ]


async def build_registry(
    config: DexConfig, project_dir: Path, github: bool, shortcut: bool
) -> SyncRegistry:
    """
    Construct the sync services for this run.

    Explicitly requested integrations must be fully configured; otherwise
    only enabled integrations are used and misconfigured ones are skipped
    with a warning.

    Raises:
        SyncConfigError: If an explicitly requested integration is unusable
    """
    registry = SyncRegistry()
    explicit = github or shortcut
    try:
        if github:
            registry.register(create_github_sync_service_or_raise(config.sync.github, project_dir))
        elif not explicit:
            github_service = create_github_sync_service(config.sync.github, project_dir)
            if github_service is not None:
                registry.register(github_service)

        if shortcut:
            registry.register(
                await create_shortcut_sync_service_or_raise(config.sync.shortcut, project_dir)
            )
        elif not explicit:
            shortcut_service = await create_shortcut_sync_service(config.sync.shortcut, project_dir)
            if shortcut_service is not None:
                registry.register(shortcut_service)
    except SyncConfigError:
        for service in registry:
            await service.aclose()
        raise
    return registry


async def run_sync(
    registry: SyncRegistry,
    store: JsonlTaskStore,
    snapshot: TaskStore,
    task: Task | None,
) -> None:
    """Sync every registered service in turn, saving results as each finishes."""
    try:
        for service in registry:
            console.print(f"[bold]Syncing to {service.display_name}...[/bold]")
            printer = ProgressPrinter(service.display_name)
            if task is not None:
                result = await service.sync_task(task, snapshot, on_progress=printer)
                if result is None:
                    console.print(
                        f"[yellow]Task {task.id} has no root task; nothing to sync[/yellow]"
                    )
                    continue
                results = [result]
            else:
                results = await service.sync_all(snapshot, on_progress=printer)

            apply_results(store, service.id, results)

            summary = SyncSummary()
            for result in results:
                summary.add(result)
            console.print(summary.render(service.display_name))
            for task_id, reason in summary.not_closing:
                console.print(f"  [yellow]⚠[/yellow]  {task_id} won't close: {reason}")
    finally:
        for service in registry:
            await service.aclose()


def print_dry_run(snapshot: TaskStore, integrations: list[str], task: Task | None) -> None:
    """List what a sync would do, from local metadata only."""
    tree = TaskTree(snapshot.tasks)
    if task is not None:
        root = tree.root_of(task)
        roots = [root] if root is not None else []
    else:
        roots = snapshot.roots()

    for integration in integrations:
        read_remote_id = REMOTE_ID_READERS[integration]
        console.print(f"[bold]{integration}[/bold] (dry run)")
        for root in roots:
            tasks = [root]
            if integration == "shortcut":
                tasks += [item.task for item in tree.descendants(root.id)]
            for item in tasks:
                remote_id = read_remote_id(item)
                action = "[create]" if remote_id is None else f"[update #{remote_id}]"
                console.print(f"  {escape(action)} {escape(item.name)} [dim]({item.id})[/dim]")


def sync(
    task_id: str | None = typer.Argument(
        None,
        help="Task to sync (a subtask syncs its top-level task); all tasks if omitted",
    ),
    github: bool = typer.Option(
        False,
        "--github",
        help="Sync to GitHub Issues (requires a token and repository)",
    ),
    shortcut: bool = typer.Option(
        False,
        "--shortcut",
        help="Sync to Shortcut (requires a token and team)",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be created or updated without calling any API",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug logging",
    ),
) -> None:
    """
    Sync tasks to remote issue trackers.

    Without --github or --shortcut, syncs to every integration enabled in
    .dex.json.

    Examples:
        dex sync                    # Sync all tasks to enabled integrations
        dex sync abc123             # Sync one task (and its tree)
        dex sync --github           # Sync to GitHub only
        dex sync --dry-run          # Preview creates and updates
    """
    configure_logging(debug)
    project_dir = Path.cwd()

    try:
        config = load_config(project_dir)
    except ValidationError as e:
        print_error("Invalid configuration", reason=str(e))
        raise typer.Exit(ExitCode.USER_ERROR)

    store = JsonlTaskStore(project_dir, config.storage_path)
    try:
        snapshot = store.snapshot()
    except TasksFileCorruptedError as e:
        print_error(str(e), reason=f"Could not read {store.tasks_file}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    task = None
    if task_id is not None:
        task = snapshot.get(task_id)
        if task is None:
            print_task_not_found_error(task_id)
            raise typer.Exit(ExitCode.USER_ERROR)

    if dry_run:
        integrations = selected_integrations(config, github, shortcut)
        if not integrations:
            print_no_integrations_error()
            raise typer.Exit(ExitCode.USER_ERROR)
        print_dry_run(snapshot, integrations, task)
        return

    async def _main() -> bool:
        registry = await build_registry(config, project_dir, github, shortcut)
        if not registry.has_services():
            return False
        await run_sync(registry, store, snapshot, task)
        return True

    try:
        synced = asyncio.run(_main())
    except SyncConfigError as e:
        print_config_error(e.integration, str(e))
        raise typer.Exit(ExitCode.USER_ERROR)
    except (GitHubClientError, ShortcutClientError, TasksFileCorruptedError) as e:
        print_error(str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    if not synced:
        print_no_integrations_error()
        raise typer.Exit(ExitCode.USER_ERROR)
