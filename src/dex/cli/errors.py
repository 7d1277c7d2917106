"""
Standardized error handling and exit codes for the dex CLI.
"""

from enum import IntEnum

from rich.console import Console

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for dex CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Remote API failure, corrupted store or other runtime error."""

    USER_ERROR = 2
    """Configuration or input error (actionable by user)."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print a standardized error message with actionable guidance.

    Args:
        problem: Brief description of what went wrong
        reason: Optional explanation of why it happened
        solution: Optional command or action to fix it

    Example:
        >>> print_error(
        ...     "GitHub token not found",
        ...     solution="gh auth login",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}")

    if reason:
        console.print(f"[dim]{reason}[/dim]")

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}")


def print_task_not_found_error(task_id: str) -> None:
    """Print error when a specific task is not found."""
    print_error(
        f"Task not found: {task_id}",
        reason="The task ID may be incorrect or the task may have been deleted",
    )


def print_no_integrations_error() -> None:
    """Print error when no sync integration is enabled."""
    print_error(
        "No sync integration enabled",
        reason="Neither sync.github nor sync.shortcut is enabled in .dex.json",
        solution="dex sync --github  # or enable an integration in .dex.json",
    )


def print_config_error(integration: str, message: str) -> None:
    """Print a sync configuration problem; the first line is the problem."""
    problem, _, detail = message.partition("\n")
    print_error(f"{integration}: {problem}", solution=detail or None)
