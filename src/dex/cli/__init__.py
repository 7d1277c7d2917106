"""
dex CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import typer
from rich.console import Console

from dex import __version__
from dex.cli import sync
from dex.core.config.env import load_layered_env

app = typer.Typer(
    name="dex",
    help="Local task tracking with one-way sync to GitHub Issues and Shortcut",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main() -> None:
    """
    dex - local tasks, mirrored to your issue tracker.

    Tasks live in .dex/tasks.jsonl. `dex sync` mirrors them onto GitHub
    Issues or Shortcut stories and records where each one went.
    """
    # Load layered env files early so API tokens are available to all commands.
    # Precedence: OS env > project .env > user .env
    load_layered_env()


app.command(name="sync")(sync.sync)


@app.command()
def version() -> None:
    """Show dex version and exit."""
    console.print(f"dex version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "cli_main"]
