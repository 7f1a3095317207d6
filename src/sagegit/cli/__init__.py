"""
Sage CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import typer
from rich.console import Console

from sagegit import __version__
from sagegit.cli import config, history, sync, undo, workflow
from sagegit.cli.context import setup_logging
from sagegit.core.config.env import load_layered_env
from sagegit.utils.project import find_repo_root

# Help panel names for command grouping
PANEL_WORK = "Make Changes"
PANEL_SAFETY = "Inspect and Undo"
PANEL_SETUP = "Configure Sage"

app = typer.Typer(
    name="sage",
    help="A safer git workflow: every change is recorded and can be undone",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output, including every git command run",
    ),
) -> None:
    """
    Sage - a safer workflow layer over git.

    Every mutating command appends a record to the repository's operation
    log (.git/sage/history.jsonl) so it can be undone later.

    Common Workflows:
        sage start feature/login     # Branch from origin/main
        sage commit "Add login form" # Stage everything and commit
        sage sync --base             # Bring in the latest main
        sage push                    # Push, running pre-push hooks

        sage history list            # What did I do?
        sage undo --preview          # What would undo do?
        sage undo                    # Undo the latest operation
    """
    setup_logging(debug)
    # Precedence: shell > repository .env.local > repository .env > user .env
    load_layered_env(find_repo_root())

    ctx.obj = {"debug": debug}


# =============================================================================
# Make Changes
# =============================================================================

app.command(name="start", rich_help_panel=PANEL_WORK)(workflow.start)
app.command(name="commit", rich_help_panel=PANEL_WORK)(workflow.commit)
app.command(name="stash", rich_help_panel=PANEL_WORK)(workflow.stash)
app.command(name="push", rich_help_panel=PANEL_WORK)(workflow.push)
app.command(name="sync", rich_help_panel=PANEL_WORK)(sync.sync)


# =============================================================================
# Inspect and Undo
# =============================================================================

app.command(name="undo", rich_help_panel=PANEL_SAFETY)(undo.undo)
app.add_typer(history.app, name="history", rich_help_panel=PANEL_SAFETY)


# =============================================================================
# Configure Sage
# =============================================================================

app.add_typer(config.app, name="config", rich_help_panel=PANEL_SETUP)


@app.command(rich_help_panel=PANEL_SETUP)
def version() -> None:
    """Show sage version and exit."""
    console.print(f"sage version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Main CLI entry point."""
    app()


__all__ = ["app", "cli_main"]
