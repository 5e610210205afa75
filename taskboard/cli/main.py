"""
FILE: taskboard/cli/main.py
PURPOSE: Typer-based CLI for one-shot task board commands
EXPORTS:
  - app (Typer application)
  - main() (entry point)
  - version() - Show version
  - help() - Show command list and usage
  - serve() - Run the HTTP API
  - add() - Create task
  - ls() - List tasks
  - show() - View full task details
  - mv() - Move task to a status column and position
  - rm() - Delete task
  - edit() - Update title/description/priority
  - check() - Toggle an acceptance criterion
  - depend() / undepend() - Manage dependency edges
  - history() - Status transitions and audit trail
  - statuses() / priorities() / types() - Reference data
  - repair() - Renumber every column to 0..n-1
DEPENDENCIES:
  - typer (CLI framework)
  - rich (formatted output)
  - taskboard.config (settings from the environment)
  - taskboard.log (loguru setup)
  - taskboard.core.service (business logic)
  - taskboard.core.audit (flush pending audit writes before exit)
NOTES:
  - All commands support --json and --raw flags
  - Error messages go to stderr
  - Exit codes: 0=success, 1=error
  - Calls service layer directly
"""

import sys

# Fix Windows console encoding for Unicode characters
if sys.platform == "win32":
    import io
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

import typer
from rich.console import Console
from rich.markup import escape

from ..config import load_settings
from ..core import service
from ..core.audit import emitter
from ..core.exceptions import TaskboardError
from ..formatting import print_json
from ..log import configure_logging

# Typer app setup
app = typer.Typer(
    name="taskboard",
    help="Task board with strictly ordered status columns",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()
error_console = Console(stderr=True)

# Version
__version__ = "0.4.0"


def fail(error: TaskboardError, json_output: bool = False):
    """Report an error on stderr and exit with status 1."""
    if json_output:
        print_json(error_console, error.to_dict())
    else:
        error_console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(1)


@app.callback()
def startup(ctx: typer.Context):
    """
    Load settings, configure logging and point the core at the store.

    Pending audit writes are flushed when the command finishes.
    """
    settings = load_settings()
    configure_logging(settings.log_level)
    try:
        service.configure(settings)
    except TaskboardError as e:
        fail(e)
    ctx.call_on_close(emitter.flush)


# Import command modules to register commands with app
# Commands are decorated with @app.command() in their modules
from .commands import (
    # System commands
    version,
    help,
    serve,
    # Task commands
    add,
    ls,
    show,
    mv,
    rm,
    edit,
    check,
    # Dependency and history commands
    depend,
    undepend,
    history,
    # Reference data commands
    statuses,
    priorities,
    types,
    repair,
)


def main():
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
