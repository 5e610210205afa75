"""
FILE: taskboard/cli/commands/system.py
PURPOSE: System commands (version, help, serve)
"""

import typer

# Import shared objects from main module
# These will be available after main.py imports this module
from ..main import app, console, __version__


@app.command()
def version():
    """Show taskboard version."""
    console.print(f"taskboard v{__version__}")


@app.command()
def help():
    """Show available commands and usage."""
    console.print("\n[bold cyan]taskboard[/bold cyan] - Task board with strictly ordered status columns\n")
    console.print(f"[dim]Version {__version__}[/dim]\n")

    console.print("[bold]Usage:[/bold]")
    console.print("  taskboard [command] [options]\n")

    console.print("[bold]Commands:[/bold]")

    commands = [
        ("add", "Create a task at the bottom of its column", 'taskboard add "Task title" [--status todo]'),
        ("ls", "List tasks column by column", "taskboard ls [--status CODE] [--board ID]"),
        ("show", "View full task details", "taskboard show <task_id>"),
        ("mv", "Move task to a column and position", "taskboard mv <task_id> <status> [--order N]"),
        ("rm", "Delete task(s)", "taskboard rm <task_id>[,<task_id>...]"),
        ("edit", "Update title, description or priority", 'taskboard edit <task_id> --title "New"'),
        ("check", "Complete an acceptance criterion", "taskboard check <task_id> <criterion>"),
        ("depend", "Record a dependency", "taskboard depend <task_id> <depends_on_id>"),
        ("undepend", "Remove a dependency", "taskboard undepend <task_id> <depends_on_id>"),
        ("history", "Status transitions and audit trail", "taskboard history <task_id>"),
        ("statuses", "List status columns", "taskboard statuses"),
        ("priorities", "List priorities", "taskboard priorities"),
        ("types", "List task types", "taskboard types"),
        ("repair", "Renumber every column to 0..n-1", "taskboard repair"),
        ("serve", "Run the HTTP API", "taskboard serve [--host H] [--port P]"),
        ("version", "Show version", "taskboard version"),
        ("help", "Show this help message", "taskboard help"),
    ]

    for cmd, desc, example in commands:
        console.print(f"  [green]{cmd:10}[/green] {desc}")
        console.print(f"             [dim]{example}[/dim]\n")

    console.print("[bold]Global Options:[/bold]")
    console.print("  [yellow]--json[/yellow]    Output as JSON (for scripting)")
    console.print("  [yellow]--raw[/yellow]     Plain text output (no colors)")
    console.print("  [yellow]--help[/yellow]    Show detailed help for a command\n")

    console.print("[bold]Environment:[/bold]")
    console.print("  TASKBOARD_DB           Database file (default ~/.taskboard/taskboard.db)")
    console.print("  TASKBOARD_LOG_LEVEL    DEBUG, INFO, WARNING, ...")
    console.print("  TASKBOARD_AUDIT        0 disables the audit trail\n")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """
    Run the HTTP API with uvicorn.

    Example:
        taskboard serve --port 8080
    """
    import uvicorn

    console.print(f"[cyan]Serving taskboard API on http://{host}:{port}[/cyan]")
    uvicorn.run(
        "taskboard.api:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )
