"""
FILE: taskboard/cli/commands/dependencies.py
PURPOSE: Dependency and history commands (depend, undepend, history)
"""

import typer
from rich.table import Table

from ..main import app, console, fail
from ...core import audit, dependencies, service
from ...core.exceptions import TaskboardError
from ...core.reference import resolver
from ...formatting import print_json


@app.command()
def depend(
    task_id: int = typer.Argument(..., help="Task that is blocked"),
    depends_on_id: int = typer.Argument(..., help="Task it depends on"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Record that one task depends on another.

    A task with dependents cannot be deleted.

    Example:
        taskboard depend 7 3    # 7 depends on 3
    """
    try:
        edge = dependencies.add_dependency(task_id, depends_on_id)

        if json_output:
            print_json(console, edge.to_dict())
        elif raw:
            console.print(f"{edge.task_id} -> {edge.depends_on_id}", markup=False)
        else:
            console.print(
                f"[green]✓[/green] Task #{edge.task_id} now depends on #{edge.depends_on_id}"
            )

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def undepend(
    task_id: int = typer.Argument(..., help="Task that is blocked"),
    depends_on_id: int = typer.Argument(..., help="Task it depends on"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Remove a dependency edge.

    Example:
        taskboard undepend 7 3
    """
    try:
        removed = dependencies.remove_dependency(task_id, depends_on_id)

        if json_output:
            print_json(console, {"removed": removed})
        elif raw:
            console.print("removed" if removed else "absent", markup=False)
        elif removed:
            console.print(f"[green]✓[/green] Task #{task_id} no longer depends on #{depends_on_id}")
        else:
            console.print(f"[dim]Task #{task_id} did not depend on #{depends_on_id}[/dim]")

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def history(
    task_id: int = typer.Argument(..., help="Task ID"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Show a task's status transitions, audit trail and dependencies.

    Example:
        taskboard history 5
    """
    try:
        task = service.get_task(task_id)
        changes = audit.list_status_history(task_id)
        entries = audit.list_audit_entries(task_id)
        depends_on = [d.depends_on_id for d in dependencies.list_dependencies(task_id)]
        dependents = [d.task_id for d in dependencies.list_dependents(task_id)]

        if json_output:
            print_json(
                console,
                {
                    "task_id": task.id,
                    "status_history": [c.to_dict() for c in changes],
                    "audit": [e.to_dict() for e in entries],
                    "depends_on": depends_on,
                    "dependents": dependents,
                },
            )
            return

        names = {s.id: s.code for s in resolver.list_statuses()}

        if raw:
            for change in changes:
                console.print(
                    f"{change.created_at} {names.get(change.from_status_id, '-')} -> "
                    f"{names.get(change.to_status_id, change.to_status_id)} @{change.order_index}",
                    markup=False,
                )
            for entry in entries:
                console.print(f"{entry.created_at} {entry.action}", markup=False)
            return

        table = Table(title=f"Task #{task.id} history", show_header=True, header_style="bold cyan")
        table.add_column("When", style="dim")
        table.add_column("From", style="magenta")
        table.add_column("To", style="green")
        table.add_column("Position", justify="right")
        table.add_column("Comment")
        for change in changes:
            table.add_row(
                change.created_at or "-",
                names.get(change.from_status_id, "-"),
                names.get(change.to_status_id, str(change.to_status_id)),
                str(change.order_index),
                change.comment or "",
            )
        console.print(table)
        console.print(f"[dim]{len(entries)} audit event(s)[/dim]")

        if depends_on:
            console.print(f"Depends on: {', '.join(f'#{i}' for i in depends_on)}")
        if dependents:
            console.print(f"Blocks: {', '.join(f'#{i}' for i in dependents)}")

    except TaskboardError as e:
        fail(e, json_output)
