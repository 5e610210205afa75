"""
FILE: taskboard/cli/commands/tasks.py
PURPOSE: Task commands (add, ls, show, mv, rm, edit, check)
"""

import sys
from typing import Optional

import typer
from rich.markup import escape
from rich.panel import Panel

from ..main import app, console, error_console, fail
from ...core import service
from ...core.exceptions import TaskboardError, ValidationError
from ...core.reference import resolver
from ...core.repository import ANY_BOARD
from ...formatting import TaskFormatter, parse_task_ids, print_json


def resolve_status_id(value: str) -> int:
    """
    Accept a status ID ("3") or code ("in_progress", "In Progress").

    Raises:
        ValidationError: If no such status exists
    """
    value = value.strip()
    if value.isdigit():
        return int(value)

    code = value.lower().replace(" ", "_").replace("-", "_")
    status = resolver.get_status_by_code(code)
    if status is None:
        raise ValidationError(
            f"Unknown status '{value}'",
            {"status": value, "valid": [s.code for s in resolver.list_statuses()]},
        )
    return status.id


@app.command()
def add(
    title: str = typer.Argument(..., help="Task title"),
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Status ID or code (default: backlog)"),
    board_id: Optional[int] = typer.Option(None, "--board", "-b", help="Board ID"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="Priority code"),
    task_type: Optional[str] = typer.Option(None, "--type", "-t", help="Type code (default: feature)"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Description"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Create a new task at the bottom of its column.

    Example:
        taskboard add "Write documentation"
        taskboard add "Fix login" --status todo --type bug --priority high
    """
    try:
        task = service.create_task(
            title=title,
            status_id=resolve_status_id(status) if status else None,
            board_id=board_id,
            priority=priority,
            task_type=task_type,
            description=description,
        )

        if json_output:
            print_json(console, task.to_dict())
        elif raw:
            console.print(f"{task.id}: {task.title}", markup=False)
        else:
            console.print(
                f"[green]✓ Created task [bold]#{task.id}[/bold]:[/green] {escape(task.title)} "
                f"[dim]({task.status.name}, position {task.order_index})[/dim]"
            )

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def ls(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status ID or code"),
    board_id: Optional[int] = typer.Option(None, "--board", "-b", help="Filter by board ID"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="Filter by priority code"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    List tasks column by column, in board order.

    Example:
        taskboard ls
        taskboard ls --status todo
        taskboard ls --board 2 --json
        taskboard ls --priority high
    """
    try:
        tasks = service.list_tasks(
            board_id=ANY_BOARD if board_id is None else board_id,
            status_id=resolve_status_id(status) if status else None,
            priority=priority,
        )

        if json_output:
            print_json(console, TaskFormatter.to_json_array(tasks))

        elif raw:
            for line in TaskFormatter.to_raw_lines(tasks):
                console.print(line, markup=False)

        else:
            if not tasks:
                console.print("[dim]No tasks found[/dim]")
                return

            show_board = any(t.board_id is not None for t in tasks)
            console.print(TaskFormatter.create_table(tasks, show_board=show_board))
            console.print(f"\n[dim]Total: {len(tasks)} task(s)[/dim]")

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def show(
    task_id: int = typer.Argument(..., help="Task ID to view"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Show full details for a task.

    Example:
        taskboard show 5
    """
    try:
        task = service.get_task(task_id)

        if json_output:
            print_json(console, task.to_dict())
        elif raw:
            console.print(f"Task #{task.id}", markup=False)
            console.print(f"Title: {task.title}", markup=False)
            if task.description:
                console.print(f"Description: {task.description}", markup=False)
            console.print(f"Status: {task.status.code} (position {task.order_index})", markup=False)
            console.print(f"Type: {task.task_type.code}", markup=False)
            console.print(f"Priority: {task.priority.code}", markup=False)
            if task.board_id is not None:
                console.print(f"Board: {task.board_id}", markup=False)
            for criterion in task.content.acceptance_criteria:
                mark = "x" if criterion.completed else " "
                console.print(f"[{mark}] {criterion.description} ({criterion.id})", markup=False)
            console.print(f"Created: {task.created_at}", markup=False)
        else:
            console.print(Panel(TaskFormatter.details(task), border_style="cyan", expand=False))

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def mv(
    task_id: int = typer.Argument(..., help="Task ID to move"),
    status: str = typer.Argument(..., help="Target status ID or code (e.g. 'todo', 'in_progress', 3)"),
    order: Optional[int] = typer.Option(None, "--order", "-o", help="Target position (0 = top; default: bottom)"),
    task_type: Optional[str] = typer.Option(None, "--type", "-t", help="New type code (default: keep current)"),
    comment: Optional[str] = typer.Option(None, "--comment", "-m", help="Comment recorded in the history"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Move a task to a status column and position.

    Positions past the end of the column land at the bottom.

    Example:
        taskboard mv 5 in_progress
        taskboard mv 5 todo --order 0
        taskboard mv 3 done --comment "shipped"
    """
    try:
        target = service.move_task(
            task_id,
            status_id=resolve_status_id(status),
            # Past-the-end positions are clamped to the bottom
            order=order if order is not None else sys.maxsize,
            task_type=service.KEEP_TYPE if task_type is None else task_type,
            comment=comment,
        )

        if json_output:
            print_json(console, target.to_dict())
        elif raw:
            console.print(
                f"Moved task {target.id} to {target.status.code} at {target.order_index}",
                markup=False,
            )
        else:
            console.print(
                f"[blue]→[/blue] Moved task {target.id} to [cyan]{target.status.name}[/cyan] "
                f"[dim](position {target.order_index})[/dim]"
            )

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def rm(
    task_ids: str = typer.Argument(..., help="Task ID(s) to delete (comma-separated)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Delete task(s) permanently.

    Tasks that other tasks depend on are refused.

    Example:
        taskboard rm 5
        taskboard rm 3,5,7
    """
    try:
        ids = parse_task_ids(task_ids)
    except ValueError:
        fail(ValidationError(f"Invalid task IDs '{task_ids}'"), json_output)

    deleted = []
    failed = False
    for task_id in ids:
        try:
            task = service.delete_task(task_id)
        except TaskboardError as e:
            failed = True
            if json_output:
                print_json(error_console, e.to_dict())
            else:
                error_console.print(f"[red]Error:[/red] {escape(str(e))}")
            continue

        deleted.append(task)
        if raw:
            console.print(f"Deleted task {task.id}", markup=False)
        elif not json_output:
            console.print(f"[red]✗ Deleted task [bold]#{task.id}[/bold]:[/red] {escape(task.title)}")

    if json_output:
        print_json(console, {"deleted": [t.id for t in deleted]})

    if failed:
        raise typer.Exit(1)


@app.command()
def edit(
    task_id: int = typer.Argument(..., help="Task ID to edit"),
    title: Optional[str] = typer.Option(None, "--title", help="New title"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description ('' clears it)"),
    priority: Optional[str] = typer.Option(None, "--priority", "-p", help="New priority code"),
    criterion: Optional[str] = typer.Option(None, "--criterion", "-c", help="Append an acceptance criterion"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Update a task's title, description or priority.

    Status and position only change with `mv`.

    Example:
        taskboard edit 5 --title "Updated title"
        taskboard edit 5 --priority high
        taskboard edit 5 --criterion "Has tests"
    """
    try:
        task = service.update_task(
            task_id,
            title=title,
            description=description,
            priority=priority,
        )
        if criterion is not None:
            task = service.add_criterion(task_id, criterion)

        if json_output:
            print_json(console, task.to_dict())
        elif raw:
            console.print(f"{task.id}: {task.title}", markup=False)
        else:
            console.print(f"[yellow]✎ Updated task [bold]#{task.id}[/bold]:[/yellow] {escape(task.title)}")

    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def check(
    task_id: int = typer.Argument(..., help="Task ID"),
    criterion_id: str = typer.Argument(..., help="Criterion ID (or a unique prefix)"),
    undo: bool = typer.Option(False, "--undo", help="Mark the criterion incomplete"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Mark an acceptance criterion complete (or incomplete with --undo).

    Example:
        taskboard check 5 3f2a
        taskboard check 5 3f2a --undo
    """
    try:
        task = service.get_task(task_id)
        matches = [
            c.id for c in task.content.acceptance_criteria if c.id.startswith(criterion_id)
        ]
        if len(matches) != 1:
            raise ValidationError(
                f"Criterion '{criterion_id}' matches {len(matches)} criteria on task {task_id}",
                {"task_id": task_id, "criterion_id": criterion_id},
            )

        task = service.set_criterion(task_id, matches[0], completed=not undo)
        progress = task.progress

        if json_output:
            print_json(console, task.to_dict())
        elif raw:
            console.print(f"{task.id}: {progress['completed']}/{progress['total']}", markup=False)
        else:
            console.print(
                f"[green]✓[/green] Task #{task.id}: "
                f"{progress['completed']}/{progress['total']} criteria complete"
            )

    except TaskboardError as e:
        fail(e, json_output)
