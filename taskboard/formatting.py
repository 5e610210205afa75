"""
FILE: taskboard/formatting.py
PURPOSE: Shared formatting utilities for CLI output
EXPORTS:
  - TaskFormatter: Class for formatting tasks
  - reference_table: Rich table for statuses/priorities/types
  - print_json: Emit JSON without Rich markup or wrapping
DEPENDENCIES:
  - rich (for table formatting)
  - json (for JSON serialization)
  - taskboard.core.models (Task, ReferenceEntity)
NOTES:
  - Centralized formatting logic for consistency
  - JSON goes through print_json() so long lines are never re-wrapped
"""

import json
from typing import Any, List

from rich.console import Console
from rich.table import Table
from rich.text import Text

from .core.models import ReferenceEntity, Task


# Status code -> Rich style
STATUS_STYLES = {
    "backlog": "dim",
    "todo": "yellow",
    "in_progress": "bright_magenta",
    "blocked": "red",
    "done": "green",
}

PRIORITY_STYLES = {
    "low": "dim",
    "medium": "white",
    "high": "yellow",
    "critical": "bold red",
}


def print_json(console: Console, data: Any) -> None:
    """Print data as indented JSON, bypassing markup and highlighting."""
    console.print(
        json.dumps(data, indent=2),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


class TaskFormatter:
    """Centralized task display formatting."""

    @staticmethod
    def create_table(
        tasks: List[Task],
        title: str = "Tasks",
        show_board: bool = False,
    ) -> Table:
        """
        Create Rich table for tasks.

        Args:
            tasks: List of tasks to display
            title: Table title
            show_board: Whether to show board column

        Returns:
            Rich Table object ready for display
        """
        table = Table(title=title, show_header=True, header_style="bold cyan")
        table.add_column("ID", style="cyan", width=6, no_wrap=True)
        table.add_column("Status", style="magenta")
        table.add_column("#", style="blue", justify="right")
        table.add_column("Title", style="white")
        table.add_column("Type", style="cyan")
        table.add_column("Priority")

        if show_board:
            table.add_column("Board", style="yellow")

        for task in tasks:
            status_code = task.status.code if task.status else str(task.status_id)
            status_name = task.status.name if task.status else status_code
            priority_code = task.priority.code if task.priority else ""

            row = [
                str(task.id),
                Text(status_name, style=STATUS_STYLES.get(status_code, "white")),
                str(task.order_index),
                Text(task.title),
                task.task_type.code if task.task_type else "-",
                Text(
                    task.priority.name if task.priority else "-",
                    style=PRIORITY_STYLES.get(priority_code, "white"),
                ),
            ]

            if show_board:
                row.append("-" if task.board_id is None else str(task.board_id))

            table.add_row(*row)

        return table

    @staticmethod
    def to_json_array(tasks: List[Task]) -> List[dict]:
        return [t.to_dict() for t in tasks]

    @staticmethod
    def to_raw_lines(tasks: List[Task]) -> List[str]:
        """
        Convert task list to plain text lines.

        Format: "<id>: [<status code>/<order>] <title>"
        """
        lines = []
        for task in tasks:
            status_code = task.status.code if task.status else task.status_id
            lines.append(f"{task.id}: [{status_code}/{task.order_index}] {task.title}")
        return lines

    @staticmethod
    def details(task: Task) -> Text:
        """Rich text block with everything known about one task."""
        details = Text()
        details.append(f"Task #{task.id}\n", style="bold cyan")
        details.append(f"{task.title}\n\n", style="bold white")

        if task.description:
            details.append("Description:\n", style="dim")
            details.append(f"{task.description}\n\n", style="white")

        status_code = task.status.code if task.status else ""
        details.append("Status: ", style="dim")
        details.append(
            f"{task.status.name if task.status else task.status_id}",
            style=STATUS_STYLES.get(status_code, "white"),
        )
        details.append(f"  (position {task.order_index})\n", style="dim")

        details.append("Type: ", style="dim")
        details.append(f"{task.task_type.code if task.task_type else '-'}\n", style="cyan")

        details.append("Priority: ", style="dim")
        priority_code = task.priority.code if task.priority else ""
        details.append(
            f"{task.priority.name if task.priority else '-'}\n",
            style=PRIORITY_STYLES.get(priority_code, "white"),
        )

        if task.board_id is not None:
            details.append("Board: ", style="dim")
            details.append(f"{task.board_id}\n", style="yellow")

        content = task.content
        if content.assignee:
            details.append("Assignee: ", style="dim")
            details.append(f"{content.assignee}\n")
        if content.due_date:
            details.append("Due: ", style="dim")
            details.append(f"{content.due_date}\n")

        criteria = sorted(content.acceptance_criteria, key=lambda c: c.order)
        if criteria:
            progress = task.progress
            details.append(
                f"\nAcceptance criteria ({progress['completed']}/{progress['total']}):\n",
                style="dim",
            )
            for criterion in criteria:
                mark = "✓" if criterion.completed else "○"
                details.append(f"  {mark} ", style="green" if criterion.completed else "yellow")
                details.append(f"{criterion.description}")
                details.append(f"  [{criterion.id[:8]}]\n", style="dim")

        details.append("\nCreated: ", style="dim")
        details.append(f"{task.created_at or '-'}\n")
        details.append("Updated: ", style="dim")
        details.append(f"{task.updated_at or '-'}")
        return details


def parse_task_ids(id_string: str) -> List[int]:
    """
    Parse comma-separated task IDs.

    Args:
        id_string: Comma-separated string of IDs (e.g., "1,2,3")

    Returns:
        List of integers

    Raises:
        ValueError: If any ID is not a valid integer
    """
    ids = [part.strip() for part in id_string.split(",")]
    return [int(part) for part in ids if part]


def reference_table(title: str, rows: List[ReferenceEntity]) -> Table:
    """Rich table for one lookup table (statuses, priorities or types)."""
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Code", style="magenta")
    table.add_column("Name", style="white")
    table.add_column("Description", style="dim")

    for row in rows:
        table.add_row(str(row.id), row.code, row.name, row.description or "")

    return table
