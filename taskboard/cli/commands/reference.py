"""
FILE: taskboard/cli/commands/reference.py
PURPOSE: Reference data and maintenance commands (statuses, priorities, types, repair)
"""

from typing import List

import typer

from ..main import app, console, fail
from ...core import service
from ...core.exceptions import TaskboardError
from ...core.models import ReferenceEntity
from ...core.reference import resolver
from ...formatting import print_json, reference_table


def _print_rows(title: str, rows: List[ReferenceEntity], json_output: bool, raw: bool) -> None:
    if json_output:
        print_json(console, [r.to_dict() for r in rows])
    elif raw:
        for row in rows:
            console.print(f"{row.id}: {row.code} ({row.name})", markup=False)
    else:
        console.print(reference_table(title, rows))


@app.command()
def statuses(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """List status columns in board order."""
    try:
        _print_rows("Statuses", resolver.list_statuses(), json_output, raw)
    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def priorities(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """List task priorities."""
    try:
        _print_rows("Priorities", resolver.list_priorities(), json_output, raw)
    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def types(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """List task types (feature is the default)."""
    try:
        _print_rows("Types", resolver.list_types(), json_output, raw)
    except TaskboardError as e:
        fail(e, json_output)


@app.command()
def repair(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
    raw: bool = typer.Option(False, "--raw", help="Plain text output (no colors)"),
):
    """
    Renumber every column to 0..n-1.

    Only needed for databases written by older versions; normal
    operation keeps columns dense.

    Example:
        taskboard repair
    """
    try:
        changed = service.repair_partitions()

        if json_output:
            print_json(console, {"repaired": changed})
        elif raw:
            console.print(str(changed), markup=False)
        elif changed:
            console.print(f"[yellow]Repaired {changed} task position(s)[/yellow]")
        else:
            console.print("[green]✓ All columns are consistent[/green]")

    except TaskboardError as e:
        fail(e, json_output)
