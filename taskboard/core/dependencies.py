"""
FILE: taskboard/core/dependencies.py
PURPOSE: Dependency edges between tasks and the guard consulted before deletion
EXPORTS:
  - count_dependents(conn, task_id) -> int
  - would_create_cycle(conn, task_id, depends_on_id) -> bool
  - add_dependency(task_id, depends_on_id) -> Dependency
  - remove_dependency(task_id, depends_on_id) -> bool
  - list_dependencies(task_id) -> List[Dependency]
  - list_dependents(task_id) -> List[Dependency]
DEPENDENCIES:
  - sqlite3 (stdlib)
  - loguru (logging)
  - taskboard.core.repository (connections, transactions)
NOTES:
  - An edge (task_id -> depends_on_id) means task_id depends on depends_on_id
  - count_dependents() is a pure count; it never mutates
  - Self-edges and edges that would close a cycle are rejected
  - Edges disappear with either endpoint (ON DELETE CASCADE)
"""

import sqlite3
from contextlib import closing
from typing import List

from loguru import logger

from . import repository
from .exceptions import TaskNotFoundError, ValidationError
from .models import Dependency


def count_dependents(conn: sqlite3.Connection, task_id: int) -> int:
    """Number of tasks that depend on task_id (its in-degree)."""
    row = conn.execute(
        "SELECT COUNT(*) AS n FROM task_dependencies WHERE depends_on_id = ?",
        (task_id,),
    ).fetchone()
    return row["n"]


def would_create_cycle(conn: sqlite3.Connection, task_id: int, depends_on_id: int) -> bool:
    """
    True if depends_on_id already (transitively) depends on task_id.

    Adding task_id -> depends_on_id would then close a loop.
    """
    row = conn.execute(
        """
        WITH RECURSIVE upstream(id) AS (
            SELECT depends_on_id FROM task_dependencies WHERE task_id = ?
            UNION
            SELECT d.depends_on_id
            FROM task_dependencies d
            JOIN upstream u ON d.task_id = u.id
        )
        SELECT 1 FROM upstream WHERE id = ? LIMIT 1
        """,
        (depends_on_id, task_id),
    ).fetchone()
    return row is not None


def add_dependency(task_id: int, depends_on_id: int) -> Dependency:
    """
    Record that task_id depends on depends_on_id.

    Returns:
        The edge (existing or newly created)

    Raises:
        ValidationError: Self-dependency or a dependency cycle
        TaskNotFoundError: If either task doesn't exist

    Notes:
        Adding an edge that already exists is a no-op.
    """
    if task_id == depends_on_id:
        raise ValidationError(
            "A task cannot depend on itself", {"task_id": task_id}
        )

    def work(conn: sqlite3.Connection) -> Dependency:
        for tid in (task_id, depends_on_id):
            if repository.fetch_task(conn, tid) is None:
                raise TaskNotFoundError(tid)

        if would_create_cycle(conn, task_id, depends_on_id):
            raise ValidationError(
                f"Task {task_id} depending on {depends_on_id} would create a cycle",
                {"task_id": task_id, "depends_on_id": depends_on_id},
            )

        conn.execute(
            """
            INSERT INTO task_dependencies (task_id, depends_on_id, created_at)
            VALUES (?, ?, ?)
            ON CONFLICT(task_id, depends_on_id) DO NOTHING
            """,
            (task_id, depends_on_id, repository.now_iso()),
        )
        row = conn.execute(
            "SELECT * FROM task_dependencies WHERE task_id = ? AND depends_on_id = ?",
            (task_id, depends_on_id),
        ).fetchone()
        return Dependency.from_row(row)

    edge = repository.run_in_transaction(
        work,
        context={"task_id": task_id, "depends_on_id": depends_on_id, "step": "add dependency"},
    )
    logger.info("Task {} now depends on {}", task_id, depends_on_id)
    return edge


def remove_dependency(task_id: int, depends_on_id: int) -> bool:
    """
    Remove an edge.

    Returns:
        True if an edge was removed, False if it didn't exist
    """
    removed = repository.run_in_transaction(
        lambda conn: conn.execute(
            "DELETE FROM task_dependencies WHERE task_id = ? AND depends_on_id = ?",
            (task_id, depends_on_id),
        ).rowcount,
        context={"task_id": task_id, "depends_on_id": depends_on_id, "step": "remove dependency"},
    )
    return removed > 0


def list_dependencies(task_id: int) -> List[Dependency]:
    """Edges going out of task_id (what it depends on)."""
    with closing(repository.get_connection()) as conn:
        rows = conn.execute(
            "SELECT * FROM task_dependencies WHERE task_id = ? ORDER BY depends_on_id",
            (task_id,),
        ).fetchall()
    return [Dependency.from_row(row) for row in rows]


def list_dependents(task_id: int) -> List[Dependency]:
    """Edges coming into task_id (who depends on it)."""
    with closing(repository.get_connection()) as conn:
        rows = conn.execute(
            "SELECT * FROM task_dependencies WHERE depends_on_id = ? ORDER BY task_id",
            (task_id,),
        ).fetchall()
    return [Dependency.from_row(row) for row in rows]
