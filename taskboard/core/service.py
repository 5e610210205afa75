"""
FILE: taskboard/core/service.py
PURPOSE: Business logic layer: create, update, move and delete tasks
EXPORTS:
  - create_task(title, status_id, board_id, priority, task_type, description, content) -> Task
  - get_task(task_id) -> Task
  - list_tasks(board_id, status_id, priority) -> List[Task]
  - list_partition(board_id, status_id) -> List[Task]
  - update_task(task_id, title, description, priority, content) -> Task
  - move_task(task_id, status_id, order, previous_status_id, task_type, comment) -> Task
  - delete_task(task_id) -> Task
  - count_dependents(task_id) -> int
  - add_criterion(task_id, description, category, notes) -> Task
  - set_criterion(task_id, criterion_id, completed) -> Task
  - repair_partitions() -> int
  - configure(settings) -> None
  - KEEP_TYPE: move_task() sentinel that keeps the stored type
DEPENDENCIES:
  - loguru (logging)
  - taskboard.core.repository (rows, transactions)
  - taskboard.core.ordering (dense order maintenance)
  - taskboard.core.reference (status/priority/type resolution)
  - taskboard.core.dependencies (deletion guard)
  - taskboard.core.audit (post-commit events)
NOTES:
  - Every mutation runs as one write transaction: all of it lands or none
  - Audit events are emitted only after commit and never fail the operation
  - Returns domain objects with status/priority/type attached
  - Moves keep the task on its board; only status and slot change
"""

import sqlite3
from contextlib import closing
from typing import Any, Dict, List, Optional, Tuple, Union

from loguru import logger

from ..config import Settings
from . import dependencies, ordering, repository
from .audit import emitter
from .constants import AUDIT_CREATED, AUDIT_DELETED, AUDIT_MOVED, AUDIT_UPDATED, MAX_ROW_ID
from .exceptions import (
    DependentTasksError,
    NotFoundError,
    StatusNotFoundError,
    TaskNotFoundError,
    ValidationError,
)
from .models import AcceptanceCriterion, Task, TaskContent
from .reference import resolver
from .repository import ANY_BOARD


ContentInput = Union[TaskContent, Dict[str, Any], None]

# Passed as task_type to move_task() to keep the type stored on the task
KEEP_TYPE = object()


def configure(settings: Settings) -> None:
    """Apply settings to the store and the audit emitter, then seed lookups."""
    repository.configure(settings)
    emitter.enabled = settings.audit_enabled
    resolver.ensure_defaults()
    logger.debug("Using store {}", settings.db_path)


def _require_int(name: str, value: Any, minimum: int) -> int:
    """Reject missing, non-integer (including bool) or out-of-range values."""
    if value is None:
        raise ValidationError(f"{name} is required", {name: value})
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", {name: value})
    if value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", {name: value})
    if value > MAX_ROW_ID:
        raise ValidationError(f"{name} must be <= {MAX_ROW_ID}", {name: value})
    return value


def _coerce_content(content: ContentInput) -> Optional[TaskContent]:
    if content is None or isinstance(content, TaskContent):
        return content
    if isinstance(content, dict):
        try:
            return TaskContent.from_dict(content)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid content: {exc}", {"content": repr(content)}) from exc
    raise ValidationError("content must be an object", {"content": repr(content)})


def _hydrate(task: Task, conn: Optional[sqlite3.Connection] = None) -> Task:
    """Attach resolved status/priority/type rows to a task."""
    task.status = resolver.get_status(task.status_id, conn)
    task.priority = resolver.get_priority(task.priority_id, conn)
    task.task_type = resolver.get_type(task.type_id, conn)
    return task


def _load_locked(conn: sqlite3.Connection, task_id: int, **context: Any) -> Task:
    task = repository.fetch_task(conn, task_id)
    if task is None:
        raise TaskNotFoundError(task_id, **context)
    return task


# --- Queries ---


def get_task(task_id: int) -> Task:
    """
    Fetch a task with its reference rows attached.

    Raises:
        TaskNotFoundError: If task_id doesn't exist
    """
    task = repository.get_task(task_id) if abs(task_id) <= MAX_ROW_ID else None
    if task is None:
        raise TaskNotFoundError(task_id)
    return _hydrate(task)


def _require_status(status_id: int) -> None:
    if resolver.get_status(status_id) is None:
        raise StatusNotFoundError(status_id)


def list_tasks(
    board_id: Any = ANY_BOARD,
    status_id: Optional[int] = None,
    priority: Optional[str] = None,
) -> List[Task]:
    """
    List tasks column by column (status display order, then slot).

    Args:
        board_id: Board ID, None for unscoped tasks, ANY_BOARD for all
        status_id: Only this status column
        priority: Only tasks with this priority code

    Raises:
        StatusNotFoundError: If filtering on a status that doesn't exist
        ValidationError: Unknown priority code or out-of-range board ID
    """
    if board_id is not ANY_BOARD and board_id is not None:
        _require_int("board_id", board_id, 0)
    if status_id is not None:
        _require_status(status_id)
    priority_id = resolver.resolve_priority(priority).id if priority else None

    tasks = repository.list_tasks(board_id=board_id, status_id=status_id, priority_id=priority_id)
    return [_hydrate(t) for t in tasks]


def list_partition(board_id: Optional[int], status_id: int) -> List[Task]:
    """One (board, status) column in slot order."""
    _require_status(status_id)
    return [_hydrate(t) for t in repository.list_partition(board_id, status_id)]


def count_dependents(task_id: int) -> int:
    with closing(repository.get_connection()) as conn:
        return dependencies.count_dependents(conn, task_id)


# --- Create / Update ---


def create_task(
    title: str,
    status_id: Optional[int] = None,
    board_id: Optional[int] = None,
    priority: Optional[str] = None,
    task_type: Optional[str] = None,
    description: Optional[str] = None,
    content: ContentInput = None,
    actor: Optional[str] = None,
) -> Task:
    """
    Create a new task at the tail of its column.

    Args:
        title: Task title (required, must not be empty)
        status_id: Status column (defaults to the default status)
        board_id: Board to place the task on (None = unscoped)
        priority: Priority code (defaults to "medium")
        task_type: Type code (defaults to "feature")
        description: Optional description
        content: Optional content block (TaskContent or dict)
        actor: Who is creating the task, recorded in the audit entry

    Returns:
        Newly created Task object

    Raises:
        ValidationError: Empty title, unknown status, priority or type

    Notes:
        - order_index = MAX(order_index)+1 of the target column, computed in
          the same write transaction as the insert
        - Trims whitespace from title and description
    """
    title = (title or "").strip()
    if not title:
        raise ValidationError("Task title cannot be empty")

    if status_id is not None:
        _require_int("status_id", status_id, 1)
    if board_id is not None:
        _require_int("board_id", board_id, 0)

    description_value = description.strip() if description else None
    task_content = _coerce_content(content) or TaskContent()
    if description_value and not task_content.description:
        task_content.description = description_value

    def work(conn: sqlite3.Connection) -> Task:
        if status_id is None:
            status = resolver.default_status(conn)
        else:
            status = resolver.get_status(status_id, conn)
            if status is None:
                raise ValidationError("Invalid status ID", {"status_id": status_id})

        priority_row = resolver.resolve_priority(priority, conn)
        type_row = resolver.resolve_type(task_type, conn)

        order_index = ordering.next_order(conn, board_id, status.id)
        task_id = repository.insert_task(
            conn,
            title=title,
            status_id=status.id,
            priority_id=priority_row.id,
            type_id=type_row.id,
            order_index=order_index,
            board_id=board_id,
            description=description_value,
            content=task_content.to_text(),
        )
        return _hydrate(_load_locked(conn, task_id), conn)

    task = repository.run_in_transaction(
        work,
        context={"title": title, "status_id": status_id, "board_id": board_id, "step": "create"},
    )

    logger.info(
        "Created task {} in partition ({}, {}) at {}",
        task.id, task.board_id, task.status_id, task.order_index,
    )
    emitter.emit(
        AUDIT_CREATED,
        task.id,
        {"status_id": task.status_id, "order": task.order_index, "board_id": task.board_id, "actor": actor},
    )
    return task


def update_task(
    task_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    content: ContentInput = None,
    actor: Optional[str] = None,
) -> Task:
    """
    Update the free-form fields of a task.

    Args:
        task_id: ID of task to update
        title: New title (must not be empty if given)
        description: New description ("" clears it)
        priority: New priority code
        content: Replacement content block
        actor: Recorded in the audit entry

    Returns:
        Updated Task object

    Raises:
        TaskNotFoundError: If task_id doesn't exist
        ValidationError: Empty title or unknown priority

    Notes:
        Status, slot and type only change through move_task().
    """
    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationError("Task title cannot be empty")

    new_content = _coerce_content(content)

    def work(conn: sqlite3.Connection) -> Tuple[Task, List[str]]:
        task = _load_locked(conn, task_id)
        changed: List[str] = []

        if title is not None and title != task.title:
            task.title = title
            changed.append("title")

        if new_content is not None:
            task.content = new_content
            changed.append("content")

        if description is not None:
            task.description = description.strip() or None
            task.content.description = task.description or ""
            changed.append("description")

        if priority is not None:
            task.priority_id = resolver.resolve_priority(priority, conn).id
            changed.append("priority")

        if changed and repository.update_task_fields(conn, task) == 0:
            raise TaskNotFoundError(task_id)

        return _hydrate(_load_locked(conn, task_id), conn), changed

    task, changed = repository.run_in_transaction(
        work, context={"task_id": task_id, "step": "update"}
    )

    if changed:
        emitter.emit(AUDIT_UPDATED, task.id, {"fields": changed, "actor": actor})
    return task


def add_criterion(
    task_id: int,
    description: str,
    category: Optional[str] = None,
    notes: Optional[str] = None,
) -> Task:
    """Append an acceptance criterion to a task's content block."""
    description = (description or "").strip()
    if not description:
        raise ValidationError("Criterion description cannot be empty")

    def work(conn: sqlite3.Connection) -> Task:
        task = _load_locked(conn, task_id)
        criteria = task.content.acceptance_criteria
        criteria.append(
            AcceptanceCriterion(
                description=description,
                order=len(criteria),
                category=category,
                notes=notes,
            )
        )
        repository.update_task_fields(conn, task)
        return _hydrate(_load_locked(conn, task_id), conn)

    return repository.run_in_transaction(
        work, context={"task_id": task_id, "step": "add criterion"}
    )


def set_criterion(task_id: int, criterion_id: str, completed: bool) -> Task:
    """
    Mark an acceptance criterion complete or incomplete.

    Raises:
        TaskNotFoundError: If task_id doesn't exist
        NotFoundError: If the task has no such criterion
    """

    def work(conn: sqlite3.Connection) -> Task:
        task = _load_locked(conn, task_id)
        for criterion in task.content.acceptance_criteria:
            if criterion.id == criterion_id:
                criterion.completed = completed
                criterion.completed_at = repository.now_iso() if completed else None
                break
        else:
            raise NotFoundError(
                f"Criterion {criterion_id} not found on task {task_id}",
                {"task_id": task_id, "criterion_id": criterion_id},
            )
        repository.update_task_fields(conn, task)
        return _hydrate(_load_locked(conn, task_id), conn)

    return repository.run_in_transaction(
        work, context={"task_id": task_id, "criterion_id": criterion_id, "step": "set criterion"}
    )


# --- Move / Transition ---


def move_task(
    task_id: int,
    status_id: int,
    order: int,
    previous_status_id: Optional[int] = None,
    task_type: Any = None,
    comment: Optional[str] = None,
    actor: Optional[str] = None,
) -> Task:
    """
    Move a task to a status column and slot, keeping every column dense.

    Args:
        task_id: ID of task to move
        status_id: Target status (required)
        order: Target zero-based slot (required, >= 0)
        previous_status_id: Status the caller believes the task is in;
            informational, the stored status read under lock wins
        task_type: Type code; omitted or empty resolves the default type,
            KEEP_TYPE keeps the type stored on the task
        comment: Free text recorded with the status change
        actor: Who moved the task

    Returns:
        Updated Task object (status/priority/type attached)

    Raises:
        ValidationError: Missing/invalid status_id or order, unknown status or type
        TaskNotFoundError: If task_id doesn't exist (or vanished mid-move)
        InternalError: Store failure or deadline exceeded; nothing was changed

    Notes:
        - Cross-column: close the gap in the source column, then open the
          slot in the target column
        - Same column: only tasks between the old and new slot shift
        - A slot past the end of the column is clamped to the tail
        - Moving a task onto its own slot changes no other task
    """
    _require_int("task_id", task_id, 0)
    _require_int("status_id", status_id, 1)
    _require_int("order", order, 0)
    if previous_status_id is not None:
        _require_int("previous_status_id", previous_status_id, 1)

    target = {"status_id": status_id, "order": order}

    def work(conn: sqlite3.Connection) -> Tuple[Task, int, int]:
        # BEGIN IMMEDIATE already holds the write lock: this read is stable
        task = _load_locked(conn, task_id, **target)
        source_status, source_order = task.status_id, task.order_index
        board_id = task.board_id

        if task_type is KEEP_TYPE:
            type_id = task.type_id
        else:
            type_id = resolver.resolve_type(task_type, conn).id

        if resolver.get_status(status_id, conn) is None:
            raise ValidationError("Invalid status ID", {"status_id": status_id, "task_id": task_id})

        if previous_status_id is not None and previous_status_id != source_status:
            logger.warning(
                "Task {} move: caller expected status {}, stored status is {}",
                task_id, previous_status_id, source_status,
            )

        if source_status != status_id:
            ordering.close_gap(conn, board_id, source_status, source_order)
            size = ordering.partition_size(conn, board_id, status_id)
            target_order = ordering.clamp_order(order, size)
            ordering.open_slot(conn, board_id, status_id, target_order, exclude_id=task_id)
        else:
            size = ordering.partition_size(conn, board_id, status_id)
            target_order = ordering.clamp_order(order, size - 1)
            ordering.shift_within(
                conn, board_id, status_id, source_order, target_order, exclude_id=task_id
            )

        if target_order != order:
            logger.debug("Task {} move: slot {} clamped to {}", task_id, order, target_order)

        if repository.update_task_position(conn, task_id, status_id, target_order, type_id) == 0:
            raise TaskNotFoundError(task_id, **target)

        return _hydrate(_load_locked(conn, task_id, **target), conn), source_status, source_order

    task, source_status, source_order = repository.run_in_transaction(
        work, context={"task_id": task_id, **target, "step": "move"}
    )

    logger.info(
        "Moved task {} from ({}, {}) to ({}, {})",
        task_id, source_status, source_order, task.status_id, task.order_index,
    )

    status_change = None
    if source_status != task.status_id:
        status_change = {
            "from_status_id": source_status,
            "to_status_id": task.status_id,
            "order_index": task.order_index,
            "comment": comment,
            "actor": actor,
        }
    emitter.emit(
        AUDIT_MOVED,
        task_id,
        {
            "from_status": source_status,
            "to_status": task.status_id,
            "from_order": source_order,
            "new_order": task.order_index,
            "comment": comment,
            "actor": actor,
        },
        status_change=status_change,
    )
    return task


# --- Delete ---


def delete_task(task_id: int, actor: Optional[str] = None) -> Task:
    """
    Delete a task permanently and close the gap it leaves in its column.

    Args:
        task_id: ID of task to delete
        actor: Recorded in the audit entry

    Returns:
        The deleted Task (as it was before deletion)

    Raises:
        TaskNotFoundError: If task doesn't exist
        DependentTasksError: If other tasks depend on it (nothing is deleted)

    Notes:
        Edges where the task is the dependent are removed with it.
    """

    def work(conn: sqlite3.Connection) -> Task:
        task = _hydrate(_load_locked(conn, task_id), conn)

        dependents = dependencies.count_dependents(conn, task_id)
        if dependents > 0:
            raise DependentTasksError(task_id, dependents)

        if repository.delete_task_row(conn, task_id) == 0:
            raise TaskNotFoundError(task_id)

        ordering.close_gap(conn, task.board_id, task.status_id, task.order_index)
        return task

    task = repository.run_in_transaction(work, context={"task_id": task_id, "step": "delete"})

    logger.info(
        "Deleted task {} from partition ({}, {})", task_id, task.board_id, task.status_id
    )
    emitter.emit(
        AUDIT_DELETED,
        task_id,
        {"status_id": task.status_id, "order": task.order_index, "title": task.title, "actor": actor},
    )
    return task


# --- Maintenance ---


def repair_partitions() -> int:
    """
    Renumber every column to 0..n-1 (heals data written by older versions).

    Returns:
        Number of tasks whose slot changed
    """

    def work(conn: sqlite3.Connection) -> int:
        partitions = conn.execute(
            "SELECT DISTINCT board_id, status_id FROM tasks"
        ).fetchall()
        return sum(
            ordering.compact_partition(conn, row["board_id"], row["status_id"])
            for row in partitions
        )

    changed = repository.run_in_transaction(work, context={"step": "repair"})
    if changed:
        logger.warning("Repaired {} task slot(s)", changed)
    return changed
