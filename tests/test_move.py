"""
Tests for move_task(): the move/transition protocol.

Covers the board scenarios (reorder within a column, move across
columns, default type on a cold type table), validation, atomicity,
clamping, the null-board partition, concurrent movers and the
transaction deadline.
"""

import sqlite3
import threading
from contextlib import closing

import pytest

from taskboard.core import ordering, repository, service
from taskboard.core.audit import emitter, list_audit_entries, list_status_history
from taskboard.core.exceptions import (
    InternalError,
    TaskNotFoundError,
    TransactionTimeoutError,
    ValidationError,
)
from taskboard.core.reference import resolver


def column(status_id, board_id=None):
    """Task IDs of one column in slot order, checking it is dense."""
    tasks = service.list_partition(board_id, status_id)
    assert [t.order_index for t in tasks] == list(range(len(tasks)))
    return [t.id for t in tasks]


@pytest.fixture
def todo_column(statuses):
    """A(0), B(1), C(2) in todo."""
    return [service.create_task(name, status_id=statuses["todo"]).id for name in "ABC"]


# --- Scenarios ---


def test_reorder_within_column(statuses, todo_column):
    """C to the top of its own column: C(0), A(1), B(2)."""
    a, b, c = todo_column

    moved = service.move_task(c, status_id=statuses["todo"], order=0)

    assert moved.order_index == 0
    assert column(statuses["todo"]) == [c, a, b]


def test_move_across_columns(statuses, todo_column):
    """A to the top of in_progress: both columns stay dense."""
    a, b, c = todo_column
    d = service.create_task("D", status_id=statuses["in_progress"]).id

    moved = service.move_task(
        a,
        status_id=statuses["in_progress"],
        order=0,
        previous_status_id=statuses["todo"],
    )

    assert moved.status_id == statuses["in_progress"]
    assert moved.status.code == "in_progress"
    assert column(statuses["todo"]) == [b, c]
    assert column(statuses["in_progress"]) == [a, d]


def test_omitted_type_seeds_and_uses_default_type(statuses):
    """With an empty type table the move still succeeds with 'feature'."""
    task = service.create_task("Typeless")

    # A plain connection leaves foreign keys off, so the table can be emptied
    with closing(sqlite3.connect(repository.DB_PATH)) as conn:
        conn.execute("DELETE FROM task_types")
        conn.commit()
    resolver.invalidate()

    moved = service.move_task(task.id, status_id=statuses["todo"], order=0)

    assert moved.task_type.code == "feature"
    assert [t.code for t in resolver.list_types()] == ["feature", "bug", "docs", "chore"]


def test_default_type_is_idempotent():
    first = resolver.default_type()
    resolver.invalidate()
    second = resolver.default_type()

    assert first.id == second.id
    assert len(resolver.list_types()) == 4


def test_move_with_type_code(statuses, todo_column):
    moved = service.move_task(todo_column[0], status_id=statuses["done"], order=0, task_type="bug")
    assert moved.task_type.code == "bug"


def test_keep_type_uses_the_stored_type(statuses, todo_column):
    """The type is read under the move's own lock, not from an earlier read."""
    service.move_task(todo_column[0], status_id=statuses["todo"], order=0, task_type="bug")
    docs = resolver.get_type_by_code("docs")
    with closing(repository.get_connection()) as conn:
        conn.execute("UPDATE tasks SET type_id = ? WHERE id = ?", (docs.id, todo_column[0]))

    moved = service.move_task(
        todo_column[0], status_id=statuses["done"], order=0, task_type=service.KEEP_TYPE
    )

    assert moved.task_type.code == "docs"


# --- Validation ---


@pytest.mark.parametrize(
    "status_id, order",
    [
        (None, 0),
        (0, 0),
        (True, 0),
        ("2", 0),
        (2, None),
        (2, -1),
    ],
)
def test_invalid_inputs_rejected(todo_column, status_id, order):
    with pytest.raises(ValidationError):
        service.move_task(todo_column[0], status_id=status_id, order=order)


def test_unknown_status_rejected_without_changes(statuses, todo_column):
    with pytest.raises(ValidationError):
        service.move_task(todo_column[2], status_id=999, order=0)

    assert column(statuses["todo"]) == todo_column


def test_unknown_type_rejected_without_changes(statuses, todo_column):
    with pytest.raises(ValidationError) as excinfo:
        service.move_task(todo_column[2], status_id=statuses["done"], order=0, task_type="epic")

    assert "feature" in excinfo.value.details["valid"]
    assert column(statuses["todo"]) == todo_column
    assert column(statuses["done"]) == []


def test_missing_task():
    with pytest.raises(TaskNotFoundError) as excinfo:
        service.move_task(9999, status_id=1, order=0)

    assert excinfo.value.details == {"task_id": 9999, "status_id": 1, "order": 0}


@pytest.mark.parametrize(
    "field",
    ["status_id", "order", "previous_status_id"],
)
def test_ids_beyond_64_bits_rejected(statuses, todo_column, field):
    kwargs = {"status_id": statuses["done"], "order": 0, field: 2**70}

    with pytest.raises(ValidationError):
        service.move_task(todo_column[0], **kwargs)

    assert column(statuses["todo"]) == todo_column


def test_task_id_beyond_64_bits_rejected(statuses):
    with pytest.raises(ValidationError):
        service.move_task(2**70, status_id=statuses["todo"], order=0)


def test_stale_previous_status_is_ignored(statuses, todo_column):
    """The stored status wins over what the caller thought it was."""
    moved = service.move_task(
        todo_column[1],
        status_id=statuses["done"],
        order=0,
        previous_status_id=statuses["blocked"],
    )

    assert moved.status_id == statuses["done"]
    assert column(statuses["todo"]) == [todo_column[0], todo_column[2]]


# --- Atomicity ---


def test_store_failure_rolls_back_the_whole_move(monkeypatch, statuses, todo_column):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository, "update_task_position", broken)

    with pytest.raises(InternalError) as excinfo:
        service.move_task(todo_column[0], status_id=statuses["done"], order=0)

    # close_gap already ran inside the transaction; it must be undone
    assert excinfo.value.details["task_id"] == todo_column[0]
    assert excinfo.value.details["step"] == "move"
    assert column(statuses["todo"]) == todo_column


def test_vanished_row_rolls_back(monkeypatch, statuses, todo_column):
    monkeypatch.setattr(repository, "update_task_position", lambda *args, **kwargs: 0)

    with pytest.raises(TaskNotFoundError):
        service.move_task(todo_column[0], status_id=statuses["done"], order=0)

    assert column(statuses["todo"]) == todo_column
    assert column(statuses["done"]) == []


def test_noop_move_changes_nothing(statuses, todo_column):
    before = {t.id: t.order_index for t in service.list_tasks()}

    moved = service.move_task(todo_column[1], status_id=statuses["todo"], order=1)

    assert moved.order_index == 1
    assert {t.id: t.order_index for t in service.list_tasks()} == before


# --- Clamping and partitions ---


def test_order_past_end_of_other_column_goes_to_tail(statuses, todo_column):
    d = service.create_task("D", status_id=statuses["done"]).id

    moved = service.move_task(todo_column[0], status_id=statuses["done"], order=50)

    assert moved.order_index == 1
    assert column(statuses["done"]) == [d, todo_column[0]]


def test_order_past_end_of_same_column_goes_to_tail(statuses, todo_column):
    a, b, c = todo_column

    moved = service.move_task(a, status_id=statuses["todo"], order=50)

    assert moved.order_index == 2
    assert column(statuses["todo"]) == [b, c, a]


def test_move_into_empty_column(statuses, todo_column):
    moved = service.move_task(todo_column[1], status_id=statuses["blocked"], order=3)

    assert moved.order_index == 0
    assert column(statuses["blocked"]) == [todo_column[1]]


def test_board_is_preserved_and_partitions_are_separate(statuses):
    unscoped = [service.create_task(f"U{i}", status_id=statuses["todo"]).id for i in range(2)]
    boarded = [
        service.create_task(f"B{i}", status_id=statuses["todo"], board_id=3).id for i in range(2)
    ]

    moved = service.move_task(boarded[1], status_id=statuses["todo"], order=0)

    assert moved.board_id == 3
    assert column(statuses["todo"], board_id=3) == [boarded[1], boarded[0]]
    assert column(statuses["todo"]) == unscoped

    service.move_task(boarded[0], status_id=statuses["done"], order=0)
    assert column(statuses["done"], board_id=3) == [boarded[0]]
    assert column(statuses["done"]) == []


def test_random_sequence_keeps_every_column_dense(statuses):
    codes = ["backlog", "todo", "in_progress", "done"]
    ids = [service.create_task(f"T{i}", status_id=statuses[codes[i % 4]]).id for i in range(12)]

    plan = [(0, "done", 0), (5, "done", 1), (7, "todo", 9), (2, "backlog", 0),
            (11, "in_progress", 2), (0, "done", 2), (3, "todo", 0), (9, "done", 0)]
    for index, code, order in plan:
        service.move_task(ids[index], status_id=statuses[code], order=order)

    for code in codes:
        column(statuses[code])
    assert sorted(t.id for t in service.list_tasks()) == ids


# --- Concurrency and deadlines ---


def test_concurrent_moves_keep_columns_dense(monkeypatch, statuses):
    monkeypatch.setattr(repository, "MAX_RETRIES", 20)

    ids = [service.create_task(f"T{i}", status_id=statuses["todo"]).id for i in range(6)]
    targets = [statuses["todo"], statuses["in_progress"]]
    errors = []

    def mover(task_id, seed):
        try:
            for step in range(8):
                service.move_task(
                    task_id,
                    status_id=targets[(seed + step) % 2],
                    order=(seed * 3 + step) % 4,
                )
        except Exception as exc:  # collected for the main thread
            errors.append(exc)

    threads = [threading.Thread(target=mover, args=(tid, n)) for n, tid in enumerate(ids)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    todo, in_progress = column(statuses["todo"]), column(statuses["in_progress"])
    assert sorted(todo + in_progress) == ids


def test_deadline_exceeded_rolls_back(monkeypatch, statuses, todo_column):
    emitter.flush()
    monkeypatch.setattr(repository, "TX_DEADLINE", 0.0)
    monkeypatch.setattr(repository, "PROGRESS_STEPS", 1)

    with pytest.raises(TransactionTimeoutError):
        service.move_task(todo_column[2], status_id=statuses["done"], order=0)

    monkeypatch.setattr(repository, "TX_DEADLINE", 10.0)
    assert column(statuses["todo"]) == todo_column
    assert column(statuses["done"]) == []


# --- Audit ---


def test_move_records_history_and_audit(statuses, todo_column):
    service.move_task(todo_column[0], status_id=statuses["done"], order=0, comment="shipped")
    service.move_task(todo_column[0], status_id=statuses["done"], order=0)
    assert emitter.flush()

    history = list_status_history(todo_column[0])
    assert len(history) == 1
    assert history[0].from_status_id == statuses["todo"]
    assert history[0].to_status_id == statuses["done"]
    assert history[0].comment == "shipped"

    moves = [e for e in list_audit_entries(todo_column[0]) if e.action == "task:moved"]
    assert len(moves) == 2
    assert moves[0].details["new_order"] == 0
    assert moves[0].details["from_status"] == statuses["todo"]


def test_audit_failure_never_fails_a_move(monkeypatch, statuses, todo_column):
    def boom(job):
        raise RuntimeError("audit store unavailable")

    emitter.flush()
    monkeypatch.setattr(emitter, "_write", boom)

    moved = service.move_task(todo_column[0], status_id=statuses["done"], order=0)

    assert emitter.flush()
    assert moved.status_id == statuses["done"]
    assert [e.action for e in list_audit_entries(todo_column[0])] == ["task:created"]


def test_audit_can_be_disabled(monkeypatch, statuses, todo_column):
    emitter.flush()
    monkeypatch.setattr(emitter, "enabled", False)

    service.move_task(todo_column[0], status_id=statuses["done"], order=0)

    assert emitter.flush()
    assert list_status_history(todo_column[0]) == []


def test_partitions_check_out_after_moves(statuses, todo_column):
    service.move_task(todo_column[2], status_id=statuses["todo"], order=0)
    with repository.transaction() as conn:
        assert ordering.check_partition(conn, None, statuses["todo"])
