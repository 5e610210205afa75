"""
Tests for the order invariant helpers.

Every helper runs inside a write transaction against rows inserted
directly, so the shifts are checked without going through move_task().
"""

from taskboard.core import ordering, repository
from taskboard.core.reference import resolver


def _seed(conn, order_indices, board_id=None, status_id=None):
    """Insert raw task rows with the given order indices, return their IDs."""
    status = status_id or resolver.default_status(conn).id
    priority = resolver.default_priority(conn).id
    task_type = resolver.default_type(conn).id
    return [
        repository.insert_task(
            conn,
            title=f"Task {i}",
            status_id=status,
            priority_id=priority,
            type_id=task_type,
            order_index=order_index,
            board_id=board_id,
        )
        for i, order_index in enumerate(order_indices)
    ]


def _column(conn, board_id, status_id):
    rows = conn.execute(
        "SELECT id, order_index FROM tasks WHERE board_id IS ? AND status_id = ? "
        "ORDER BY order_index, id",
        (board_id, status_id),
    ).fetchall()
    return [(row["id"], row["order_index"]) for row in rows]


def test_next_order_empty_and_tail():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        assert ordering.next_order(conn, None, status) == 0

        _seed(conn, [0, 1, 2])
        assert ordering.next_order(conn, None, status) == 3
        assert ordering.partition_size(conn, None, status) == 3


def test_clamp_order():
    assert ordering.clamp_order(0, 0) == 0
    assert ordering.clamp_order(2, 5) == 2
    assert ordering.clamp_order(99, 3) == 3
    assert ordering.clamp_order(4, -1) == 0


def test_close_gap_pulls_up_following_tasks():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        a, b, c, d = _seed(conn, [0, 1, 2, 3])

        conn.execute("DELETE FROM tasks WHERE id = ?", (b,))
        shifted = ordering.close_gap(conn, None, status, 1)

        assert shifted == 2
        assert _column(conn, None, status) == [(a, 0), (c, 1), (d, 2)]
        assert ordering.check_partition(conn, None, status)


def test_open_slot_pushes_down_and_skips_excluded():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        a, b, c = _seed(conn, [0, 1, 2])

        shifted = ordering.open_slot(conn, None, status, 1, exclude_id=c)

        assert shifted == 1
        assert _column(conn, None, status) == [(a, 0), (b, 2), (c, 2)]


def test_shift_within_moving_up():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        a, b, c, d, e = _seed(conn, [0, 1, 2, 3, 4])

        # e: 4 -> 1, so b, c, d slide down
        shifted = ordering.shift_within(conn, None, status, 4, 1, exclude_id=e)
        conn.execute("UPDATE tasks SET order_index = 1 WHERE id = ?", (e,))

        assert shifted == 3
        assert [tid for tid, _ in _column(conn, None, status)] == [a, e, b, c, d]
        assert ordering.check_partition(conn, None, status)


def test_shift_within_moving_down():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        a, b, c, d, e = _seed(conn, [0, 1, 2, 3, 4])

        # a: 0 -> 3, so b, c, d slide up; e is untouched
        shifted = ordering.shift_within(conn, None, status, 0, 3, exclude_id=a)
        conn.execute("UPDATE tasks SET order_index = 3 WHERE id = ?", (a,))

        assert shifted == 3
        assert _column(conn, None, status) == [(b, 0), (c, 1), (d, 2), (a, 3), (e, 4)]


def test_shift_within_same_slot_touches_nothing():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        a, b = _seed(conn, [0, 1])

        assert ordering.shift_within(conn, None, status, 1, 1, exclude_id=b) == 0
        assert _column(conn, None, status) == [(a, 0), (b, 1)]


def test_null_board_is_its_own_partition():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        unscoped = _seed(conn, [0, 1])
        boarded = _seed(conn, [0], board_id=7)

        ordering.close_gap(conn, None, status, 0)
        conn.execute("DELETE FROM tasks WHERE id = ?", (unscoped[0],))

        assert _column(conn, None, status) == [(unscoped[1], 0)]
        assert _column(conn, 7, status) == [(boarded[0], 0)]
        assert ordering.next_order(conn, 7, status) == 1


def test_check_and_compact_partition():
    with repository.transaction() as conn:
        status = resolver.default_status(conn).id
        a, b, c, d = _seed(conn, [0, 3, 3, 7])

        assert not ordering.check_partition(conn, None, status)

        changed = ordering.compact_partition(conn, None, status)

        assert changed == 3
        assert _column(conn, None, status) == [(a, 0), (b, 1), (c, 2), (d, 3)]
        assert ordering.check_partition(conn, None, status)
        assert ordering.compact_partition(conn, None, status) == 0
