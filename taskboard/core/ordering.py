"""
FILE: taskboard/core/ordering.py
PURPOSE: Keep order_index dense (0..n-1) within each (board, status) partition
EXPORTS:
  - partition_size(conn, board_id, status_id) -> int
  - next_order(conn, board_id, status_id) -> int
  - clamp_order(order, size) -> int
  - close_gap(conn, board_id, status_id, index) -> int
  - open_slot(conn, board_id, status_id, index, exclude_id) -> int
  - shift_within(conn, board_id, status_id, old, new, exclude_id) -> int
  - check_partition(conn, board_id, status_id) -> bool
  - compact_partition(conn, board_id, status_id) -> int
DEPENDENCIES:
  - sqlite3 (stdlib)
  - loguru (logging)
NOTES:
  - Every function expects a connection inside a write transaction; the
    shifts are only correct against the snapshot that transaction holds
  - Shifts are single range UPDATEs touching only the rows that move
  - board_id is compared with IS so a NULL board forms its own partition
"""

import sqlite3
from typing import Optional

from loguru import logger


_PARTITION = "board_id IS ? AND status_id = ?"


def partition_size(conn: sqlite3.Connection, board_id: Optional[int], status_id: int) -> int:
    row = conn.execute(
        f"SELECT COUNT(*) AS n FROM tasks WHERE {_PARTITION}",
        (board_id, status_id),
    ).fetchone()
    return row["n"]


def next_order(conn: sqlite3.Connection, board_id: Optional[int], status_id: int) -> int:
    """Tail slot of a partition: MAX(order_index) + 1, or 0 when empty."""
    row = conn.execute(
        f"SELECT MAX(order_index) AS top FROM tasks WHERE {_PARTITION}",
        (board_id, status_id),
    ).fetchone()
    return 0 if row["top"] is None else row["top"] + 1


def clamp_order(order: int, size: int) -> int:
    """
    Clamp a requested slot to the partition tail.

    Args:
        order: Requested zero-based slot (already validated >= 0)
        size: Number of slots available (the tail index)

    Returns:
        min(order, size)
    """
    return min(order, max(size, 0))


def close_gap(
    conn: sqlite3.Connection,
    board_id: Optional[int],
    status_id: int,
    index: int,
) -> int:
    """
    Remove-at-index: pull every task after the vacated slot up by one.

    Returns:
        Number of rows shifted
    """
    cursor = conn.execute(
        f"""
        UPDATE tasks SET order_index = order_index - 1
        WHERE {_PARTITION} AND order_index > ?
        """,
        (board_id, status_id, index),
    )
    logger.debug(
        "Closed gap at {} in partition ({}, {}): {} row(s) shifted",
        index, board_id, status_id, cursor.rowcount,
    )
    return cursor.rowcount


def open_slot(
    conn: sqlite3.Connection,
    board_id: Optional[int],
    status_id: int,
    index: int,
    exclude_id: Optional[int] = None,
) -> int:
    """
    Insert-at-index: push every task at or after the slot down by one.

    The caller then writes its own task at index.

    Returns:
        Number of rows shifted
    """
    cursor = conn.execute(
        f"""
        UPDATE tasks SET order_index = order_index + 1
        WHERE {_PARTITION} AND order_index >= ? AND id IS NOT ?
        """,
        (board_id, status_id, index, exclude_id),
    )
    logger.debug(
        "Opened slot {} in partition ({}, {}): {} row(s) shifted",
        index, board_id, status_id, cursor.rowcount,
    )
    return cursor.rowcount


def shift_within(
    conn: sqlite3.Connection,
    board_id: Optional[int],
    status_id: int,
    old: int,
    new: int,
    exclude_id: Optional[int] = None,
) -> int:
    """
    Reorder inside one partition.

    Equivalent to close_gap(old) followed by open_slot(new), collapsed to the
    tasks strictly between the two positions:

    - moving up (new < old): slots [new, old) move down by one
    - moving down (new > old): slots (old, new] move up by one
    - new == old: nothing moves

    Returns:
        Number of rows shifted
    """
    if new == old:
        return 0

    if new < old:
        sql = f"""
            UPDATE tasks SET order_index = order_index + 1
            WHERE {_PARTITION} AND order_index >= ? AND order_index < ? AND id IS NOT ?
        """
        params = (board_id, status_id, new, old, exclude_id)
    else:
        sql = f"""
            UPDATE tasks SET order_index = order_index - 1
            WHERE {_PARTITION} AND order_index > ? AND order_index <= ? AND id IS NOT ?
        """
        params = (board_id, status_id, old, new, exclude_id)

    cursor = conn.execute(sql, params)
    logger.debug(
        "Shifted {} row(s) in partition ({}, {}) for {} -> {}",
        cursor.rowcount, board_id, status_id, old, new,
    )
    return cursor.rowcount


def check_partition(conn: sqlite3.Connection, board_id: Optional[int], status_id: int) -> bool:
    """True when the partition's indices are exactly 0..n-1."""
    rows = conn.execute(
        f"SELECT order_index FROM tasks WHERE {_PARTITION} ORDER BY order_index",
        (board_id, status_id),
    ).fetchall()
    return [row["order_index"] for row in rows] == list(range(len(rows)))


def compact_partition(conn: sqlite3.Connection, board_id: Optional[int], status_id: int) -> int:
    """
    Renumber a partition to 0..n-1, keeping its current relative order.

    Ties (duplicate indices left by older data) are broken by task ID.

    Returns:
        Number of rows whose index changed
    """
    rows = conn.execute(
        f"SELECT id, order_index FROM tasks WHERE {_PARTITION} ORDER BY order_index, id",
        (board_id, status_id),
    ).fetchall()

    changed = 0
    for position, row in enumerate(rows):
        if row["order_index"] != position:
            conn.execute(
                "UPDATE tasks SET order_index = ? WHERE id = ?",
                (position, row["id"]),
            )
            changed += 1
    return changed
