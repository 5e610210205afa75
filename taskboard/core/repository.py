"""
FILE: taskboard/core/repository.py
PURPOSE: SQLite connection management, transactions and task/reference row access
EXPORTS:
  - configure(settings) -> None
  - get_connection() -> Connection
  - init_database(conn) -> None
  - transaction(deadline) -> context manager yielding Connection
  - run_in_transaction(work, context) -> result of work(conn)
  - fetch_task(conn, task_id) -> Task | None
  - insert_task(conn, ...) -> int
  - update_task_position(conn, task_id, status_id, order_index, type_id) -> int
  - update_task_fields(conn, task) -> int
  - delete_task_row(conn, task_id) -> int
  - get_task(task_id) -> Task | None
  - list_tasks(board_id, status_id, priority_id) -> List[Task]
  - list_partition(board_id, status_id, conn) -> List[Task]
  - fetch_reference_rows(conn, kind) -> List[ReferenceEntity]
  - seed_reference_rows(conn, kind, rows) -> int
  - insert_reference_row(conn, kind, ...) -> int
DEPENDENCIES:
  - sqlite3 (stdlib)
  - loguru (logging)
  - taskboard.config (Settings)
  - taskboard.core.models, taskboard.core.exceptions
NOTES:
  - Every call opens its own connection; connections never cross threads
  - Write transactions use BEGIN IMMEDIATE, which takes the database write
    lock up front and serializes concurrent writers
  - A progress handler interrupts statements once the deadline passes
  - Returns domain objects (Task, etc.), never raw dicts
"""

import sqlite3
import time
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

from loguru import logger

from ..config import Settings, load_settings
from .constants import KIND_PRIORITY, KIND_STATUS, KIND_TYPE
from .exceptions import InternalError, TaskboardError, TransactionTimeoutError, ValidationError
from .models import PriorityEntity, ReferenceEntity, StatusEntity, Task, TypeEntity


_settings = load_settings()

# Database file location; tests monkeypatch these
DB_PATH: Path = _settings.db_path
DB_DIR: Path = DB_PATH.parent

BUSY_TIMEOUT = _settings.busy_timeout
TX_DEADLINE = _settings.transaction_deadline
MAX_RETRIES = _settings.max_retries
RETRY_BACKOFF = 0.05  # seconds, multiplied by the attempt number
PROGRESS_STEPS = 1000  # VM instructions between deadline checks

# Schema file location (relative to this file)
SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Sentinel for "don't filter on board" (None means the unscoped board)
ANY_BOARD = object()

REFERENCE_TABLES: Dict[str, Tuple[str, type]] = {
    KIND_STATUS: ("task_statuses", StatusEntity),
    KIND_PRIORITY: ("task_priorities", PriorityEntity),
    KIND_TYPE: ("task_types", TypeEntity),
}

T = TypeVar("T")


def configure(settings: Settings) -> None:
    """Point the repository at the store described by settings."""
    global DB_PATH, DB_DIR, BUSY_TIMEOUT, TX_DEADLINE, MAX_RETRIES
    DB_PATH = settings.db_path
    DB_DIR = settings.db_path.parent
    BUSY_TIMEOUT = settings.busy_timeout
    TX_DEADLINE = settings.transaction_deadline
    MAX_RETRIES = settings.max_retries


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """
    Get SQLite connection to the taskboard database.

    Creates the database directory if it doesn't exist.
    Enables row_factory for dict-like row access.
    Enables foreign key constraints.
    Initializes database schema on first connection.

    Args:
        db_path: Explicit database file (defaults to DB_PATH)

    Notes:
        isolation_level=None leaves transaction control to transaction();
        plain reads run in autocommit mode.
    """
    if db_path is None:
        db_path = DB_PATH
        DB_DIR.mkdir(parents=True, exist_ok=True)
    else:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT, isolation_level=None)
    conn.row_factory = sqlite3.Row

    # Required for ON DELETE CASCADE on dependency edges
    conn.execute("PRAGMA foreign_keys = ON")

    init_database(conn)

    return conn


def init_database(conn: sqlite3.Connection) -> None:
    """
    Initialize database schema if tables don't exist.

    Safe to call multiple times (schema uses CREATE ... IF NOT EXISTS).
    """
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='tasks'"
    )
    if cursor.fetchone() is not None:
        return

    with open(SCHEMA_PATH, "r") as f:
        schema_sql = f.read()

    conn.execute("PRAGMA journal_mode = WAL")
    conn.executescript(schema_sql)
    logger.debug("Initialized taskboard schema")


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def _rollback(conn: sqlite3.Connection) -> None:
    # SQLite may already have rolled back on interrupt
    if conn.in_transaction:
        conn.execute("ROLLBACK")


@contextmanager
def transaction(
    deadline: Optional[float] = None,
    db_path: Optional[Path] = None,
) -> Iterator[sqlite3.Connection]:
    """
    Open a write transaction with a bounded deadline.

    Usage::

        with repository.transaction() as conn:
            conn.execute("UPDATE tasks SET ...")
            # committed on exit, rolled back on any exception

    Raises:
        TransactionTimeoutError: If a statement was interrupted by the deadline
        sqlite3.Error: Any other store failure, after rollback
    """
    limit = TX_DEADLINE if deadline is None else deadline
    expires_at = time.monotonic() + limit

    with closing(get_connection(db_path)) as conn:
        conn.set_progress_handler(
            lambda: 1 if time.monotonic() >= expires_at else 0, PROGRESS_STEPS
        )
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.OperationalError as exc:
            conn.set_progress_handler(None, 0)
            _rollback(conn)
            if "interrupted" in str(exc).lower() and time.monotonic() >= expires_at:
                raise TransactionTimeoutError(limit) from exc
            raise
        except BaseException:
            conn.set_progress_handler(None, 0)
            _rollback(conn)
            raise


def run_in_transaction(
    work: Callable[[sqlite3.Connection], T],
    context: Optional[Dict[str, Any]] = None,
    deadline: Optional[float] = None,
    db_path: Optional[Path] = None,
) -> T:
    """
    Run work(conn) inside a write transaction, retrying while the store is busy.

    Args:
        work: Unit of work; everything it does commits or rolls back together
        context: Identifiers logged and attached to errors (task id, target, step)
        deadline: Per-attempt deadline in seconds (defaults to TX_DEADLINE)
        db_path: Explicit database file (defaults to DB_PATH)

    Returns:
        Whatever work returns

    Raises:
        TaskboardError: Raised by work itself, after rollback
        InternalError: Store failure, lock contention beyond MAX_RETRIES,
            or deadline exceeded (TransactionTimeoutError)
    """
    context = dict(context or {})
    attempts = max(1, MAX_RETRIES)

    for attempt in range(1, attempts + 1):
        try:
            with transaction(deadline, db_path) as conn:
                return work(conn)
        except TaskboardError as exc:
            if isinstance(exc, InternalError):
                exc.details = {**context, **exc.details}
                logger.error("Transaction failed: {} ({})", exc, exc.details)
            raise
        except sqlite3.OperationalError as exc:
            if _is_busy(exc) and attempt < attempts:
                logger.warning(
                    "Store busy, retrying ({}/{}) {}", attempt, attempts, context
                )
                time.sleep(RETRY_BACKOFF * attempt)
                continue
            logger.error("Store error after {} attempt(s): {} ({})", attempt, exc, context)
            raise InternalError(f"Store error: {exc}", {**context, "attempts": attempt}) from exc
        except sqlite3.IntegrityError as exc:
            logger.error("Integrity error: {} ({})", exc, context)
            raise ValidationError(f"Integrity check failed: {exc}", context) from exc
        except sqlite3.Error as exc:
            logger.error("Store error: {} ({})", exc, context)
            raise InternalError(f"Store error: {exc}", context) from exc
        except OverflowError as exc:
            # sqlite3 refuses ints outside the 64-bit range before running SQL
            raise ValidationError("Integer value out of range", context) from exc

    # Loop always returns or raises
    raise InternalError("Transaction retries exhausted", context)


# --- Task Rows ---


def fetch_task(conn: sqlite3.Connection, task_id: int) -> Optional[Task]:
    """Fetch a task row on an existing connection (None if missing)."""
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    return Task.from_row(row) if row else None


def insert_task(
    conn: sqlite3.Connection,
    title: str,
    status_id: int,
    priority_id: int,
    type_id: int,
    order_index: int,
    board_id: Optional[int] = None,
    description: Optional[str] = None,
    content: Optional[str] = None,
) -> int:
    """
    Insert a task row and return its new ID.

    Note:
        The caller is responsible for choosing order_index inside the same
        transaction (see ordering.next_order).
    """
    now = now_iso()
    cursor = conn.execute(
        """
        INSERT INTO tasks (
            title, description, board_id, status_id, priority_id, type_id,
            order_index, content, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            title,
            description,
            board_id,
            status_id,
            priority_id,
            type_id,
            order_index,
            content,
            now,
            now,
        ),
    )
    return cursor.lastrowid


def update_task_position(
    conn: sqlite3.Connection,
    task_id: int,
    status_id: int,
    order_index: int,
    type_id: int,
) -> int:
    """Persist a task's new slot and classifier. Returns rows affected."""
    cursor = conn.execute(
        """
        UPDATE tasks
        SET status_id = ?,
            order_index = ?,
            type_id = ?,
            updated_at = ?
        WHERE id = ?
        """,
        (status_id, order_index, type_id, now_iso(), task_id),
    )
    return cursor.rowcount


def update_task_fields(conn: sqlite3.Connection, task: Task) -> int:
    """
    Update the free-form fields of a task.

    Note:
        status_id, order_index and type_id are owned by the move protocol
        and are deliberately not written here.
    """
    cursor = conn.execute(
        """
        UPDATE tasks
        SET title = ?,
            description = ?,
            priority_id = ?,
            content = ?,
            updated_at = ?
        WHERE id = ?
        """,
        (
            task.title,
            task.description,
            task.priority_id,
            task.content.to_text(),
            now_iso(),
            task.id,
        ),
    )
    return cursor.rowcount


def delete_task_row(conn: sqlite3.Connection, task_id: int) -> int:
    cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    return cursor.rowcount


def get_task(task_id: int) -> Optional[Task]:
    """
    Fetch single task by ID.

    Returns:
        Task object if found, None otherwise
    """
    with closing(get_connection()) as conn:
        return fetch_task(conn, task_id)


def list_tasks(
    board_id: Any = ANY_BOARD,
    status_id: Optional[int] = None,
    priority_id: Optional[int] = None,
) -> List[Task]:
    """
    List tasks, optionally restricted to a board, status and/or priority.

    Args:
        board_id: Board to filter on; None selects unscoped tasks,
            ANY_BOARD (default) selects every board
        status_id: Status column to filter on
        priority_id: Priority to filter on

    Returns:
        Tasks ordered by status display order, board, then order_index
    """
    query = """
        SELECT t.*
        FROM tasks t
        LEFT JOIN task_statuses s ON s.id = t.status_id
    """
    conditions = []
    params: List[Any] = []

    if board_id is not ANY_BOARD:
        conditions.append("t.board_id IS ?")
        params.append(board_id)

    if status_id is not None:
        conditions.append("t.status_id = ?")
        params.append(status_id)

    if priority_id is not None:
        conditions.append("t.priority_id = ?")
        params.append(priority_id)

    if conditions:
        query += " WHERE " + " AND ".join(conditions)

    query += " ORDER BY s.display_order, t.board_id, t.order_index, t.id"

    with closing(get_connection()) as conn:
        rows = conn.execute(query, params).fetchall()

    return [Task.from_row(row) for row in rows]


def list_partition(
    board_id: Optional[int],
    status_id: int,
    conn: Optional[sqlite3.Connection] = None,
) -> List[Task]:
    """List one (board, status) column in order."""
    query = """
        SELECT * FROM tasks
        WHERE board_id IS ? AND status_id = ?
        ORDER BY order_index, id
    """
    if conn is not None:
        rows = conn.execute(query, (board_id, status_id)).fetchall()
    else:
        with closing(get_connection()) as own:
            rows = own.execute(query, (board_id, status_id)).fetchall()

    return [Task.from_row(row) for row in rows]


# --- Reference Rows ---


def fetch_reference_rows(conn: sqlite3.Connection, kind: str) -> List[ReferenceEntity]:
    """Fetch every row of a lookup table, ordered by display_order."""
    table, entity = REFERENCE_TABLES[kind]
    rows = conn.execute(
        f"SELECT * FROM {table} ORDER BY display_order, id"
    ).fetchall()
    return [entity.from_row(row) for row in rows]


def seed_reference_rows(
    conn: sqlite3.Connection,
    kind: str,
    rows: Tuple[Tuple[str, str, str], ...],
) -> int:
    """
    Insert the canonical rows of a lookup table.

    Returns:
        Number of rows actually inserted

    Note:
        ON CONFLICT(code) DO NOTHING makes concurrent first-callers safe:
        the unique code is the serialization point, later seeders no-op.
    """
    table, _ = REFERENCE_TABLES[kind]
    inserted = 0
    for position, (code, name, description) in enumerate(rows):
        cursor = conn.execute(
            f"""
            INSERT INTO {table} (code, name, description, display_order)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(code) DO NOTHING
            """,
            (code, name, description, position),
        )
        inserted += cursor.rowcount
    return inserted


def insert_reference_row(
    conn: sqlite3.Connection,
    kind: str,
    code: str,
    name: str,
    description: Optional[str] = None,
    display_order: Optional[int] = None,
) -> int:
    """
    Insert one lookup row and return its ID.

    Raises:
        sqlite3.IntegrityError: If code already exists
    """
    table, _ = REFERENCE_TABLES[kind]
    if display_order is None:
        row = conn.execute(
            f"SELECT COALESCE(MAX(display_order) + 1, 0) AS next FROM {table}"
        ).fetchone()
        display_order = row["next"]

    cursor = conn.execute(
        f"INSERT INTO {table} (code, name, description, display_order) VALUES (?, ?, ?, ?)",
        (code, name, description, display_order),
    )
    return cursor.lastrowid
