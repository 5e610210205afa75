"""
FILE: taskboard/core/audit.py
PURPOSE: Best-effort, off-thread recording of task lifecycle events
EXPORTS:
  - AuditEmitter (class)
  - emitter (process-wide instance)
  - list_audit_entries(task_id) -> List[AuditEntry]
  - list_status_history(task_id) -> List[StatusChange]
DEPENDENCIES:
  - queue, threading, uuid, json (stdlib)
  - loguru (logging)
  - taskboard.core.repository (transactions)
NOTES:
  - emit() only enqueues; a daemon worker thread performs the writes
  - Worker failures are logged and dropped, never surfaced to callers
  - Each job remembers the store it belongs to, so a job queued against
    one database is never written into another
  - flush() waits for the queue to drain (CLI exit, tests)
"""

import json
import queue
import threading
import uuid
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from . import repository
from .models import AuditEntry, StatusChange


@dataclass
class _Job:
    db_path: Path
    action: str
    task_id: int
    details: Dict[str, Any]
    created_at: str
    status_change: Optional[Dict[str, Any]] = None


class AuditEmitter:
    """Fire-and-forget writer for audit_logs and status_history."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._queue: "queue.Queue[Optional[_Job]]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        # Jobs queued but not yet written; guarded by _idle
        self._pending = 0
        self._idle = threading.Condition()

    def _ensure_worker(self) -> None:
        with self._start_lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._run, name="taskboard-audit", daemon=True
            )
            self._worker.start()

    def emit(
        self,
        action: str,
        task_id: int,
        details: Optional[Dict[str, Any]] = None,
        status_change: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Queue an audit entry (and optionally a status_history row).

        Never raises and never touches the store on the caller's thread.
        """
        if not self.enabled:
            return
        try:
            job = _Job(
                db_path=repository.DB_PATH,
                action=action,
                task_id=task_id,
                details=dict(details or {}),
                created_at=repository.now_iso(),
                status_change=status_change,
            )
            self._ensure_worker()
            with self._idle:
                self._queue.put_nowait(job)
                self._pending += 1
        except Exception:
            logger.exception("Failed to queue audit entry {} for task {}", action, task_id)

    def flush(self, timeout: float = 5.0) -> bool:
        """
        Wait until every queued entry has been written (or dropped).

        Returns:
            True if the queue drained before the timeout
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout)

    def close(self, timeout: float = 5.0) -> None:
        """Drain the queue and stop the worker."""
        if self._worker is None:
            return
        self.flush(timeout)
        self._queue.put(None)
        self._worker.join(timeout)
        self._worker = None

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            if job is None:
                return
            try:
                self._write(job)
            except Exception:
                logger.exception(
                    "Failed to write audit entry {} for task {}", job.action, job.task_id
                )
            finally:
                with self._idle:
                    self._pending -= 1
                    self._idle.notify_all()

    def _write(self, job: _Job) -> None:
        def work(conn) -> None:
            try:
                details = json.dumps(job.details)
            except (TypeError, ValueError):
                logger.warning("Unserializable audit payload for task {}", job.task_id)
                details = "{}"

            conn.execute(
                """
                INSERT INTO audit_logs (id, action, task_id, details, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (uuid.uuid4().hex, job.action, job.task_id, details, job.created_at),
            )

            change = job.status_change
            if change is not None:
                conn.execute(
                    """
                    INSERT INTO status_history (
                        task_id, from_status_id, to_status_id, order_index,
                        comment, actor, created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job.task_id,
                        change.get("from_status_id"),
                        change["to_status_id"],
                        change["order_index"],
                        change.get("comment"),
                        change.get("actor"),
                        job.created_at,
                    ),
                )

        repository.run_in_transaction(
            work,
            context={"task_id": job.task_id, "action": job.action, "step": "audit"},
            db_path=job.db_path,
        )


def list_audit_entries(task_id: int) -> List[AuditEntry]:
    """Audit entries for a task, oldest first."""
    with closing(repository.get_connection()) as conn:
        rows = conn.execute(
            "SELECT * FROM audit_logs WHERE task_id = ? ORDER BY created_at, rowid",
            (task_id,),
        ).fetchall()
    return [AuditEntry.from_row(row) for row in rows]


def list_status_history(task_id: int) -> List[StatusChange]:
    """Status transitions for a task, oldest first."""
    with closing(repository.get_connection()) as conn:
        rows = conn.execute(
            "SELECT * FROM status_history WHERE task_id = ? ORDER BY id",
            (task_id,),
        ).fetchall()
    return [StatusChange.from_row(row) for row in rows]


emitter = AuditEmitter()
