"""
FILE: taskboard/core/exceptions.py
PURPOSE: Custom exception classes for error handling
EXPORTS:
  - TaskboardError (base exception)
  - ValidationError / InvalidInputError
  - NotFoundError, TaskNotFoundError, StatusNotFoundError
  - ConflictError, DependentTasksError
  - InternalError, TransactionTimeoutError
  - ForbiddenError
DEPENDENCIES:
  - None (stdlib only)
NOTES:
  - All exceptions inherit from TaskboardError for easy catching
  - Every error carries a machine-readable kind plus a details dict
  - Service layer raises these, CLI and HTTP layers catch and display
"""

from typing import Any, Dict, Optional


class TaskboardError(Exception):
    """Base exception for all taskboard errors."""

    kind = "internal"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Render the error as a JSON-friendly payload."""
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(TaskboardError):
    """Input validation failed (missing field, unknown code, bad range)."""

    kind = "validation"


# Older name kept for callers that still catch it
InvalidInputError = ValidationError


class NotFoundError(TaskboardError):
    """A referenced row doesn't exist."""

    kind = "not_found"


class TaskNotFoundError(NotFoundError):
    """Task with given ID doesn't exist."""

    def __init__(self, task_id: int, **context: Any):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found", {"task_id": task_id, **context})


class StatusNotFoundError(NotFoundError):
    """Status with given ID doesn't exist."""

    def __init__(self, status_id: int):
        self.status_id = status_id
        super().__init__(f"Status {status_id} not found", {"status_id": status_id})


class ConflictError(TaskboardError):
    """The operation conflicts with the current state of the store."""

    kind = "conflict"


class DependentTasksError(ConflictError):
    """Task can't be deleted while other tasks depend on it."""

    def __init__(self, task_id: int, dependent_count: int):
        self.task_id = task_id
        self.dependent_count = dependent_count
        super().__init__(
            f"Cannot delete task {task_id}: {dependent_count} task(s) depend on it",
            {"task_id": task_id, "dependent_count": dependent_count},
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["dependent_count"] = self.dependent_count
        return payload


class InternalError(TaskboardError):
    """Store, transaction or commit failure."""

    kind = "internal"


class TransactionTimeoutError(InternalError):
    """Transaction ran past its deadline and was rolled back."""

    def __init__(self, deadline: float, **context: Any):
        self.deadline = deadline
        super().__init__(
            f"Transaction exceeded its {deadline:.2f}s deadline and was rolled back",
            {"deadline": deadline, **context},
        )


class ForbiddenError(TaskboardError):
    """The caller lacks the capability for this action."""

    kind = "forbidden"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Not allowed to {action}", {"action": action})
