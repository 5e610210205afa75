"""
FILE: taskboard/core/models.py
PURPOSE: Domain models for tasks, reference data, dependencies and history
EXPORTS:
  - ReferenceEntity, StatusEntity, PriorityEntity, TypeEntity (dataclasses)
  - AcceptanceCriterion, TaskContent (dataclasses)
  - Task (dataclass)
  - Dependency, StatusChange, AuditEntry (dataclasses)
DEPENDENCIES:
  - dataclasses (stdlib)
  - json (stdlib)
  - uuid (stdlib)
  - typing (stdlib)
NOTES:
  - All row-backed models have from_row() for SQLite row conversion
  - All models have to_dict()/to_json() for serialization
  - Timestamps stored as ISO-8601 strings
  - Task.content is stored as a JSON text column
"""

from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional
import json
import uuid


@dataclass
class ReferenceEntity:
    """A row of a small lookup table (status, priority or type)."""

    id: int
    code: str
    name: str
    description: Optional[str] = None
    display_order: int = 0

    @classmethod
    def from_row(cls, row) -> "ReferenceEntity":
        """Convert SQLite row to entity."""
        return cls(
            id=row["id"],
            code=row["code"],
            name=row["name"],
            description=row["description"],
            display_order=row["display_order"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class StatusEntity(ReferenceEntity):
    """A status column (backlog, todo, in progress, ...)."""


@dataclass
class PriorityEntity(ReferenceEntity):
    """A task priority."""


@dataclass
class TypeEntity(ReferenceEntity):
    """A task classifier (feature, bug, docs, chore)."""


@dataclass
class AcceptanceCriterion:
    """One checklist item inside a task's content block."""

    description: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    completed: bool = False
    completed_at: Optional[str] = None
    order: int = 0
    category: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AcceptanceCriterion":
        return cls(
            description=data.get("description", ""),
            id=data.get("id") or uuid.uuid4().hex,
            completed=bool(data.get("completed", False)),
            completed_at=data.get("completed_at"),
            order=int(data.get("order", 0)),
            category=data.get("category"),
            notes=data.get("notes"),
        )


@dataclass
class TaskContent:
    """Free-form content block: description, criteria, attachments."""

    description: str = ""
    acceptance_criteria: List[AcceptanceCriterion] = field(default_factory=list)
    implementation_details: Optional[str] = None
    notes: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    due_date: Optional[str] = None
    assignee: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TaskContent":
        """Build content from a decoded JSON object, tolerating missing keys."""
        if not data:
            return cls()
        criteria = [
            AcceptanceCriterion.from_dict(item)
            for item in data.get("acceptance_criteria") or []
            if isinstance(item, dict)
        ]
        return cls(
            description=data.get("description") or "",
            acceptance_criteria=criteria,
            implementation_details=data.get("implementation_details"),
            notes=data.get("notes"),
            attachments=list(data.get("attachments") or []),
            due_date=data.get("due_date"),
            assignee=data.get("assignee"),
        )

    @classmethod
    def from_text(cls, text: Optional[str]) -> "TaskContent":
        if not text:
            return cls()
        try:
            data = json.loads(text)
        except ValueError:
            # Legacy rows stored plain text
            return cls(description=text)
        return cls.from_dict(data if isinstance(data, dict) else None)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_text(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class Task:
    """A work item placed at order_index within its (board, status) column."""

    id: int
    title: str
    status_id: int
    priority_id: int
    type_id: int
    order_index: int = 0
    board_id: Optional[int] = None
    description: Optional[str] = None
    content: TaskContent = field(default_factory=TaskContent)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    # Resolved reference rows, attached by the service layer
    status: Optional[StatusEntity] = None
    priority: Optional[PriorityEntity] = None
    task_type: Optional[TypeEntity] = None

    @classmethod
    def from_row(cls, row) -> "Task":
        """Convert SQLite row to Task object."""
        return cls(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status_id=row["status_id"],
            priority_id=row["priority_id"],
            type_id=row["type_id"],
            board_id=row["board_id"],
            order_index=row["order_index"],
            content=TaskContent.from_text(row["content"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @property
    def partition(self) -> tuple:
        return (self.board_id, self.status_id)

    @property
    def progress(self) -> Dict[str, int]:
        """Acceptance criteria completion summary."""
        total = len(self.content.acceptance_criteria)
        completed = sum(1 for c in self.content.acceptance_criteria if c.completed)
        percentage = int(completed * 100 / total) if total else 0
        return {"total": total, "completed": completed, "percentage": percentage}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "board_id": self.board_id,
            "status_id": self.status_id,
            "priority_id": self.priority_id,
            "type_id": self.type_id,
            "order": self.order_index,
            "status": self.status.name if self.status else None,
            "status_code": self.status.code if self.status else None,
            "priority": self.priority.name if self.priority else None,
            "type": self.task_type.code if self.task_type else None,
            "content": self.content.to_dict(),
            "progress": self.progress,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def to_json(self) -> str:
        """Serialize task to JSON string."""
        return json.dumps(self.to_dict(), indent=2)


@dataclass
class Dependency:
    """Directed edge: task_id depends on depends_on_id."""

    task_id: int
    depends_on_id: int
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "Dependency":
        return cls(
            task_id=row["task_id"],
            depends_on_id=row["depends_on_id"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StatusChange:
    """Immutable record of a task changing status."""

    id: int
    task_id: int
    from_status_id: Optional[int]
    to_status_id: int
    order_index: int
    comment: Optional[str] = None
    actor: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "StatusChange":
        return cls(
            id=row["id"],
            task_id=row["task_id"],
            from_status_id=row["from_status_id"],
            to_status_id=row["to_status_id"],
            order_index=row["order_index"],
            comment=row["comment"],
            actor=row["actor"],
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AuditEntry:
    """Append-only lifecycle event (created, moved, updated, deleted)."""

    id: str
    action: str
    task_id: int
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "AuditEntry":
        try:
            details = json.loads(row["details"]) if row["details"] else {}
        except ValueError:
            details = {"raw": row["details"]}
        return cls(
            id=row["id"],
            action=row["action"],
            task_id=row["task_id"],
            details=details,
            created_at=row["created_at"],
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
