"""Task model and typed inputs for task mutations and queries."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskhub.models.enums import TaskPriority, TaskStatus
from taskhub.utils.time import ensure_utc, utc_now


class Task(BaseModel):
    """Core task entity."""

    # Identity
    id: UUID

    # Content
    title: str
    description: Optional[str] = None

    # Status and ordering
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None

    # Ownership
    user_id: UUID

    # Optimistic concurrency counter
    version: int = 1

    # Timestamps
    created_at: datetime
    updated_at: datetime

    def is_overdue(self, now: datetime | None = None) -> bool:
        """Check if the task is past due and not completed."""
        if self.due_date is None or self.status == TaskStatus.COMPLETED:
            return False
        return ensure_utc(self.due_date) < (now or utc_now())


class TaskCreate(BaseModel):
    """Input for creating a task."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    user_id: UUID

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else v


class TaskPatch(BaseModel):
    """Partial update for a task. Only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None

    @field_validator("title", "status", "priority")
    @classmethod
    def reject_explicit_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else v

    def changes(self) -> dict[str, Any]:
        """Return the fields the caller actually supplied."""
        return self.model_dump(exclude_unset=True)


class TaskFilter(BaseModel):
    """Typed list filter.

    Operators: ``status``/``priority``/``user_id`` are equality matches,
    ``created_from``/``created_to`` form an inclusive range, and ``search``
    is a case-insensitive contains match on title and description.
    """

    user_id: Optional[UUID] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    search: Optional[str] = None

    @field_validator("created_from", "created_to")
    @classmethod
    def normalize_range(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are UTC; SQLite compares them as offset-less text
        return ensure_utc(v) if v is not None else v


class TaskStats(BaseModel):
    """Aggregate task counts."""

    total: int = 0
    completed: int = 0
    in_progress: int = 0
    pending: int = 0
    high_priority: int = 0


class StatusUpdateJob(BaseModel):
    """Queue payload emitted whenever a task's status changes."""

    task_id: UUID
    status: TaskStatus
