"""API request/response schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskhub.models import Task, TaskPriority, TaskStatus


class CreateTaskRequest(BaseModel):
    """Create task request. Owner comes from the X-User-ID header."""

    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task details")
    status: TaskStatus = Field(TaskStatus.PENDING, description="Initial status")
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="Task priority")
    due_date: Optional[datetime] = Field(None, description="Due date (UTC)")


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    due_date: Optional[datetime] = None
    user_id: UUID
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(**task.model_dump())


class ListTasksResponse(BaseModel):
    """Paginated task list."""

    tasks: list[TaskResponse]
    next_cursor: Optional[str] = None


class BatchAction(str, Enum):
    """Batch operations on tasks."""

    COMPLETE = "complete"
    DELETE = "delete"


class BatchTasksRequest(BaseModel):
    """Batch request."""

    task_ids: list[UUID] = Field(..., description="Tasks to act on")
    action: BatchAction


class BatchTasksResponse(BaseModel):
    """Batch result."""

    action: BatchAction
    affected: int
    tasks: list[TaskResponse] = Field(default_factory=list)


class TaskStatsResponse(BaseModel):
    """Task counts."""

    total: int
    completed: int
    in_progress: int
    pending: int
    high_priority: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
