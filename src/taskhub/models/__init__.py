"""TaskHub data models."""

from taskhub.models.enums import JobName, Role, TaskPriority, TaskStatus
from taskhub.models.task import (
    StatusUpdateJob,
    Task,
    TaskCreate,
    TaskFilter,
    TaskPatch,
    TaskStats,
)
from taskhub.models.user import User

__all__ = [
    "JobName",
    "Role",
    "StatusUpdateJob",
    "Task",
    "TaskCreate",
    "TaskFilter",
    "TaskPatch",
    "TaskPriority",
    "TaskStats",
    "TaskStatus",
    "User",
]
