"""TaskHub enumerations."""

from enum import Enum


class TaskStatus(str, Enum):
    """Task lifecycle status.

    No transition graph is enforced: any status may move to any other.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @classmethod
    def parse(cls, value: "str | TaskStatus") -> "TaskStatus":
        """Coerce a raw value, raising ValueError for unknown statuses."""
        if isinstance(value, cls):
            return value
        return cls(value)

    @classmethod
    def open_states(cls) -> set["TaskStatus"]:
        """Statuses that still count towards overdue."""
        return {cls.PENDING, cls.IN_PROGRESS}


class TaskPriority(str, Enum):
    """Task priority."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Role(str, Enum):
    """User role."""

    USER = "USER"
    ADMIN = "ADMIN"


class JobName(str, Enum):
    """Queue job types understood by the worker."""

    TASK_STATUS_UPDATE = "task-status-update"
    PROCESS_OVERDUE_TASK = "process-overdue-task"
    # Enqueued by an external scheduler; the in-process sweep emits the per-task job
    OVERDUE_TASKS_NOTIFICATION = "overdue-tasks-notification"
