"""TaskHub engine errors."""


class TaskHubError(Exception):
    """Base error for TaskHub operations."""

    def __init__(self, message: str, code: str = "TASKHUB_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class TaskNotFound(TaskHubError):
    """Task does not exist, or a bulk operation matched no rows."""

    def __init__(self, task_id: str = "", message: str | None = None):
        super().__init__(message or f"Task not found: {task_id}", "TASK_NOT_FOUND")
        self.task_id = task_id


class ValidationError(TaskHubError):
    """Malformed input, rejected before any transaction opens."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, "VALIDATION_ERROR")
        self.field = field


class ConcurrentModification(TaskHubError):
    """Task was changed by another writer between read and write."""

    def __init__(self, task_id: str):
        super().__init__(
            f"Task {task_id} was modified concurrently, reload and retry",
            "CONCURRENT_MODIFICATION",
        )
        self.task_id = task_id
