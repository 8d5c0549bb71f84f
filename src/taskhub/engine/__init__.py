"""TaskHub engine - transactional task operations."""

from taskhub.engine.core import TaskEngine, is_transient_store_error
from taskhub.engine.errors import (
    ConcurrentModification,
    TaskHubError,
    TaskNotFound,
    ValidationError,
)

__all__ = [
    "ConcurrentModification",
    "TaskEngine",
    "TaskHubError",
    "TaskNotFound",
    "ValidationError",
    "is_transient_store_error",
]
