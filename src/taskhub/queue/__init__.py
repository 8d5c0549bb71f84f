"""TaskHub job queue."""

from taskhub.queue.backends import (
    InMemoryTaskQueue,
    RedisTaskQueue,
    TaskQueue,
    close_task_queue,
    get_task_queue,
    init_task_queue,
)
from taskhub.queue.jobs import Job

__all__ = [
    "InMemoryTaskQueue",
    "Job",
    "RedisTaskQueue",
    "TaskQueue",
    "close_task_queue",
    "get_task_queue",
    "init_task_queue",
]
