"""TaskHub queue worker."""

from taskhub.worker.processor import TaskProcessor, start_worker, stop_worker

__all__ = ["TaskProcessor", "start_worker", "stop_worker"]
