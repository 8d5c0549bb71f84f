"""Queue consumer - applies status updates and overdue notifications."""

import asyncio
import logging
from typing import Any, Optional
from uuid import UUID

from taskhub.config import settings
from taskhub.engine import TaskEngine, TaskNotFound
from taskhub.models import JobName, TaskStatus
from taskhub.queue import Job, TaskQueue, get_task_queue
from taskhub.utils.background import BackgroundLoop

logger = logging.getLogger("taskhub.worker")

_worker = BackgroundLoop("queue-worker")


class TaskProcessor:
    """
    Job consumer with bounded concurrency.

    Jobs run independently of one another; the only ordering is the queue's
    own delivery order. A handler exception hands the job back to the queue
    for redelivery (or dead-lettering).
    """

    def __init__(
        self,
        engine: TaskEngine,
        queue: Optional[TaskQueue] = None,
        concurrency: Optional[int] = None,
    ):
        self.engine = engine
        self.queue = queue or engine.queue
        self.concurrency = concurrency or settings.worker_concurrency

    async def process(self, job: Job) -> dict[str, Any]:
        """Route a job to its handler and return the handler's result."""
        logger.debug(f"Processing job {job.id} of type {job.name}")

        try:
            if job.name == JobName.TASK_STATUS_UPDATE.value:
                return await self._handle_status_update(job)
            if job.name == JobName.PROCESS_OVERDUE_TASK.value:
                return await self._handle_overdue_task(job)
            if job.name == JobName.OVERDUE_TASKS_NOTIFICATION.value:
                return await self._handle_overdue_sweep(job)

            logger.warning(f"Unknown job type: {job.name}")
            return {"success": False, "error": "Unknown job type"}
        except Exception as e:
            logger.error(f"Error processing job {job.id}: {e}", exc_info=True)
            raise

    async def _handle_status_update(self, job: Job) -> dict[str, Any]:
        task_id = job.data.get("task_id")
        status = job.data.get("status")

        if not task_id or not status:
            return {"success": False, "error": "Missing required data"}

        try:
            task_uuid = UUID(str(task_id))
            new_status = TaskStatus.parse(status)
        except ValueError:
            return {"success": False, "error": f"Invalid job data: {task_id}/{status}"}

        task = await self.engine.apply_status_update_from_queue(task_uuid, new_status)
        return {
            "success": True,
            "task_id": str(task.id),
            "new_status": task.status.value,
        }

    async def _handle_overdue_task(self, job: Job) -> dict[str, Any]:
        task_id = job.data.get("task_id")
        if not task_id:
            return {"success": False, "error": "Missing required data"}

        try:
            task = await self.engine.get_task(UUID(str(task_id)))
        except (TaskNotFound, ValueError):
            # Deleted since the sweep saw it; nothing to notify
            return {"success": False, "error": f"Task not found: {task_id}"}

        notified = await self.engine.notify_overdue_task(task)
        return {"success": True, "task_id": str(task.id), "notified": notified}

    async def _handle_overdue_sweep(self, job: Job) -> dict[str, Any]:
        overdue = await self.engine.get_overdue_tasks()
        chunk_size = settings.overdue_notify_chunk_size

        for start in range(0, len(overdue), chunk_size):
            batch = overdue[start:start + chunk_size]
            logger.debug(f"Processing overdue batch: {start} to {start + len(batch)}")
            await asyncio.gather(*(self.engine.notify_overdue_task(task) for task in batch))

        return {"success": True, "processed": len(overdue)}

    async def handle(self, job: Job) -> Optional[dict[str, Any]]:
        """Process one delivery and settle it with the queue."""
        try:
            result = await self.process(job)
        except Exception as e:
            await self.queue.fail(job, e)
            return None

        await self.queue.ack(job)
        return result

    async def _run_one(self, job: Job, slots: asyncio.Semaphore) -> None:
        try:
            await self.handle(job)
        except Exception as e:
            logger.error(f"Failed to settle job {job.id}: {e}", exc_info=True)
        finally:
            slots.release()

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Consume until ``shutdown_event`` is set, then drain in-flight jobs."""
        slots = asyncio.Semaphore(self.concurrency)
        in_flight: set[asyncio.Task] = set()
        poll_timeout = settings.worker_poll_timeout_seconds

        logger.info(f"Worker started (concurrency: {self.concurrency})")

        while not shutdown_event.is_set():
            await slots.acquire()
            try:
                job = await self.queue.dequeue(timeout=poll_timeout)
            except Exception as e:
                slots.release()
                logger.error(f"Dequeue error: {e}", exc_info=True)
                await asyncio.sleep(poll_timeout)
                continue

            if job is None:
                slots.release()
                continue

            running = asyncio.create_task(self._run_one(job, slots))
            in_flight.add(running)
            running.add_done_callback(in_flight.discard)

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("Worker stopped")


async def start_worker(processor: Optional[TaskProcessor] = None) -> None:
    """Start the job consumer background task."""
    processor = processor or TaskProcessor(TaskEngine(queue=get_task_queue()))
    _worker.start(processor.run)


async def stop_worker() -> None:
    """Stop the job consumer, letting in-flight jobs finish."""
    await _worker.stop()
