"""Overdue task sweep background task."""

import asyncio
import logging
import random
from typing import Optional

from taskhub.config import settings
from taskhub.engine import TaskEngine
from taskhub.models import JobName
from taskhub.queue import TaskQueue, get_task_queue
from taskhub.utils.background import BackgroundLoop

logger = logging.getLogger("taskhub.sweep")

_sweep = BackgroundLoop("overdue-sweep")


async def enqueue_overdue_tasks(engine: TaskEngine, queue: TaskQueue) -> int:
    """
    Queue one ``process-overdue-task`` job per overdue task.

    Job ids are ``overdue:<task id>`` so a task still waiting from a previous
    sweep is not queued twice. A failed enqueue is logged and skipped.

    Returns the number of jobs actually enqueued.
    """
    overdue = await engine.get_overdue_tasks(limit=settings.overdue_sweep_batch_size)

    if not overdue:
        logger.debug("No overdue tasks found.")
        return 0

    logger.info(f"Found {len(overdue)} overdue tasks")
    logger.debug(f"Overdue task IDs: {', '.join(str(t.id) for t in overdue)}")

    enqueued = 0
    for task in overdue:
        try:
            added = await queue.enqueue(
                JobName.PROCESS_OVERDUE_TASK.value,
                {"task_id": str(task.id)},
                job_id=f"overdue:{task.id}",
            )
        except Exception as e:
            logger.error(f"Failed to enqueue overdue task {task.id}: {e}")
            continue
        if added:
            enqueued += 1

    return enqueued


async def overdue_sweep_loop(shutdown_event: asyncio.Event, engine: Optional[TaskEngine] = None):
    """
    Background loop that hands overdue tasks to the worker.

    The interval is jittered by ±20% so several instances don't sweep in
    lockstep. Errors are logged and the loop carries on.
    """
    base_interval = settings.overdue_sweep_interval_seconds
    logger.info(f"Overdue sweep loop started (base interval: {base_interval}s with ±20% jitter)")

    while not shutdown_event.is_set():
        try:
            queue = get_task_queue()
            count = await enqueue_overdue_tasks(engine or TaskEngine(queue=queue), queue)
            if count > 0:
                logger.info(f"Queued {count} overdue task notifications")
        except Exception as e:
            logger.error(f"Overdue sweep error: {e}", exc_info=True)

        jittered_interval = base_interval * random.uniform(0.8, 1.2)

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=jittered_interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Overdue sweep loop stopped")


async def start_overdue_sweep(engine: Optional[TaskEngine] = None):
    """Start the overdue sweep background task."""
    _sweep.start(lambda shutdown_event: overdue_sweep_loop(shutdown_event, engine))


async def stop_overdue_sweep():
    """Stop the overdue sweep background task."""
    await _sweep.stop()
