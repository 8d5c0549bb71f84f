"""
Overdue sweep tests.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from taskhub.models import JobName, TaskStatus
from taskhub.tasks import sweep
from taskhub.tasks.sweep import enqueue_overdue_tasks


def overdue_jobs(queue):
    return [job for job in queue.pending() if job.name == JobName.PROCESS_OVERDUE_TASK.value]


@pytest.mark.asyncio
async def test_enqueues_one_job_per_overdue_task(task_engine, queue, make_task, yesterday, tomorrow):
    late = await make_task(title="Late", due_date=yesterday)
    await make_task(title="Done", due_date=yesterday, status=TaskStatus.COMPLETED)
    await make_task(title="Future", due_date=tomorrow)

    count = await enqueue_overdue_tasks(task_engine, queue)

    assert count == 1
    [job] = overdue_jobs(queue)
    assert job.id == f"overdue:{late.id}"
    assert job.data == {"task_id": str(late.id)}


@pytest.mark.asyncio
async def test_nothing_overdue(task_engine, queue, make_task, tomorrow):
    await make_task(due_date=tomorrow)

    assert await enqueue_overdue_tasks(task_engine, queue) == 0
    assert queue.pending() == []


@pytest.mark.asyncio
async def test_repeat_sweep_does_not_duplicate(task_engine, queue, make_task, yesterday):
    await make_task(due_date=yesterday)

    assert await enqueue_overdue_tasks(task_engine, queue) == 1
    assert await enqueue_overdue_tasks(task_engine, queue) == 0
    assert len(overdue_jobs(queue)) == 1


@pytest.mark.asyncio
async def test_enqueue_failure_skips_task(task_engine, queue, make_task, yesterday):
    await make_task(title="First", due_date=yesterday)
    await make_task(title="Second", due_date=yesterday)
    real_enqueue = queue.enqueue
    calls = 0

    async def flaky_enqueue(*args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise ConnectionError("queue down")
        return await real_enqueue(*args, **kwargs)

    queue.enqueue = flaky_enqueue

    assert await enqueue_overdue_tasks(task_engine, queue) == 1
    assert len(overdue_jobs(queue)) == 1


@pytest.mark.asyncio
async def test_sweep_loop_runs_and_stops(task_engine, queue, monkeypatch):
    monkeypatch.setattr(sweep.settings, "overdue_sweep_interval_seconds", 3600)
    monkeypatch.setattr(sweep, "get_task_queue", lambda: queue)
    swept = asyncio.Event()
    fake_sweep = AsyncMock(side_effect=lambda engine, q: swept.set() or 0)
    monkeypatch.setattr(sweep, "enqueue_overdue_tasks", fake_sweep)

    await sweep.start_overdue_sweep(task_engine)
    await asyncio.wait_for(swept.wait(), timeout=1)
    await sweep.stop_overdue_sweep()

    fake_sweep.assert_awaited_once_with(task_engine, queue)
    assert not sweep._sweep.running
