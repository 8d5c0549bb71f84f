"""
Background loop lifecycle tests.
"""

import asyncio

import pytest

from taskhub.queue import InMemoryTaskQueue
from taskhub.utils.background import BackgroundLoop
from taskhub.worker import TaskProcessor, processor as worker_module


@pytest.mark.asyncio
async def test_stop_signals_the_loop():
    seen = []

    async def loop(shutdown_event):
        await shutdown_event.wait()
        seen.append("stopped")

    background = BackgroundLoop("test-loop")
    background.start(loop)
    await asyncio.sleep(0)
    assert background.running

    await background.stop(timeout=1)

    assert seen == ["stopped"]
    assert not background.running


@pytest.mark.asyncio
async def test_stop_cancels_after_grace_period():
    cancelled = asyncio.Event()

    async def stubborn(shutdown_event):
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    background = BackgroundLoop("stubborn-loop")
    background.start(stubborn)
    await asyncio.sleep(0)

    await background.stop(timeout=0.05)

    assert cancelled.is_set()
    assert not background.running


@pytest.mark.asyncio
async def test_grace_period_defaults_from_settings(monkeypatch):
    from taskhub.utils import background as background_module

    monkeypatch.setattr(background_module.settings, "shutdown_timeout_seconds", 0.05)

    async def stubborn(shutdown_event):
        await asyncio.sleep(3600)

    background = BackgroundLoop("stubborn-loop")
    background.start(stubborn)
    await asyncio.sleep(0)

    await asyncio.wait_for(background.stop(), timeout=1)

    assert not background.running


@pytest.mark.asyncio
async def test_stop_without_start_is_a_no_op():
    await BackgroundLoop("idle").stop()


@pytest.mark.asyncio
async def test_worker_start_and_stop(task_engine, monkeypatch):
    monkeypatch.setattr(worker_module.settings, "worker_poll_timeout_seconds", 0.05)
    processor = TaskProcessor(task_engine, queue=InMemoryTaskQueue(), concurrency=1)

    await worker_module.start_worker(processor)
    await asyncio.sleep(0)
    assert worker_module._worker.running

    await worker_module.stop_worker()
    assert not worker_module._worker.running
