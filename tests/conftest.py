"""
Pytest fixtures for TaskHub tests.
"""

import os
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine

# Ensure test config is set before importing taskhub modules.
os.environ.setdefault("TASKHUB_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("TASKHUB_ENV", "development")
os.environ.setdefault("TASKHUB_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TASKHUB_WORKER_ENABLED", "false")
os.environ.setdefault("TASKHUB_OVERDUE_SWEEP_ENABLED", "false")

from taskhub.db import base as db_base
from taskhub.db.base import Base, build_session_factory, transaction
from taskhub.db.repositories import UserRepository
import taskhub.db.tables  # noqa: F401
from taskhub.engine import TaskEngine, is_transient_store_error
from taskhub.models import TaskCreate
from taskhub.queue import InMemoryTaskQueue
from taskhub.utils.retry import RetryPolicy
from taskhub.utils.time import utc_now


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test, wired into taskhub.db.base."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskhub_test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    original_engine = db_base.engine
    original_factory = db_base.async_session_factory
    db_base.engine = engine
    db_base.async_session_factory = build_session_factory(engine)

    yield engine

    db_base.engine = original_engine
    db_base.async_session_factory = original_factory
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return db_base.async_session_factory


@pytest.fixture
def queue():
    """In-memory queue with instant redelivery."""
    return InMemoryTaskQueue(backoff_seconds=0)


@pytest.fixture
def fast_policy():
    """Retry policy without real backoff sleeps."""
    return RetryPolicy(attempts=3, initial_delay=0)


@pytest.fixture
def task_engine(session_factory, queue, fast_policy):
    return TaskEngine(
        session_factory=session_factory,
        queue=queue,
        enqueue_policy=fast_policy,
        read_policy=fast_policy.with_overrides(should_retry=is_transient_store_error),
    )


@pytest.fixture
async def user(session_factory):
    async with transaction(session_factory) as session:
        return await UserRepository(session).create(
            email="owner@example.com",
            name="Owner",
            password_hash="not-a-real-hash",
        )


@pytest.fixture
async def other_user(session_factory):
    async with transaction(session_factory) as session:
        return await UserRepository(session).create(
            email="someone.else@example.com",
            name="Someone Else",
            password_hash="not-a-real-hash",
        )


@pytest.fixture
def make_task(task_engine, queue, user):
    """Create a task through the engine and clear its creation notification."""

    async def _make(**fields):
        fields.setdefault("title", "Write report")
        fields.setdefault("user_id", user.id)
        task = await task_engine.create(TaskCreate(**fields))
        queue.clear()
        return task

    return _make


@pytest.fixture
def yesterday():
    return utc_now() - timedelta(days=1)


@pytest.fixture
def tomorrow():
    return utc_now() + timedelta(days=1)


@pytest.fixture
async def client(task_engine):
    """Async test client with the engine dependency overridden."""
    from taskhub.api.deps import get_engine
    from taskhub.main import app

    app.dependency_overrides[get_engine] = lambda: task_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
