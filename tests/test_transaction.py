"""
Scoped transaction tests: commit/rollback/close on every exit path.
"""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskhub.db.base import transaction


def fake_factory(session):
    return MagicMock(return_value=session)


def fake_session(**overrides):
    session = MagicMock()
    session.commit = overrides.get("commit", AsyncMock())
    session.rollback = overrides.get("rollback", AsyncMock())
    session.close = overrides.get("close", AsyncMock())
    return session


@pytest.mark.asyncio
async def test_commits_and_closes_on_success():
    session = fake_session()

    async with transaction(fake_factory(session)) as yielded:
        assert yielded is session

    session.commit.assert_awaited_once()
    session.rollback.assert_not_awaited()
    session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_rolls_back_and_closes_on_error():
    session = fake_session()

    with pytest.raises(ValueError, match="work failed"):
        async with transaction(fake_factory(session)):
            raise ValueError("work failed")

    session.commit.assert_not_awaited()
    session.rollback.assert_awaited_once()
    session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_commit_failure_rolls_back_and_propagates():
    session = fake_session(commit=AsyncMock(side_effect=RuntimeError("commit failed")))

    with pytest.raises(RuntimeError, match="commit failed"):
        async with transaction(fake_factory(session)):
            pass

    session.rollback.assert_awaited_once()
    session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_rollback_failure_keeps_original_error(caplog):
    session = fake_session(rollback=AsyncMock(side_effect=RuntimeError("rollback failed")))

    with caplog.at_level(logging.ERROR, logger="taskhub.db"):
        with pytest.raises(ValueError, match="work failed"):
            async with transaction(fake_factory(session)):
                raise ValueError("work failed")

    assert "Rollback failed" in caplog.text
    session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_commit_and_rollback_both_fail_still_closes():
    session = fake_session(
        commit=AsyncMock(side_effect=RuntimeError("commit failed")),
        rollback=AsyncMock(side_effect=RuntimeError("rollback failed")),
    )

    with pytest.raises(RuntimeError, match="commit failed"):
        async with transaction(fake_factory(session)):
            pass

    session.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_uses_module_session_factory_by_default(session_factory):
    async with transaction() as session:
        assert session.bind is not None
