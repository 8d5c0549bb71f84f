"""
Task model tests: partial updates, overdue rule, timezone handling.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from taskhub.models import Task, TaskCreate, TaskFilter, TaskPatch, TaskStatus
from taskhub.utils.time import ensure_utc, utc_now


def make_task(**fields):
    now = utc_now()
    fields.setdefault("id", uuid4())
    fields.setdefault("title", "Write report")
    fields.setdefault("user_id", uuid4())
    fields.setdefault("created_at", now)
    fields.setdefault("updated_at", now)
    return Task(**fields)


def test_patch_only_reports_supplied_fields():
    patch = TaskPatch(status="COMPLETED", description=None)

    assert patch.changes() == {"status": TaskStatus.COMPLETED, "description": None}


@pytest.mark.parametrize("field", ["title", "status", "priority"])
def test_patch_rejects_null_for_required_columns(field):
    with pytest.raises(ValidationError):
        TaskPatch(**{field: None})


def test_patch_rejects_unknown_fields():
    with pytest.raises(ValidationError):
        TaskPatch(owner="someone")


def test_overdue_rule():
    now = utc_now()
    past = now - timedelta(hours=1)

    assert make_task(due_date=past).is_overdue(now) is True
    assert make_task(due_date=past, status=TaskStatus.IN_PROGRESS).is_overdue(now) is True
    assert make_task(due_date=past, status=TaskStatus.COMPLETED).is_overdue(now) is False
    assert make_task(due_date=now + timedelta(hours=1)).is_overdue(now) is False
    assert make_task(due_date=now).is_overdue(now) is False
    assert make_task().is_overdue(now) is False


def test_status_parse():
    assert TaskStatus.parse("IN_PROGRESS") is TaskStatus.IN_PROGRESS
    assert TaskStatus.parse(TaskStatus.PENDING) is TaskStatus.PENDING
    with pytest.raises(ValueError):
        TaskStatus.parse("DONE")


def test_utc_helpers():
    assert utc_now().tzinfo is not None

    naive = datetime(2024, 1, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    offset = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(offset) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def test_inputs_normalize_datetimes_to_utc():
    offset = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=-5)))
    expected = datetime(2024, 1, 1, 14, 0, tzinfo=timezone.utc)

    created = TaskCreate(title="Call back", user_id=uuid4(), due_date=offset)
    patched = TaskPatch(due_date=offset.isoformat())
    window = TaskFilter(created_from=offset, created_to=offset)

    for value in (created.due_date, patched.due_date, window.created_from, window.created_to):
        assert value == expected
        assert value.utcoffset() == timedelta(0)

    assert TaskPatch(due_date=None).changes() == {"due_date": None}
