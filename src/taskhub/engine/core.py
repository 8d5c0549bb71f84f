"""TaskHub core engine - transactional task mutations and status notifications."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from taskhub.config import settings
from taskhub.db.base import transaction
from taskhub.db.repositories import TaskRepository
from taskhub.engine.errors import (
    ConcurrentModification,
    TaskHubError,
    TaskNotFound,
    ValidationError,
)
from taskhub.models import (
    Task,
    TaskCreate,
    TaskFilter,
    TaskPatch,
    TaskStats,
    TaskStatus,
)
from taskhub.queue import TaskQueue, get_task_queue
from taskhub.utils.retry import RetryPolicy, retry
from taskhub.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
R = TypeVar("R")


def is_transient_store_error(error: BaseException) -> bool:
    """Connection-level database failures worth retrying."""
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    if isinstance(error, DBAPIError) and error.connection_invalidated:
        return True
    return isinstance(error, (ConnectionError, TimeoutError))


class TaskEngine:
    """
    Task mutations against the store, sequenced with queue notifications.

    Every write runs in its own scoped transaction. Status-change
    notifications are enqueued strictly after commit, through the retry
    wrapper. A notification that still fails is logged and re-raised, but
    the committed write stands: callers must treat such a failure as
    "saved but not notified".
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        queue: Optional[TaskQueue] = None,
        enqueue_policy: Optional[RetryPolicy] = None,
        read_policy: Optional[RetryPolicy] = None,
    ):
        self.session_factory = session_factory
        self.queue = queue or get_task_queue()
        self.enqueue_policy = enqueue_policy or RetryPolicy.from_settings()
        self.read_policy = read_policy or RetryPolicy.from_settings(
            should_retry=is_transient_store_error
        )

    # =========================================================================
    # Input validation (before any transaction opens)
    # =========================================================================

    def _validate(self, model: type[M], data: M | dict[str, Any]) -> M:
        if isinstance(data, model):
            return data
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(f"Invalid {field or 'input'}: {first['msg']}", field) from e

    def _parse_status(self, status: TaskStatus | str) -> TaskStatus:
        try:
            return TaskStatus.parse(status)
        except ValueError:
            raise ValidationError(f"Invalid status value: {status}", "status")

    def _parse_ids(self, task_ids: Iterable[UUID | str] | None) -> list[UUID]:
        if task_ids is None or isinstance(task_ids, (str, bytes)):
            raise ValidationError("IDs array must be non-empty", "ids")
        ids = list(task_ids)
        if not ids:
            raise ValidationError("IDs array must be non-empty", "ids")
        try:
            # dict.fromkeys keeps order and drops duplicates
            return list(dict.fromkeys(i if isinstance(i, UUID) else UUID(str(i)) for i in ids))
        except ValueError:
            raise ValidationError("IDs must be valid UUIDs", "ids")

    # =========================================================================
    # Notifications
    # =========================================================================

    async def _notify_status(self, task: Task, operation: str) -> None:
        """Enqueue one status-update notification, retried, after commit."""
        try:
            await retry(
                lambda: self.queue.enqueue_status_update(task.id, task.status),
                self.enqueue_policy,
            )
        except Exception as e:
            logger.error(
                f"{operation}: task {task.id} committed but status notification "
                f"({task.status.value}) was not enqueued: {e}",
                exc_info=True,
            )
            raise

    async def _notify_batch(self, tasks: list[Task], operation: str) -> None:
        """Enqueue one notification per task; the whole batch is retried together."""

        async def fan_out() -> None:
            await asyncio.gather(
                *(self.queue.enqueue_status_update(t.id, t.status) for t in tasks)
            )

        try:
            await retry(fan_out, self.enqueue_policy)
        except Exception as e:
            logger.error(
                f"{operation}: {len(tasks)} tasks committed but status notifications "
                f"were not enqueued: {e}",
                exc_info=True,
            )
            raise

    async def _read(self, query: Callable[[TaskRepository], Awaitable[R]]) -> R:
        """Run a read in its own session, retrying transient store failures."""

        async def attempt() -> R:
            async with transaction(self.session_factory) as session:
                return await query(TaskRepository(session))

        return await retry(attempt, self.read_policy)

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create(self, data: TaskCreate | dict[str, Any]) -> Task:
        """Persist a new task, then notify its initial status."""
        data = self._validate(TaskCreate, data)

        try:
            async with transaction(self.session_factory) as session:
                task = await TaskRepository(session).create(data)
        except Exception as e:
            logger.error(f"create: failed to persist task for user {data.user_id}: {e}")
            raise

        logger.info(f"create: task {task.id} created with status {task.status.value}")
        await self._notify_status(task, "create")
        return task

    async def update(self, task_id: UUID, patch: TaskPatch | dict[str, Any]) -> Task:
        """
        Apply a partial update.

        Exactly one notification is enqueued when, and only when, the status
        value changed (in any direction).
        """
        patch = self._validate(TaskPatch, patch)
        changes = patch.changes()

        try:
            async with transaction(self.session_factory) as session:
                repo = TaskRepository(session)
                row = await repo.get_row(task_id)
                if row is None:
                    raise TaskNotFound(str(task_id))

                original_status = row.status
                task = await repo.apply_changes(row, changes)
        except StaleDataError as e:
            logger.warning(f"update: concurrent modification of task {task_id}")
            raise ConcurrentModification(str(task_id)) from e
        except TaskHubError as e:
            logger.warning(f"update: task {task_id}: {e.message}")
            raise
        except Exception as e:
            logger.error(f"update: failed to update task {task_id}: {e}")
            raise

        if task.status != original_status:
            await self._notify_status(task, "update")
        return task

    async def bulk_update_status(
        self,
        task_ids: Iterable[UUID | str],
        status: TaskStatus | str,
    ) -> list[Task]:
        """Set one status on many tasks in a single transaction, then notify each."""
        ids = self._parse_ids(task_ids)
        new_status = self._parse_status(status)

        try:
            async with transaction(self.session_factory) as session:
                repo = TaskRepository(session)
                affected = await repo.update_status(ids, new_status)
                tasks = await repo.find_by_ids(ids)
        except Exception as e:
            logger.error(f"bulk_update_status: failed to update {len(ids)} tasks: {e}")
            raise

        logger.info(
            f"bulk_update_status: {affected} tasks set to {new_status.value}"
        )
        if tasks:
            await self._notify_batch(tasks, "bulk_update_status")
        return tasks

    async def bulk_delete(self, task_ids: Iterable[UUID | str]) -> int:
        """Delete many tasks in one transaction. Fails if none matched."""
        ids = self._parse_ids(task_ids)

        try:
            async with transaction(self.session_factory) as session:
                affected = await TaskRepository(session).delete(ids)
                if affected == 0:
                    raise TaskNotFound(message="No tasks found for bulk deletion")
        except TaskHubError as e:
            logger.warning(f"bulk_delete: {e.message}")
            raise
        except Exception as e:
            logger.error(f"bulk_delete: failed to delete {len(ids)} tasks: {e}")
            raise

        logger.info(f"bulk_delete: removed {affected} of {len(ids)} requested tasks")
        return affected

    async def delete(self, task_id: UUID) -> None:
        """Delete a single task."""

        async def attempt() -> None:
            async with transaction(self.session_factory) as session:
                affected = await TaskRepository(session).delete([task_id])
                if affected == 0:
                    raise TaskNotFound(str(task_id), "Task not found for deletion")

        try:
            await retry(attempt, self.read_policy)
        except Exception as e:
            logger.error(f"delete: failed to delete task {task_id}: {e}")
            raise

    async def apply_status_update_from_queue(
        self,
        task_id: UUID | str,
        status: TaskStatus | str,
    ) -> Task:
        """
        Apply a status delivered by the worker and return the fresh task.

        Runs in a transaction. Does not enqueue further notifications.
        """
        new_status = self._parse_status(status)
        task_uuid = self._parse_ids([task_id])[0]

        try:
            async with transaction(self.session_factory) as session:
                repo = TaskRepository(session)
                affected = await repo.update_status([task_uuid], new_status)
                if affected == 0:
                    raise TaskNotFound(
                        str(task_uuid), "Task not found for status update from queue"
                    )
                task = await repo.get(task_uuid)
        except Exception as e:
            logger.error(f"Failed to apply status update from queue for task {task_uuid}: {e}")
            raise

        return task

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_task(self, task_id: UUID) -> Task:
        """Get a task by ID."""
        task = await self._read(lambda repo: repo.get(task_id))
        if task is None:
            raise TaskNotFound(str(task_id))
        return task

    async def list_tasks(
        self,
        filters: TaskFilter | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> tuple[list[Task], str | None]:
        """
        List tasks newest first.

        Best-effort: a non-positive limit or a store failure (after retries)
        is logged and yields an empty page.
        """
        if limit is None:
            limit = settings.default_list_limit
        if limit <= 0:
            logger.warning(f"Invalid page size provided: {limit}")
            return [], None
        limit = min(limit, settings.max_list_limit)

        cursor_time: datetime | None = None
        if cursor:
            try:
                cursor_time = ensure_utc(datetime.fromisoformat(cursor))
            except ValueError:
                raise ValidationError(f"Invalid cursor: {cursor}", "cursor")

        try:
            return await self._read(lambda repo: repo.list(filters, limit, cursor_time))
        except Exception as e:
            logger.error(f"Error fetching tasks in list_tasks: {e}")
            return [], None

    async def get_stats(self, user_id: UUID | None = None) -> TaskStats:
        """Aggregate task counts; zeros if the store is unavailable."""
        try:
            return await self._read(lambda repo: repo.stats(user_id))
        except Exception as e:
            logger.error(f"Error fetching task stats: {e}")
            return TaskStats()

    async def get_overdue_tasks(self, limit: int | None = None) -> list[Task]:
        """Tasks with due_date before now whose status is not COMPLETED."""
        now = utc_now()
        try:
            return await self._read(lambda repo: repo.find_overdue(now, limit))
        except Exception as e:
            logger.error(f"Error fetching overdue tasks: {e}", exc_info=True)
            raise

    async def notify_overdue_task(self, task: Task | None) -> bool:
        """
        Emit an overdue notification for a task.

        Returns True if the task was overdue and a notification was emitted.
        """
        if task is None:
            logger.error("No task provided to notify_overdue_task")
            return False

        if task.is_overdue():
            logger.info(f'Notifying about overdue task with id {task.id} and title "{task.title}".')
            return True

        logger.info(f"Task with id {task.id} is not overdue or already completed.")
        return False
