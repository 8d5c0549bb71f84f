"""Database repositories for TaskHub entities."""

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhub.db.tables import TaskTable, UserTable
from taskhub.models import (
    Role,
    Task,
    TaskCreate,
    TaskFilter,
    TaskPriority,
    TaskStats,
    TaskStatus,
    User,
)
from taskhub.utils.time import ensure_utc, utc_now


class TaskRepository:
    """Repository for task operations. Runs inside the caller's session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, data: TaskCreate) -> Task:
        """Insert a new task row and flush it."""
        now = utc_now()
        row = TaskTable(
            id=uuid4(),
            title=data.title,
            description=data.description,
            status=data.status,
            priority=data.priority,
            due_date=data.due_date,
            user_id=data.user_id,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, task_id: UUID) -> Task | None:
        """Get a task by ID."""
        row = await self.get_row(task_id)
        return self._row_to_model(row) if row else None

    async def get_row(self, task_id: UUID) -> TaskTable | None:
        """Load the ORM row, for read-modify-write inside a transaction."""
        result = await self.session.execute(select(TaskTable).where(TaskTable.id == task_id))
        return result.scalar_one_or_none()

    async def apply_changes(self, row: TaskTable, changes: dict[str, Any]) -> Task:
        """
        Apply field changes to a loaded row and flush.

        The flush is version-checked; a concurrent writer surfaces as
        ``sqlalchemy.orm.exc.StaleDataError``.
        """
        for field, value in changes.items():
            setattr(row, field, value)
        row.updated_at = utc_now()
        await self.session.flush()
        return self._row_to_model(row)

    async def find_by_ids(self, task_ids: Sequence[UUID]) -> list[Task]:
        result = await self.session.execute(
            select(TaskTable)
            .where(TaskTable.id.in_(list(task_ids)))
            .order_by(TaskTable.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def update_status(self, task_ids: Iterable[UUID], status: TaskStatus) -> int:
        """Set status on every matching row. Returns rows affected."""
        result = await self.session.execute(
            update(TaskTable)
            .where(TaskTable.id.in_(list(task_ids)))
            .values(
                status=status,
                updated_at=utc_now(),
                version=TaskTable.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete(self, task_ids: Iterable[UUID]) -> int:
        """Delete every matching row. Returns rows affected."""
        result = await self.session.execute(
            delete(TaskTable)
            .where(TaskTable.id.in_(list(task_ids)))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def find_overdue(
        self,
        now: datetime,
        limit: Optional[int] = None,
    ) -> list[Task]:
        """Tasks due strictly before ``now`` that are not completed."""
        query = (
            select(TaskTable)
            .where(
                TaskTable.due_date.is_not(None),
                TaskTable.due_date < now,
                TaskTable.status.in_(list(TaskStatus.open_states())),
            )
            .order_by(TaskTable.due_date.asc())
        )
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def list(
        self,
        filters: TaskFilter | None = None,
        limit: int = 20,
        cursor: datetime | None = None,
    ) -> tuple[list[Task], str | None]:
        """List tasks newest first with cursor pagination on created_at."""
        filters = filters or TaskFilter()
        query = select(TaskTable)

        if filters.user_id:
            query = query.where(TaskTable.user_id == filters.user_id)
        if filters.status:
            query = query.where(TaskTable.status == filters.status)
        if filters.priority:
            query = query.where(TaskTable.priority == filters.priority)
        if filters.created_from:
            query = query.where(TaskTable.created_at >= filters.created_from)
        if filters.created_to:
            query = query.where(TaskTable.created_at <= filters.created_to)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(
                or_(TaskTable.title.ilike(pattern), TaskTable.description.ilike(pattern))
            )

        if cursor:
            query = query.where(TaskTable.created_at < cursor)

        query = query.order_by(TaskTable.created_at.desc()).limit(limit + 1)

        result = await self.session.execute(query)
        rows = list(result.scalars().all())

        next_cursor = None
        if len(rows) > limit:
            rows = rows[:limit]
            next_cursor = ensure_utc(rows[-1].created_at).isoformat()

        return [self._row_to_model(r) for r in rows], next_cursor

    async def stats(self, user_id: UUID | None = None) -> TaskStats:
        """Aggregate counts by status and priority."""

        def count_where(condition):
            return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)

        query = select(
            func.count(TaskTable.id),
            count_where(TaskTable.status == TaskStatus.COMPLETED),
            count_where(TaskTable.status == TaskStatus.IN_PROGRESS),
            count_where(TaskTable.status == TaskStatus.PENDING),
            count_where(TaskTable.priority == TaskPriority.HIGH),
        )
        if user_id:
            query = query.where(TaskTable.user_id == user_id)

        result = await self.session.execute(query)
        total, completed, in_progress, pending, high = result.one()
        return TaskStats(
            total=total or 0,
            completed=completed,
            in_progress=in_progress,
            pending=pending,
            high_priority=high,
        )

    def _row_to_model(self, row: TaskTable) -> Task:
        return Task(
            id=row.id,
            title=row.title,
            description=row.description,
            status=row.status,
            priority=row.priority,
            due_date=ensure_utc(row.due_date) if row.due_date else None,
            user_id=row.user_id,
            version=row.version,
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
        )


class UserRepository:
    """Repository for user operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        email: str,
        name: str,
        password_hash: str,
        role: Role = Role.USER,
    ) -> User:
        """Create a user. Email uniqueness is enforced by the table."""
        now = utc_now()
        row = UserTable(
            id=uuid4(),
            email=email.lower(),
            name=name,
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(UserTable).where(UserTable.id == user_id))
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(UserTable).where(UserTable.email == email.lower())
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    def _row_to_model(self, row: UserTable) -> User:
        return User(
            id=row.id,
            email=row.email,
            name=row.name,
            password_hash=row.password_hash,
            role=row.role,
            refresh_token_hash=row.refresh_token_hash,
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
        )
