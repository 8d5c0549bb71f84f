"""REST API router."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.exc import IntegrityError

from taskhub import __version__
from taskhub.api.deps import get_engine, get_user_id, verify_api_key
from taskhub.api.schemas import (
    BatchAction,
    BatchTasksRequest,
    BatchTasksResponse,
    CreateTaskRequest,
    HealthResponse,
    ListTasksResponse,
    TaskResponse,
    TaskStatsResponse,
)
from taskhub.engine import (
    ConcurrentModification,
    TaskEngine,
    TaskNotFound,
    ValidationError,
)
from taskhub.models import Task, TaskCreate, TaskFilter, TaskPatch, TaskPriority, TaskStatus

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])


async def _get_owned_task(engine: TaskEngine, task_id: UUID, user_id: UUID) -> Task:
    """Load a task the caller owns; other users' tasks read as missing."""
    try:
        task = await engine.get_task(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    if task.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
    return task


async def _owned_ids(engine: TaskEngine, task_ids: list[UUID], user_id: UUID) -> list[UUID]:
    """Subset of ``task_ids`` the caller owns; missing and foreign ids are dropped."""
    owned = []
    for task_id in dict.fromkeys(task_ids):
        try:
            task = await engine.get_task(task_id)
        except TaskNotFound:
            continue
        if task.user_id == user_id:
            owned.append(task_id)
    return owned


# ============================================================================
# Health
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


# ============================================================================
# Tasks
# ============================================================================


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    request: CreateTaskRequest,
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """Create a new task owned by the caller."""
    data = TaskCreate(**request.model_dump(), user_id=user_id)
    try:
        task = await engine.create(data)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except IntegrityError:
        raise HTTPException(status_code=400, detail=f"Unknown user: {user_id}")

    return TaskResponse.from_task(task)


@router.get("/tasks", response_model=ListTasksResponse)
async def list_tasks(
    status: Optional[TaskStatus] = Query(None),
    priority: Optional[TaskPriority] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, max_length=255),
    limit: Optional[int] = Query(None, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """List the caller's tasks, newest first."""
    filters = TaskFilter(
        user_id=user_id,
        status=status,
        priority=priority,
        created_from=created_from,
        created_to=created_to,
        search=search,
    )
    try:
        tasks, next_cursor = await engine.list_tasks(filters, limit=limit, cursor=cursor)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)

    return ListTasksResponse(
        tasks=[TaskResponse.from_task(t) for t in tasks],
        next_cursor=next_cursor,
    )


@router.get("/tasks/stats", response_model=TaskStatsResponse)
async def get_task_stats(
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """Task counts for the caller."""
    stats = await engine.get_stats(user_id)
    return TaskStatsResponse(**stats.model_dump())


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """Get a task by ID."""
    task = await _get_owned_task(engine, task_id, user_id)
    return TaskResponse.from_task(task)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    patch: TaskPatch,
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """Partially update a task."""
    await _get_owned_task(engine, task_id, user_id)

    try:
        task = await engine.update(task_id, patch)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except ConcurrentModification as e:
        raise HTTPException(status_code=409, detail=e.message)

    return TaskResponse.from_task(task)


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: UUID,
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """Delete a task."""
    await _get_owned_task(engine, task_id, user_id)

    try:
        await engine.delete(task_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)

    return Response(status_code=204)


@router.post("/tasks/batch", response_model=BatchTasksResponse)
async def batch_tasks(
    request: BatchTasksRequest,
    user_id: UUID = Depends(get_user_id),
    engine: TaskEngine = Depends(get_engine),
):
    """Complete or delete several of the caller's tasks in one transaction."""
    if not request.task_ids:
        raise HTTPException(status_code=400, detail="IDs array must be non-empty")

    task_ids = await _owned_ids(engine, request.task_ids, user_id)
    if not task_ids:
        raise HTTPException(status_code=404, detail="No tasks found for batch operation")

    try:
        if request.action == BatchAction.COMPLETE:
            tasks = await engine.bulk_update_status(task_ids, TaskStatus.COMPLETED)
            return BatchTasksResponse(
                action=request.action,
                affected=len(tasks),
                tasks=[TaskResponse.from_task(t) for t in tasks],
            )

        affected = await engine.bulk_delete(task_ids)
        return BatchTasksResponse(action=request.action, affected=affected)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
