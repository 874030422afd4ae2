from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..db import get_db
from ..pomodoro.errors import NotFound, SyncError, ValidationFailure
from ..pomodoro.record import Priority
from ..pomodoro.session import SessionRegistry
from ..schemas import TaskCreate, TaskFilter, TaskResponse, TaskUpdate

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("/", response_model=TaskResponse)
async def create_task(
    task: TaskCreate,
    db: AsyncSession = Depends(get_db)
):
    """Create a new task"""
    db_task = await crud.create_task(db, task)
    return TaskResponse.model_validate(db_task)


@router.get("/", response_model=List[TaskResponse])
async def get_tasks(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db)
):
    """Get all tasks with pagination"""
    tasks = await crud.get_tasks(db, skip=skip, limit=limit)
    return [TaskResponse.model_validate(task) for task in tasks]


@router.get("/filter", response_model=List[TaskResponse])
async def filter_tasks(
    status: Literal["all", "active", "completed"] = Query("all"),
    priority: Optional[Priority] = Query(None),
    sort_by: Literal["priority", "duedate"] = Query("priority"),
    order: Literal["asc", "desc"] = Query("desc"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db)
):
    """Filter tasks by completion and priority, sorted by priority or due date"""
    task_filter = TaskFilter(status=status, priority=priority, sort_by=sort_by, order=order)
    tasks = await crud.get_tasks(db, skip=skip, limit=limit, task_filter=task_filter)
    return [TaskResponse.model_validate(task) for task in tasks]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db)
):
    """Get a specific task by ID"""
    task = await crud.get_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskResponse.model_validate(task)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    task_update: TaskUpdate,
    request: Request
):
    """Update a specific task, keeping an open timer for it in step"""
    partial = {
        field: value
        for field, value in task_update.model_dump(exclude_unset=True).items()
        if value is not None or field in crud.NULLABLE_FIELDS
    }
    sessions = request.app.state.sessions
    try:
        if task_id in sessions:
            record, result = await sessions.get(task_id).save(partial)
        else:
            record, result = await _save_untimed(sessions, task_id, partial)
    except ValidationFailure as e:
        raise HTTPException(status_code=422, detail=e.message)
    except NotFound:
        raise HTTPException(status_code=404, detail="Task not found")
    except SyncError as e:
        raise HTTPException(status_code=503, detail=e.message)

    if isinstance(result.error, NotFound):
        raise HTTPException(status_code=404, detail="Task not found")
    if result.error is not None:
        raise HTTPException(status_code=503, detail=result.error.message)
    return TaskResponse.model_validate(record.as_dict())


async def _save_untimed(sessions: SessionRegistry, task_id: int, partial: dict):
    """Same queued write path as a timer view, for a task nobody has open."""
    bridge = sessions.bridge
    await bridge.load(task_id)
    try:
        record, fut = bridge.update(task_id, partial)
        return record, await fut
    finally:
        # a timer opened meanwhile owns the record now
        if task_id not in sessions:
            bridge.release(task_id)


@router.delete("/{task_id}")
async def delete_task(task_id: int, request: Request):
    """Delete a specific task, stopping its timer if one is open"""
    sessions = request.app.state.sessions
    try:
        await sessions.delete(task_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Task not found")
    except SyncError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return {"message": "Task deleted successfully"}
