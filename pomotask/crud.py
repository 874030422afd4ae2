from typing import List, Optional

from sqlalchemy import case
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from .models import Task
from .pomodoro.record import Priority
from .schemas import TaskCreate, TaskFilter, TaskUpdate

NULLABLE_FIELDS = {"due_date"}


def _column_values(data: dict) -> dict:
    if isinstance(data.get("priority"), Priority):
        data["priority"] = data["priority"].value
    return data


async def create_task(db: AsyncSession, task: TaskCreate) -> Task:
    """Create a new task"""
    db_task = Task(**_column_values(task.model_dump()), completed=False, completed_pomodoros=0)
    db.add(db_task)
    await db.commit()
    await db.refresh(db_task)
    return db_task


async def get_task(db: AsyncSession, task_id: int) -> Optional[Task]:
    """Get a task by ID"""
    result = await db.execute(select(Task).filter(Task.id == task_id))
    return result.scalar_one_or_none()


async def get_tasks(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 100,
    task_filter: Optional[TaskFilter] = None,
) -> List[Task]:
    """Get tasks with optional filtering and sorting"""
    query = select(Task)

    if task_filter:
        if task_filter.status == "active":
            query = query.filter(Task.completed.is_(False))
        elif task_filter.status == "completed":
            query = query.filter(Task.completed.is_(True))

        if task_filter.priority:
            query = query.filter(Task.priority == task_filter.priority.value)

        descending = task_filter.order == "desc"
        if task_filter.sort_by == "priority":
            rank = case((Task.priority == "High", 3), (Task.priority == "Medium", 2), else_=1)
            query = query.order_by(rank.desc() if descending else rank.asc())
        else:
            # tasks without a due date go last ascending, first descending
            no_due = Task.due_date.is_(None)
            if descending:
                query = query.order_by(no_due.desc(), Task.due_date.desc())
            else:
                query = query.order_by(no_due.asc(), Task.due_date.asc())

    query = query.order_by(Task.id).offset(skip).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_task(db: AsyncSession, task_id: int, task_update: TaskUpdate) -> Optional[Task]:
    """Merge a partial update into a task"""
    db_task = await get_task(db, task_id)
    if not db_task:
        return None

    update_data = {
        field: value
        for field, value in task_update.model_dump(exclude_unset=True).items()
        if value is not None or field in NULLABLE_FIELDS
    }
    if update_data:
        for field, value in _column_values(update_data).items():
            setattr(db_task, field, value)

        await db.commit()
        await db.refresh(db_task)

    return db_task


async def delete_task(db: AsyncSession, task_id: int) -> bool:
    """Delete a task"""
    db_task = await get_task(db, task_id)
    if not db_task:
        return False

    await db.delete(db_task)
    await db.commit()
    return True
