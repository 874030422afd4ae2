import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..db import get_session_factory
from ..schemas import TaskCreate, TaskResponse, TaskUpdate
from .errors import NotFound, TransientFailure, ValidationFailure

logger = logging.getLogger(__name__)


def _payload(task) -> Dict[str, Any]:
    return TaskResponse.model_validate(task).model_dump(by_alias=True)


class SqlTaskStore:
    """TaskStore over the local database, speaking the REST routes' payloads."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or get_session_factory()
        return factory()

    async def get(self, task_id: int) -> Dict[str, Any]:
        try:
            async with self._session() as db:
                task = await crud.get_task(db, task_id)
                if task is None:
                    raise NotFound("Task not found", task_id=task_id)
                return _payload(task)
        except SQLAlchemyError as e:
            raise self._transient(e, task_id) from e

    async def list(self) -> List[Dict[str, Any]]:
        try:
            async with self._session() as db:
                return [_payload(t) for t in await crud.get_tasks(db, limit=1000)]
        except SQLAlchemyError as e:
            raise self._transient(e, None) from e

    async def create(self, task: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            task_data = TaskCreate.model_validate(dict(task))
        except ValidationError as e:
            raise ValidationFailure(str(e)) from e
        try:
            async with self._session() as db:
                return _payload(await crud.create_task(db, task_data))
        except SQLAlchemyError as e:
            raise self._transient(e, None) from e

    async def update(self, task_id: int, partial: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            task_update = TaskUpdate.model_validate(dict(partial))
        except ValidationError as e:
            raise ValidationFailure(str(e), task_id=task_id) from e
        try:
            async with self._session() as db:
                task = await crud.update_task(db, task_id, task_update)
                if task is None:
                    raise NotFound("Task not found", task_id=task_id)
                return _payload(task)
        except SQLAlchemyError as e:
            raise self._transient(e, task_id) from e

    async def delete(self, task_id: int) -> None:
        try:
            async with self._session() as db:
                if not await crud.delete_task(db, task_id):
                    raise NotFound("Task not found", task_id=task_id)
        except SQLAlchemyError as e:
            raise self._transient(e, task_id) from e

    @staticmethod
    def _transient(exc: SQLAlchemyError, task_id: Optional[int]) -> TransientFailure:
        logger.error("Task store error for task %s", task_id, exc_info=exc)
        return TransientFailure("Task store error, please try again", task_id=task_id)
