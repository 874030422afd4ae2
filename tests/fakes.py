# tests/fakes.py

from __future__ import annotations

import asyncio
from typing import Any, Mapping

from pomotask.pomodoro.errors import NotFound
from pomotask.pomodoro.record import KeyStyle, TaskRecord


class FakeTaskStore:
    """
    In-memory TaskStore for unit tests.

    - Rows are kept in the casing given by ``style``
    - ``failures`` are raised by the next update/delete calls, in order
    - ``delays`` make the next update calls sleep first (ordering tests)
    - every successful update is logged in ``writes``
    """

    def __init__(self, style: KeyStyle = KeyStyle.LOWER) -> None:
        self.style = style
        self.rows: dict[int, dict[str, Any]] = {}
        self.writes: list[tuple[int, dict[str, Any]]] = []
        self.failures: list[Exception] = []
        self.delays: list[float] = []
        self.deleted: list[int] = []
        self._next_id = 1

    def add(self, **fields: Any) -> int:
        task_id = self._next_id
        self._next_id += 1
        self.rows[task_id] = TaskRecord(id=task_id, **fields).as_dict(self.style)
        return task_id

    def row(self, task_id: int) -> dict[str, Any]:
        return self.rows[task_id]

    async def get(self, task_id: int) -> dict[str, Any]:
        if task_id not in self.rows:
            raise NotFound("missing", task_id=task_id)
        return dict(self.rows[task_id])

    async def list(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self.rows.values()]

    async def create(self, task: Mapping[str, Any]) -> dict[str, Any]:
        task_id = self._next_id
        self._next_id += 1
        row = TaskRecord(id=task_id).as_dict(self.style)
        row.update(task)
        self.rows[task_id] = row
        return dict(row)

    async def update(self, task_id: int, partial: Mapping[str, Any]) -> dict[str, Any]:
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        if self.failures:
            raise self.failures.pop(0)
        if task_id not in self.rows:
            raise NotFound("missing", task_id=task_id)
        self.writes.append((task_id, dict(partial)))
        self.rows[task_id].update(partial)
        return dict(self.rows[task_id])

    async def delete(self, task_id: int) -> None:
        if self.failures:
            raise self.failures.pop(0)
        if task_id not in self.rows:
            raise NotFound("missing", task_id=task_id)
        del self.rows[task_id]
        self.deleted.append(task_id)
