"""
Sync bridge between in-memory task records and the task store.

Local edits are applied immediately (optimistic) and persisted afterwards.
Writes for one task go through a FIFO queue so an earlier edit can never
land after a later one. A failed write is reported, never unwound: the
fields it carried are re-sent with the next edit for that task, or on an
explicit retry().
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional, Set, Tuple

from .errors import NotFound, SyncError, TransientFailure
from .ports import TaskStore
from .record import (
    EDITABLE_FIELDS,
    KeyStyle,
    TaskRecord,
    apply_update,
    detect_key_style,
    record_from_store,
    to_store_payload,
    validate_update,
)

logger = logging.getLogger(__name__)

_Op = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class PersistResult:
    task_id: int
    fields: Tuple[str, ...]
    error: Optional[SyncError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncBridge:
    def __init__(
        self,
        store: TaskStore,
        on_failure: Optional[Callable[[SyncError], None]] = None,
        key_style: Optional[KeyStyle] = None,
    ):
        self.store = store
        self.on_failure = on_failure
        # None until the first payload read from the store tells us
        self.key_style = key_style

        self._records: Dict[int, TaskRecord] = {}
        self._unsaved: Dict[int, Set[str]] = {}
        self._pending: Dict[int, Deque[Tuple[_Op, asyncio.Future]]] = {}
        self._workers: Dict[int, asyncio.Task] = {}
        # released by their view while writes were still queued
        self._released: Set[int] = set()

    # ----- Local state -----
    def record(self, task_id: int) -> TaskRecord:
        try:
            return self._records[task_id]
        except KeyError:
            raise NotFound("Task not loaded", task_id=task_id) from None

    def track(self, record: TaskRecord) -> TaskRecord:
        self._released.discard(record.id)
        self._records[record.id] = record
        return record

    def forget(self, task_id: int) -> None:
        self._records.pop(task_id, None)
        self._unsaved.pop(task_id, None)
        self._released.discard(task_id)

    def release(self, task_id: int) -> None:
        """
        Drop local state nobody is viewing any more, once queued writes are
        done. A record with unsaved fields is kept so they are not lost.
        """
        if task_id in self._workers:
            self._released.add(task_id)
        elif not self._unsaved.get(task_id):
            self.forget(task_id)

    def unsaved_fields(self, task_id: int) -> Set[str]:
        return set(self._unsaved.get(task_id, ()))

    def apply_local(self, task_id: int, update: Mapping[str, Any]) -> TaskRecord:
        """Validate and apply an edit in memory. Never touches the store."""
        values = validate_update(update, task_id=task_id)
        record = apply_update(self.record(task_id), values)
        self._records[task_id] = record
        return record

    # ----- Store reads -----
    def _adopt_style(self, payload: Mapping[str, Any]) -> None:
        if self.key_style is None:
            self.key_style = detect_key_style(payload)
            logger.debug("Store key style detected: %s", self.key_style.value)

    async def load(self, task_id: int) -> TaskRecord:
        """
        Read the task from the store. Fields whose save failed keep their
        local values so a later retry still sends them.
        """
        payload = await self._call(task_id, self.store.get(task_id))
        self._adopt_style(payload)
        record = record_from_store(payload)
        unsaved = self._unsaved.get(task_id)
        local = self._records.get(task_id)
        if unsaved and local is not None:
            record = apply_update(record, {name: getattr(local, name) for name in unsaved})
        return self.track(record)

    async def list(self) -> List[TaskRecord]:
        payloads = await self._call(None, self.store.list())
        if payloads:
            self._adopt_style(payloads[0])
        return [record_from_store(p) for p in payloads]

    async def create(self, task: Mapping[str, Any]) -> TaskRecord:
        values = validate_update(task)
        values.update(completed=False, completed_pomodoros=0)
        payload = await self._call(None, self.store.create(self._payload(values)))
        self._adopt_style(payload)
        record = self.track(record_from_store(payload))
        logger.info("Created task %s", record.id)
        return record

    # ----- Persistence -----
    def submit(self, task_id: int, fields: Optional[Mapping[str, Any]] = None) -> "asyncio.Future[PersistResult]":
        """
        Queue a write of the given fields' current local values.

        Returns immediately; the future resolves to a PersistResult and never
        raises. Fields left over from an earlier failed write ride along.
        """
        names = set(fields or ()) | self._unsaved.get(task_id, set())
        unknown = names - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Not persistable: {sorted(unknown)}")
        ordered = tuple(sorted(names))
        return self._enqueue(task_id, lambda: self._write(task_id, ordered))

    async def persist(self, task_id: int, update: Mapping[str, Any]) -> PersistResult:
        """Send an already applied update to the store, in issue order."""
        values = validate_update(update, task_id=task_id)
        return await self.submit(task_id, values)

    def update(self, task_id: int, update: Mapping[str, Any]) -> Tuple[TaskRecord, "asyncio.Future[PersistResult]"]:
        """apply_local() followed by submit(); the common path for every edit."""
        values = validate_update(update, task_id=task_id)
        record = self.apply_local(task_id, values)
        return record, self.submit(task_id, values)

    def increment_pomodoros(self, task_id: int) -> Tuple[TaskRecord, "asyncio.Future[PersistResult]"]:
        current = self.record(task_id).completed_pomodoros
        return self.update(task_id, {"completed_pomodoros": current + 1})

    def retry(self, task_id: int) -> Optional["asyncio.Future[PersistResult]"]:
        """Caller-initiated retry of whatever failed to save. None if nothing did."""
        if not self._unsaved.get(task_id):
            return None
        return self.submit(task_id)

    async def delete(self, task_id: int) -> None:
        """
        Delete from the store after any queued writes for the task.
        Local state is only dropped once the store confirms.
        """
        fut = self._enqueue(task_id, lambda: self._call(task_id, self.store.delete(task_id)))
        await fut
        self.forget(task_id)
        logger.info("Deleted task %s", task_id)

    async def drain(self, task_id: Optional[int] = None) -> None:
        """Wait until queued writes (for one task, or all) have finished."""
        if task_id is None:
            workers = list(self._workers.values())
        else:
            workers = [w for tid, w in self._workers.items() if tid == task_id]
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    # ----- Internals -----
    def _payload(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return to_store_payload(values, self.key_style or KeyStyle.LOWER)

    def _enqueue(self, task_id: int, op: _Op) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        self._pending.setdefault(task_id, deque()).append((op, fut))
        if task_id not in self._workers:
            self._workers[task_id] = loop.create_task(self._drain_queue(task_id))
        return fut

    async def _drain_queue(self, task_id: int) -> None:
        queue = self._pending[task_id]
        try:
            while queue:
                op, fut = queue.popleft()
                try:
                    result = await op()
                except asyncio.CancelledError:
                    fut.cancel()
                    raise
                except Exception as exc:
                    if not fut.done():
                        fut.set_exception(exc)
                else:
                    if not fut.done():
                        fut.set_result(result)
        finally:
            while queue:
                _, fut = queue.popleft()
                fut.cancel()
            self._pending.pop(task_id, None)
            self._workers.pop(task_id, None)
            if task_id in self._released:
                self._released.discard(task_id)
                self.release(task_id)

    async def _call(self, task_id: Optional[int], awaitable: Awaitable[Any]) -> Any:
        try:
            return await awaitable
        except SyncError as exc:
            if exc.task_id is None:
                exc.task_id = task_id
            raise
        except (OSError, asyncio.TimeoutError) as exc:
            raise TransientFailure(f"Task store unavailable: {exc}", task_id=task_id) from exc

    async def _write(self, task_id: int, names: Tuple[str, ...]) -> PersistResult:
        record = self._records.get(task_id)
        if record is None:
            # record was dropped (deleted) after this write was queued
            return PersistResult(task_id, names)

        values = {name: getattr(record, name) for name in names}
        try:
            await self._call(task_id, self.store.update(task_id, self._payload(values)))
        except SyncError as exc:
            return self._failed(task_id, names, exc)
        except Exception as exc:
            logger.exception("Unexpected task store error for task %s", task_id)
            return self._failed(task_id, names, TransientFailure(str(exc), task_id=task_id))

        unsaved = self._unsaved.get(task_id)
        if unsaved is not None:
            unsaved.difference_update(names)
            if not unsaved:
                del self._unsaved[task_id]
        logger.debug("Persisted task %s fields %s", task_id, ", ".join(names))
        return PersistResult(task_id, names)

    def _failed(self, task_id: int, names: Tuple[str, ...], exc: SyncError) -> PersistResult:
        logger.warning("Saving task %s failed (%s): %s", task_id, exc.kind, exc.message)
        if exc.retryable:
            self._unsaved.setdefault(task_id, set()).update(names)
        if self.on_failure:
            self.on_failure(exc)
        return PersistResult(task_id, names, error=exc)
