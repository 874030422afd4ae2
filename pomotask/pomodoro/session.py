import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..utils import format_clock, progress_percent
from .ambience import DEFAULT_SOUND, AmbienceController, PlaybackDirective
from .engine import EngineSnapshot, Expiry, Phase, TimerEngine
from .errors import NotFound, SyncError
from .record import TaskRecord, validate_update
from .sync import PersistResult, SyncBridge

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]

_DURATION_FIELDS = {Phase.WORK: "work_duration", Phase.BREAK: "break_duration"}


class FocusSession:
    """
    Timer state for one open task view:
    - TimerEngine countdown, ticked by an asyncio loop
    - task edits and pomodoro counts through the shared SyncBridge
    - playback directives for the view's audio element

    Listeners get messages shaped {"type": ..., "data": {...}}.
    """

    def __init__(
        self,
        record: TaskRecord,
        bridge: SyncBridge,
        sound_id: str = DEFAULT_SOUND,
        tick_seconds: float = 1.0,
    ):
        if record.id is None:
            raise ValueError("Cannot time a task that was never saved.")
        self.task_id = record.id
        self.bridge = bridge
        self.tick_seconds = tick_seconds

        self.engine = TimerEngine(record.id, record.work_duration, record.break_duration)
        self.ambience = AmbienceController(sound_id)
        self.engine.set_on_tick(self._on_tick)
        self.engine.set_on_state_change(self._on_state_change)
        self.engine.set_on_expired(self._on_expired)

        self.last_error: Optional[SyncError] = None
        self.closed = False
        self._resetting = False
        self._ticker: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    @property
    def record(self) -> TaskRecord:
        return self.bridge.record(self.task_id)

    # ----- Listeners -----
    def subscribe(self, fn: Listener) -> Callable[[], None]:
        self._listeners.append(fn)

        def unsubscribe() -> None:
            if fn in self._listeners:
                self._listeners.remove(fn)

        return unsubscribe

    def _emit(self, kind: str, data: Dict[str, Any]) -> None:
        message = {"type": kind, "data": data}
        for fn in list(self._listeners):
            fn(message)

    def _emit_playback(self, directive: PlaybackDirective) -> None:
        self._emit("playback", directive.as_dict())

    # ----- Timer -----
    def start(self) -> bool:
        return self.engine.start()

    def pause(self) -> bool:
        return self.engine.pause()

    def toggle(self) -> bool:
        return self.engine.toggle()

    def reset(self) -> None:
        self._resetting = True
        try:
            self.engine.reset()
        finally:
            self._resetting = False
        self._emit_playback(self.ambience.rewind())

    def tick(self) -> Optional[Expiry]:
        return self.engine.tick()

    def change_duration(self, phase: Phase, minutes: int) -> TaskRecord:
        return self.edit({_DURATION_FIELDS[phase]: minutes})

    # ----- Task edits -----
    def edit(self, partial: Mapping[str, Any]) -> TaskRecord:
        """Optimistically apply an edit and queue it for the store."""
        record, _ = self._apply(partial)
        return record

    async def save(self, partial: Mapping[str, Any]) -> Tuple[TaskRecord, PersistResult]:
        """edit(), then wait for the store's answer."""
        record, fut = self._apply(partial)
        return record, await fut

    def _apply(self, partial: Mapping[str, Any]) -> Tuple[TaskRecord, "asyncio.Future[PersistResult]"]:
        values = validate_update(partial, task_id=self.task_id)
        record, fut = self.bridge.update(self.task_id, values)
        for phase, name in _DURATION_FIELDS.items():
            if name in values:
                self.engine.change_duration(phase, values[name])
        self._watch(fut)
        self._emit("task", record.as_dict())
        return record, fut

    def toggle_complete(self) -> TaskRecord:
        """Marking complete also counts a pomodoro; unmarking leaves the count."""
        record = self.record
        if record.completed:
            return self.edit({"completed": False})
        return self.edit({"completed": True, "completed_pomodoros": record.completed_pomodoros + 1})

    def retry(self) -> bool:
        fut = self.bridge.retry(self.task_id)
        if fut is None:
            return False
        self._watch(fut)
        return True

    # ----- Sound -----
    def select_sound(self, sound_id: str) -> PlaybackDirective:
        directive = self.ambience.select_sound(sound_id, self.engine.phase, self.engine.is_running)
        self._emit_playback(directive)
        return directive

    # ----- Engine callbacks -----
    def _on_tick(self, snap: EngineSnapshot) -> None:
        self._emit(
            "tick",
            {
                "remaining_seconds": snap.remaining_sec,
                "clock": format_clock(snap.remaining_sec),
                "progress": progress_percent(snap.remaining_sec, snap.phase_length_sec),
            },
        )

    def _on_state_change(self, snap: EngineSnapshot) -> None:
        if not self._resetting:
            directive = self.ambience.update(snap.phase, snap.is_running)
            if directive is not None:
                self._emit_playback(directive)
        self._emit("state", self._timer_state(snap))

    def _on_expired(self, expiry: Expiry, snap: EngineSnapshot) -> None:
        logger.info(
            "Task %s: %s phase finished, next is %s",
            self.task_id,
            expiry.finished.value,
            expiry.next_phase.value,
        )
        self._emit(
            "expired",
            {
                "finished": expiry.finished.value,
                "next_phase": expiry.next_phase.value,
                "cue": self.ambience.expired_cue().as_dict(),
            },
        )
        if expiry.pomodoro_completed:
            record, fut = self.bridge.increment_pomodoros(self.task_id)
            self._watch(fut)
            self._emit("task", record.as_dict())

    # ----- Persistence results -----
    def _watch(self, fut: "asyncio.Future[PersistResult]") -> None:
        fut.add_done_callback(self._on_persisted)

    def _on_persisted(self, fut: "asyncio.Future[PersistResult]") -> None:
        # the view is gone; nobody to tell
        if fut.cancelled() or self.closed:
            return
        result = fut.result()
        if result.ok:
            if not self.bridge.unsaved_fields(self.task_id):
                self.last_error = None
            return
        self.last_error = result.error
        self._emit("persist_failed", result.error.as_dict())

    # ----- Snapshot -----
    def _timer_state(self, snap: EngineSnapshot) -> Dict[str, Any]:
        return {
            "phase": snap.phase.value,
            "state": snap.state.value,
            "running": snap.is_running,
            "remaining_seconds": snap.remaining_sec,
            "clock": format_clock(snap.remaining_sec),
            "progress": progress_percent(snap.remaining_sec, snap.phase_length_sec),
        }

    def snapshot(self) -> Dict[str, Any]:
        data = self._timer_state(self.engine.snapshot())
        data.update(
            task_id=self.task_id,
            task=self.record.as_dict(),
            sound_id=self.ambience.sound_id,
            playback=self.ambience.current.as_dict(),
            last_error=self.last_error.as_dict() if self.last_error else None,
        )
        return data

    # ----- Lifecycle -----
    async def run(self) -> None:
        """Tick once per period for as long as the session is open."""
        while True:
            await asyncio.sleep(self.tick_seconds)
            if self.engine.is_running:
                self.tick()

    def start_ticker(self) -> None:
        if self._ticker is None and not self.closed:
            self._ticker = asyncio.get_running_loop().create_task(self.run())

    def close(self) -> None:
        """Stop ticking and release playback. In-flight saves finish unobserved."""
        if self.closed:
            return
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        self.engine.is_running = False
        self._emit_playback(self.ambience.release())
        self._emit("closed", {"task_id": self.task_id})
        self.closed = True
        self._listeners.clear()
        logger.info("Closed timer for task %s", self.task_id)


class SessionRegistry:
    """At most one FocusSession per task; opening twice returns the same one."""

    def __init__(self, bridge: SyncBridge, tick_seconds: float = 1.0, default_sound: str = DEFAULT_SOUND):
        self.bridge = bridge
        self.tick_seconds = tick_seconds
        self.default_sound = default_sound
        self._sessions: Dict[int, FocusSession] = {}

    def __contains__(self, task_id: int) -> bool:
        return task_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, task_id: int, sound_id: Optional[str] = None) -> FocusSession:
        session = self._sessions.get(task_id)
        if session is not None:
            return session

        record = await self.bridge.load(task_id)
        # opened by someone else while we were loading
        session = self._sessions.get(task_id)
        if session is not None:
            return session

        session = FocusSession(
            record,
            self.bridge,
            sound_id=sound_id or self.default_sound,
            tick_seconds=self.tick_seconds,
        )
        session.start_ticker()
        self._sessions[task_id] = session
        logger.info("Opened timer for task %s", task_id)
        return session

    def get(self, task_id: int) -> FocusSession:
        session = self._sessions.get(task_id)
        if session is None:
            raise NotFound("No open timer for this task", task_id=task_id)
        return session

    def close(self, task_id: int) -> bool:
        session = self._sessions.pop(task_id, None)
        if session is None:
            return False
        session.close()
        self.bridge.release(task_id)
        return True

    async def delete(self, task_id: int) -> None:
        """Delete the task; its open timer is torn down only once the store agrees."""
        await self.bridge.delete(task_id)
        self.close(task_id)

    def close_all(self) -> None:
        for task_id in list(self._sessions):
            self.close(task_id)
