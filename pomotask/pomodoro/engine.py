from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import ValidationFailure


class Phase(str, Enum):
    WORK = "work"
    BREAK = "break"


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXPIRED = "expired"  # a phase just ran out and nothing has started since


@dataclass(frozen=True)
class EngineSnapshot:
    task_id: Optional[int]
    phase: Phase
    remaining_sec: int
    phase_length_sec: int
    is_running: bool
    state: TimerState
    work_minutes: int
    break_minutes: int


@dataclass(frozen=True)
class Expiry:
    finished: Phase
    next_phase: Phase

    @property
    def pomodoro_completed(self) -> bool:
        return self.finished is Phase.WORK


class TimerEngine:
    """
    Pure countdown state machine for a single task.
    Something else calls tick() once per elapsed second while running.

    A phase that runs out switches to the other phase and stops; the next
    phase only counts down after another start().
    """

    def __init__(self, task_id: Optional[int] = None, work_minutes: int = 25, break_minutes: int = 5):
        if work_minutes < 1 or break_minutes < 1:
            raise ValidationFailure("Durations must be at least 1 minute.", task_id=task_id)
        self.task_id = task_id
        self.work_minutes = int(work_minutes)
        self.break_minutes = int(break_minutes)

        self.phase = Phase.WORK
        self.remaining_sec = self.work_minutes * 60
        # length the in-progress countdown was entered with
        self.phase_length_sec = self.remaining_sec
        self.is_running = False
        self._expired = False

        self._on_tick: Optional[Callable[[EngineSnapshot], None]] = None
        self._on_state_change: Optional[Callable[[EngineSnapshot], None]] = None
        self._on_expired: Optional[Callable[[Expiry, EngineSnapshot], None]] = None

    # ----- Callbacks -----
    def set_on_tick(self, fn: Callable[[EngineSnapshot], None]) -> None:
        self._on_tick = fn

    def set_on_state_change(self, fn: Callable[[EngineSnapshot], None]) -> None:
        self._on_state_change = fn

    def set_on_expired(self, fn: Callable[[Expiry, EngineSnapshot], None]) -> None:
        self._on_expired = fn

    def _emit_state_change(self) -> None:
        if self._on_state_change:
            self._on_state_change(self.snapshot())

    # ----- State -----
    @property
    def state(self) -> TimerState:
        if self.is_running:
            return TimerState.RUNNING
        if self._expired:
            return TimerState.EXPIRED
        return TimerState.IDLE

    def duration_sec(self, phase: Phase) -> int:
        minutes = self.work_minutes if phase is Phase.WORK else self.break_minutes
        return minutes * 60

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            task_id=self.task_id,
            phase=self.phase,
            remaining_sec=self.remaining_sec,
            phase_length_sec=self.phase_length_sec,
            is_running=self.is_running,
            state=self.state,
            work_minutes=self.work_minutes,
            break_minutes=self.break_minutes,
        )

    # ----- Transitions -----
    def start(self) -> bool:
        if self.is_running or self.remaining_sec <= 0:
            return False
        self.is_running = True
        self._expired = False
        self._emit_state_change()
        return True

    def pause(self) -> bool:
        if not self.is_running:
            return False
        self.is_running = False
        self._emit_state_change()
        return True

    def toggle(self) -> bool:
        """Start when paused, pause when running. Returns the new running flag."""
        if self.is_running:
            self.pause()
        else:
            self.start()
        return self.is_running

    def reset(self) -> None:
        self._enter(Phase.WORK)
        self.is_running = False
        self._expired = False
        self._emit_state_change()

    def change_duration(self, phase: Phase, minutes: int) -> None:
        """
        Takes effect the next time ``phase`` is entered; a countdown already
        in progress for that phase keeps its remaining time.
        """
        if minutes < 1:
            raise ValidationFailure("Duration must be at least 1 minute.", task_id=self.task_id)
        if phase is Phase.WORK:
            self.work_minutes = int(minutes)
        else:
            self.break_minutes = int(minutes)

    def tick(self) -> Optional[Expiry]:
        """
        Returns the Expiry when this tick ran the phase out, else None.
        Ticks while stopped, or late ticks after expiry, change nothing.
        """
        if not self.is_running or self.remaining_sec <= 0:
            return None

        self.remaining_sec -= 1
        if self.remaining_sec > 0:
            if self._on_tick:
                self._on_tick(self.snapshot())
            return None

        return self._expire()

    def _enter(self, phase: Phase) -> None:
        self.phase = phase
        self.remaining_sec = self.duration_sec(phase)
        self.phase_length_sec = self.remaining_sec

    def _expire(self) -> Expiry:
        finished = self.phase
        expiry = Expiry(
            finished=finished,
            next_phase=Phase.BREAK if finished is Phase.WORK else Phase.WORK,
        )
        self._enter(expiry.next_phase)
        self.is_running = False
        self._expired = True

        if self._on_expired:
            self._on_expired(expiry, self.snapshot())
        self._emit_state_change()
        return expiry
