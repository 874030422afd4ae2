"""Pomodoro core: timer engine, ambience directives and task sync."""

from .ambience import AmbienceController, CueDirective, PlaybackDirective, compute_directive
from .engine import EngineSnapshot, Expiry, Phase, TimerEngine, TimerState
from .errors import NotFound, SyncError, TransientFailure, ValidationFailure
from .record import KeyStyle, Priority, TaskRecord
from .session import FocusSession, SessionRegistry
from .sync import PersistResult, SyncBridge

__all__ = [
    "AmbienceController",
    "CueDirective",
    "EngineSnapshot",
    "Expiry",
    "FocusSession",
    "KeyStyle",
    "NotFound",
    "PersistResult",
    "Phase",
    "PlaybackDirective",
    "Priority",
    "SessionRegistry",
    "SyncBridge",
    "SyncError",
    "TaskRecord",
    "TimerEngine",
    "TimerState",
    "TransientFailure",
    "ValidationFailure",
    "compute_directive",
]
