import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect

from ..pomodoro.errors import NotFound, SyncError, ValidationFailure
from ..pomodoro.session import FocusSession, SessionRegistry
from ..schemas import DurationChange, SoundChange, TimerOpen

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks/{task_id}/timer", tags=["timer"])


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _http_error(exc: SyncError) -> HTTPException:
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, ValidationFailure):
        status = 422
    else:
        status = 503
    return HTTPException(status_code=status, detail=exc.as_dict())


def _session(sessions: SessionRegistry, task_id: int) -> FocusSession:
    try:
        return sessions.get(task_id)
    except NotFound as e:
        raise _http_error(e)


@router.post("")
async def open_timer(
    task_id: int,
    body: Optional[TimerOpen] = None,
    sessions: SessionRegistry = Depends(get_sessions)
):
    """Open (or rejoin) the timer for a task"""
    try:
        session = await sessions.open(task_id, sound_id=body.sound_id if body else None)
    except SyncError as e:
        raise _http_error(e)
    return session.snapshot()


@router.get("")
async def get_timer(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    """Current timer state, task and playback directive"""
    return _session(sessions, task_id).snapshot()


@router.post("/start")
async def start_timer(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(sessions, task_id)
    session.start()
    return session.snapshot()


@router.post("/pause")
async def pause_timer(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(sessions, task_id)
    session.pause()
    return session.snapshot()


@router.post("/toggle")
async def toggle_timer(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(sessions, task_id)
    session.toggle()
    return session.snapshot()


@router.post("/reset")
async def reset_timer(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(sessions, task_id)
    session.reset()
    return session.snapshot()


@router.post("/complete")
async def toggle_complete(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    """Flip the task's completed flag; completing also counts a pomodoro"""
    session = _session(sessions, task_id)
    session.toggle_complete()
    return session.snapshot()


@router.post("/retry")
async def retry_save(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    """Re-send edits whose save failed"""
    session = _session(sessions, task_id)
    return {"retrying": session.retry(), "timer": session.snapshot()}


@router.put("/duration")
async def change_duration(
    task_id: int,
    change: DurationChange,
    sessions: SessionRegistry = Depends(get_sessions)
):
    session = _session(sessions, task_id)
    try:
        session.change_duration(change.phase, change.minutes)
    except ValidationFailure as e:
        raise _http_error(e)
    return session.snapshot()


@router.put("/sound")
async def change_sound(
    task_id: int,
    change: SoundChange,
    sessions: SessionRegistry = Depends(get_sessions)
):
    session = _session(sessions, task_id)
    try:
        session.select_sound(change.sound_id)
    except ValidationFailure as e:
        raise _http_error(e)
    return session.snapshot()


@router.put("/task")
async def edit_task(
    task_id: int,
    partial: Dict[str, Any] = Body(...),
    sessions: SessionRegistry = Depends(get_sessions)
):
    """Edit the task from its timer view; saved in the background"""
    session = _session(sessions, task_id)
    try:
        session.edit(partial)
    except ValidationFailure as e:
        raise _http_error(e)
    return session.snapshot()


@router.delete("")
async def close_timer(task_id: int, sessions: SessionRegistry = Depends(get_sessions)):
    if not sessions.close(task_id):
        raise HTTPException(status_code=404, detail="No open timer for this task")
    return {"message": "Timer closed"}


_ACTIONS = {
    "start": FocusSession.start,
    "pause": FocusSession.pause,
    "toggle": FocusSession.toggle,
    "reset": FocusSession.reset,
    "complete": FocusSession.toggle_complete,
    "retry": FocusSession.retry,
}


async def _forward_events(websocket: WebSocket, queue: "asyncio.Queue[dict]") -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)
        if message["type"] == "closed":
            return


async def _read_commands(websocket: WebSocket, session: FocusSession) -> None:
    while True:
        data = await websocket.receive_text()
        if data == "ping":
            await websocket.send_text("pong")
            continue

        try:
            action = json.loads(data).get("action", "")
        except (json.JSONDecodeError, AttributeError):
            await websocket.send_json({"type": "error", "data": {"message": "Invalid JSON format"}})
            continue

        handler = _ACTIONS.get(action)
        if handler is None:
            await websocket.send_json({"type": "error", "data": {"message": f"Unknown action: {action!r}"}})
            continue
        handler(session)


@router.websocket("/ws")
async def timer_events(websocket: WebSocket, task_id: int):
    """WebSocket streaming tick, state, playback and save-failure events"""
    sessions: SessionRegistry = websocket.app.state.sessions
    await websocket.accept()

    try:
        session = await sessions.open(task_id)
    except SyncError as e:
        await websocket.send_json({"type": "error", "data": e.as_dict()})
        await websocket.close(code=1008)
        return

    queue: "asyncio.Queue[dict]" = asyncio.Queue()
    unsubscribe = session.subscribe(queue.put_nowait)
    try:
        await websocket.send_json({"type": "snapshot", "data": session.snapshot()})

        sender = asyncio.create_task(_forward_events(websocket, queue))
        reader = asyncio.create_task(_read_commands(websocket, session))
        done, pending = await asyncio.wait({sender, reader}, return_when=asyncio.FIRST_COMPLETED)
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for t in done:
            exc = t.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning("Timer socket for task %s ended with error: %s", task_id, exc)
        if sender in done and sender.exception() is None:
            await websocket.close()
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
