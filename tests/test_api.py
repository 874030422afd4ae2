# tests/test_api.py

from __future__ import annotations

import logging
import time

from fastapi.testclient import TestClient

from pomotask.pomodoro.errors import NotFound


def create(client: TestClient, **fields) -> dict:
    body = {"title": "Task", **fields}
    response = client.post("/api/tasks/", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def wait_for(check, timeout: float = 2.0) -> bool:
    """Poll until background saves have landed."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if check():
            return True
        time.sleep(0.02)
    return check()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_task_uses_defaults_and_store_casing(client: TestClient) -> None:
    task = create(client, title="Write report", completedPomodoros=9)

    assert task["id"] >= 1
    assert task["completed"] is False
    assert task["priority"] == "Medium"
    assert task["duedate"] is None
    assert task["completedpomodoros"] == 0
    assert task["workduration"] == 25
    assert task["breakduration"] == 5


def test_create_accepts_any_key_casing(client: TestClient) -> None:
    task = create(
        client,
        title="Plan",
        priority="high",
        dueDate="2024-05-01T00:00:00.000Z",
        work_duration=50,
        breakduration=10,
    )

    assert task["priority"] == "High"
    assert task["duedate"] == "2024-05-01"
    assert task["workduration"] == 50
    assert task["breakduration"] == 10


def test_create_rejects_non_positive_duration(client: TestClient) -> None:
    response = client.post("/api/tasks/", json={"title": "x", "workDuration": 0})
    assert response.status_code == 422


def test_get_missing_task_is_404(client: TestClient) -> None:
    assert client.get("/api/tasks/999").status_code == 404


def test_put_merges_partial_update(client: TestClient) -> None:
    task = create(client, description="draft", dueDate="2024-01-10")

    response = client.put(f"/api/tasks/{task['id']}", json={"completed": True, "duedate": None})

    assert response.status_code == 200
    updated = response.json()
    assert updated["completed"] is True
    assert updated["duedate"] is None
    assert updated["description"] == "draft"


def test_put_rejects_negative_pomodoros(client: TestClient) -> None:
    task = create(client)
    response = client.put(f"/api/tasks/{task['id']}", json={"completedPomodoros": -1})
    assert response.status_code == 422


def test_put_missing_task_is_404(client: TestClient) -> None:
    assert client.put("/api/tasks/999", json={"title": "x"}).status_code == 404


def test_filter_and_sort(client: TestClient) -> None:
    low = create(client, title="low", priority="Low", dueDate="2024-03-01")
    high = create(client, title="high", priority="High")
    medium = create(client, title="medium", priority="Medium", dueDate="2024-02-01")
    client.put(f"/api/tasks/{low['id']}", json={"completed": True})

    by_priority = client.get("/api/tasks/filter").json()
    assert [t["title"] for t in by_priority] == ["high", "medium", "low"]

    active = client.get("/api/tasks/filter", params={"status": "active"}).json()
    assert {t["title"] for t in active} == {"high", "medium"}

    only_high = client.get("/api/tasks/filter", params={"priority": "High"}).json()
    assert [t["id"] for t in only_high] == [high["id"]]

    by_due = client.get("/api/tasks/filter", params={"sort_by": "duedate", "order": "asc"}).json()
    assert [t["id"] for t in by_due] == [medium["id"], low["id"], high["id"]]


def test_delete_task(client: TestClient) -> None:
    task = create(client)

    assert client.delete(f"/api/tasks/{task['id']}").status_code == 200
    assert client.get(f"/api/tasks/{task['id']}").status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}").status_code == 404


def test_timer_lifecycle(client: TestClient) -> None:
    task = create(client, workDuration=1, breakDuration=1)
    base = f"/api/tasks/{task['id']}/timer"

    assert client.get(base).status_code == 404

    opened = client.post(base, json={"sound_id": "waves"}).json()
    assert opened["phase"] == "work"
    assert opened["remaining_seconds"] == 60
    assert opened["running"] is False
    assert opened["clock"] == "01:00"
    assert opened["sound_id"] == "waves"

    # opening again rejoins the same session
    assert client.post(base).json()["sound_id"] == "waves"

    started = client.post(f"{base}/start").json()
    assert started["running"] is True

    paused = client.post(f"{base}/pause").json()
    assert paused["running"] is False

    reset = client.post(f"{base}/reset").json()
    assert reset["remaining_seconds"] == 60
    assert reset["playback"]["rewind"] is True

    assert client.delete(base).status_code == 200
    assert client.get(base).status_code == 404
    assert client.delete(base).status_code == 404


def test_timer_for_missing_task_is_404(client: TestClient) -> None:
    response = client.post("/api/tasks/999/timer")
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "NotFound"


def test_timer_edits_are_saved_in_background(client: TestClient) -> None:
    task = create(client)
    base = f"/api/tasks/{task['id']}/timer"
    client.post(base)

    completed = client.post(f"{base}/complete").json()
    assert completed["task"]["completed"] is True
    assert completed["task"]["completedpomodoros"] == 1

    edited = client.put(f"{base}/task", json={"title": "Renamed", "priority": "Low"}).json()
    assert edited["task"]["title"] == "Renamed"

    duration = client.put(f"{base}/duration", json={"phase": "break", "minutes": 15}).json()
    assert duration["task"]["breakduration"] == 15

    def saved() -> bool:
        stored = client.get(f"/api/tasks/{task['id']}").json()
        return (
            stored["completedpomodoros"] == 1
            and stored["title"] == "Renamed"
            and stored["priority"] == "Low"
            and stored["breakduration"] == 15
        )

    assert wait_for(saved)


def test_timer_rejects_bad_input(client: TestClient) -> None:
    task = create(client)
    base = f"/api/tasks/{task['id']}/timer"
    client.post(base)

    assert client.put(f"{base}/sound", json={"sound_id": "thunder"}).status_code == 422
    assert client.put(f"{base}/duration", json={"phase": "work", "minutes": 0}).status_code == 422
    bad_edit = client.put(f"{base}/task", json={"workDuration": -3})
    assert bad_edit.status_code == 422
    assert bad_edit.json()["detail"]["kind"] == "ValidationFailure"
    bad_number = client.put(f"{base}/task", json={"workDuration": "--5"})
    assert bad_number.status_code == 422
    assert bad_number.json()["detail"]["kind"] == "ValidationFailure"


def test_deleting_task_closes_its_timer(client: TestClient) -> None:
    task = create(client)
    base = f"/api/tasks/{task['id']}/timer"
    client.post(base)
    client.post(f"{base}/start")

    assert client.delete(f"/api/tasks/{task['id']}").status_code == 200
    assert client.get(base).status_code == 404


def test_timer_websocket_sends_snapshot_and_answers_ping(client: TestClient) -> None:
    task = create(client)

    with client.websocket_connect(f"/api/tasks/{task['id']}/timer/ws") as ws:
        first = ws.receive_json()
        assert first["type"] == "snapshot"
        assert first["data"]["task_id"] == task["id"]

        ws.send_text("ping")
        assert ws.receive_text() == "pong"

        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"


def test_rest_edit_reaches_open_timer(client: TestClient) -> None:
    task = create(client, title="t", workDuration=25)
    base = f"/api/tasks/{task['id']}/timer"
    client.post(base)

    response = client.put(f"/api/tasks/{task['id']}", json={"workDuration": 10, "title": "renamed"})
    assert response.status_code == 200
    assert response.json()["workduration"] == 10
    assert response.json()["title"] == "renamed"

    reset = client.post(f"{base}/reset").json()
    assert reset["remaining_seconds"] == 600
    assert reset["task"]["title"] == "renamed"

    stored = client.get(f"/api/tasks/{task['id']}").json()
    assert stored["workduration"] == 10
    assert stored["title"] == "renamed"


def test_rest_edit_without_timer_keeps_no_local_state(client: TestClient) -> None:
    task = create(client)

    response = client.put(f"/api/tasks/{task['id']}", json={"priority": "High"})

    assert response.json()["priority"] == "High"
    bridge = client.app.state.bridge

    def forgotten() -> bool:
        try:
            bridge.record(task["id"])
        except NotFound:
            return True
        return False

    assert wait_for(forgotten)
    # a later timer starts from the stored row
    opened = client.post(f"/api/tasks/{task['id']}/timer").json()
    assert opened["task"]["priority"] == "High"


def test_startup_configures_logging(client: TestClient) -> None:
    root = logging.getLogger()
    assert [h for h in root.handlers if getattr(h, "_pomotask", False)]
