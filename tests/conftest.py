# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from pomotask import db
from pomotask.main import create_app
from pomotask.pomodoro.sync import SyncBridge

from .fakes import FakeTaskStore


@pytest.fixture()
def store() -> FakeTaskStore:
    """Fake store holding one task (id 1) with 1 minute work and break phases."""
    s = FakeTaskStore()
    s.add(title="Write report", work_duration=1, break_duration=1)
    return s


@pytest.fixture()
def failures() -> list:
    return []


@pytest.fixture()
def bridge(store: FakeTaskStore, failures: list) -> SyncBridge:
    return SyncBridge(store, on_failure=failures.append)


@pytest.fixture()
def client(tmp_path: Path) -> Iterator[TestClient]:
    """
    API client over a throwaway SQLite database.

    The context manager runs the app lifespan (tables, sync bridge, sessions).
    """
    db.configure_engine(f"sqlite+aiosqlite:///{tmp_path / 'tasks.sqlite'}")
    with TestClient(create_app()) as c:
        yield c
