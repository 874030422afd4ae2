# tests/test_utils.py

from __future__ import annotations

import logging

import pytest

from pomotask.config import load_settings, normalize_database_url
from pomotask.logging_setup import setup_logging
from pomotask.utils import format_clock, progress_percent, split_origins


@pytest.mark.parametrize("seconds,text", [(0, "00:00"), (59, "00:59"), (60, "01:00"), (25 * 60, "25:00"), (-3, "00:00")])
def test_format_clock(seconds: int, text: str) -> None:
    assert format_clock(seconds) == text


def test_progress_percent() -> None:
    assert progress_percent(60, 60) == 0.0
    assert progress_percent(15, 60) == 75.0
    assert progress_percent(0, 60) == 100.0
    assert progress_percent(10, 0) == 0.0


def test_split_origins() -> None:
    assert split_origins("*") == ["*"]
    assert split_origins("") == ["*"]
    assert split_origins("http://a.test, http://b.test") == ["http://a.test", "http://b.test"]


def test_postgres_urls_use_async_driver() -> None:
    assert normalize_database_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("postgres://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_database_url("sqlite+aiosqlite:///x.sqlite") == "sqlite+aiosqlite:///x.sqlite"


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POMOTASK_DEFAULT_WORK_MINUTES", "50")
    monkeypatch.setenv("POMOTASK_DEFAULT_BREAK_MINUTES", "0")
    monkeypatch.setenv("POMOTASK_TICK_SECONDS", "not a number")
    monkeypatch.setenv("DEBUG", "yes")

    settings = load_settings()

    assert settings.default_work_minutes == 50
    assert settings.default_break_minutes == 1
    assert settings.tick_seconds == 1.0
    assert settings.debug is True


def test_setup_logging_installs_single_handler() -> None:
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        setup_logging("DEBUG")
        setup_logging("DEBUG")
        ours = [h for h in root.handlers if getattr(h, "_pomotask", False)]
        assert len(ours) == 1
        assert root.level == logging.DEBUG
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
        for h in saved[0]:
            root.addHandler(h)
        root.setLevel(saved[1])
        logging.captureWarnings(False)
