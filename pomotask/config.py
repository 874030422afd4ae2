"""Settings loaded from environment variables (+ optional .env)."""

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./tasks.sqlite"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def normalize_database_url(url: str) -> str:
    """Make sure Postgres URLs use the async driver."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


@dataclass(frozen=True)
class Settings:
    database_url: str
    allowed_origins: str
    host: str
    port: int
    debug: bool
    log_level: str
    default_work_minutes: int
    default_break_minutes: int
    default_sound: str
    tick_seconds: float


def load_settings() -> Settings:
    return Settings(
        database_url=normalize_database_url(os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL),
        allowed_origins=os.getenv("ALLOWED_ORIGINS", "*"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_env_int("PORT", 8000),
        debug=_env_bool("DEBUG", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        default_work_minutes=max(1, _env_int("POMOTASK_DEFAULT_WORK_MINUTES", 25)),
        default_break_minutes=max(1, _env_int("POMOTASK_DEFAULT_BREAK_MINUTES", 5)),
        default_sound=os.getenv("POMOTASK_DEFAULT_SOUND", "rain"),
        tick_seconds=_env_float("POMOTASK_TICK_SECONDS", 1.0),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
