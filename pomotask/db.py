import asyncio
import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .config import get_settings, normalize_database_url
from .models import Base

logger = logging.getLogger(__name__)

engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[sessionmaker] = None


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    options = {
        "pool_pre_ping": True,  # Verify connections before use
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
        "pool_recycle": 300,  # 5 minutes
    }
    if url.startswith("postgresql+asyncpg"):
        options["connect_args"] = {"server_settings": {"application_name": "pomotask"}}
    return options


def configure_engine(url: Optional[str] = None) -> AsyncEngine:
    """(Re)create the async engine and session factory for ``url``."""
    global engine, AsyncSessionLocal

    url = normalize_database_url(url or get_settings().database_url)
    engine = create_async_engine(url, echo=False, future=True, **_engine_options(url))
    AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Database engine created for %s", url.split("@")[-1])
    return engine


def get_session_factory() -> sessionmaker:
    if AsyncSessionLocal is None:
        configure_engine()
    return AsyncSessionLocal


async def init_db():
    """Initialize the database by creating all tables"""
    if engine is None:
        configure_engine()

    max_retries = 3
    retry_delay = 5

    for attempt in range(max_retries):
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables ready")
            return
        except OSError as e:
            logger.warning("Database connection attempt %d/%d failed: %s", attempt + 1, max_retries, e)
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay)
            else:
                logger.error("All database connection attempts failed")
                raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session"""
    async with get_session_factory()() as session:
        yield session


async def close_db():
    """Close database connections"""
    if engine is not None:
        await engine.dispose()
        logger.info("Database connections closed")
