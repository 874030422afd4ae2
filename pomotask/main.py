import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .db import close_db, init_db
from .logging_setup import setup_logging
from .pomodoro.session import SessionRegistry
from .pomodoro.store import SqlTaskStore
from .pomodoro.sync import SyncBridge
from .routes import tasks, timer
from .utils import split_origins

logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    setup_logging(settings.log_level)
    await init_db()
    bridge = SyncBridge(SqlTaskStore())
    app.state.bridge = bridge
    app.state.sessions = SessionRegistry(
        bridge,
        tick_seconds=settings.tick_seconds,
        default_sound=settings.default_sound,
    )
    logger.info("Pomotask started")
    yield
    # Shutdown
    app.state.sessions.close_all()
    await bridge.drain()
    await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pomotask API",
        description="Task manager with a Pomodoro focus timer",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=split_origins(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request, call_next):
        response = await call_next(request)
        logger.debug("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    app.include_router(tasks.router, prefix="/api")
    app.include_router(timer.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Pomotask API",
            "version": app.version,
            "status": "running",
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        sessions = getattr(app.state, "sessions", None)
        return {
            "status": "healthy",
            "service": "pomotask",
            "version": app.version,
            "open_timers": len(sessions) if sessions is not None else 0,
        }

    return app


app = create_app()


def run():
    import uvicorn

    setup_logging(settings.log_level)
    uvicorn.run(
        "pomotask.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    run()
