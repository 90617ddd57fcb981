"""Read endpoint serving the cached user count.

The endpoint only reads the cache; extraction happens on the scheduler's
background task. When the app is served, its lifespan starts the
scheduler and stops it on shutdown.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import GlobalConfig, get_config
from usercount import __version__
from usercount.cache import SnapshotCache
from usercount.logger import get_logger
from usercount.scheduler import Scheduler

log = get_logger(__name__)

NOT_READY_MESSAGE = "User count not yet available"


def create_app(
    cache: SnapshotCache,
    config: GlobalConfig | None = None,
    scheduler: Scheduler | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        cache: Snapshot store to serve from.
        config: Optional GlobalConfig. Uses singleton if not provided.
        scheduler: Optional scheduler tied to the app lifespan.

    Returns:
        Configured FastAPI instance.
    """
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if scheduler is not None:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()

    app = FastAPI(title=config.app_name, version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["GET"],
    )

    @app.get("/user_count")
    async def user_count() -> JSONResponse:
        snapshot = cache.current_snapshot()
        if snapshot is None:
            return JSONResponse(status_code=503, content={"error": NOT_READY_MESSAGE})
        return JSONResponse(status_code=200, content={"userCount": snapshot.total_count})

    return app
