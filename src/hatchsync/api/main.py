"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hatchsync.api.routes import sync as sync_routes


def create_app(sync_engine=None, start_scheduler: bool = True) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        sync_engine: CloudSyncEngine to serve. Built from settings on
            startup when omitted.
        start_scheduler: Start the background sync scheduler with the app.
            Only one process per database should run it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = sync_engine
        if engine is None:
            from hatchsync.sync.engine import build_sync_engine
            engine = build_sync_engine()
        app.state.sync_engine = engine
        if start_scheduler:
            engine.start()
        try:
            yield
        finally:
            if start_scheduler:
                engine.shutdown()

    app = FastAPI(
        title="Hatch OS Sync API",
        description="Kiosk event outbox and cloud sync",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
