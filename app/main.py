from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from datastore.repository import build_default_repository
from datastore.sqlite_store import build_default_store
from logging_config import configure_logging
from services.analytics import build_default_analytics
from services.engine import build_default_engine
from services.fanout import build_default_channel
from services.notifications import build_default_dispatcher
from services.scheduler import build_default_scheduler


def _clear_factories() -> None:
    for factory in (
        build_default_engine,
        build_default_scheduler,
        build_default_analytics,
        build_default_dispatcher,
        build_default_channel,
        build_default_repository,
        build_default_store,
    ):
        factory.cache_clear()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    engine = build_default_engine()
    scheduler = build_default_scheduler()
    scheduler.start()
    try:
        yield
    finally:
        scheduler.stop()
        engine.shutdown()
        build_default_store().close()
        _clear_factories()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Telemetry Engine",
        description="Stateful ingestion, episode detection and rollups for sensor telemetry.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
