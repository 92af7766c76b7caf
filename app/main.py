from __future__ import annotations
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api import router
from app.live import router as live_router
from app.web import router as web_router
from datastore.reading_store import build_default_store
from logging_config import configure_logging
from services.broadcast import build_default_hub
from services.history import build_default_history
from services.ingestion import build_default_gateway
from services.retention import build_default_reaper
from settings import get_settings

_DEFAULT_FACTORIES = (
    build_default_reaper,
    build_default_gateway,
    build_default_history,
    build_default_hub,
    build_default_store,
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    reaper = build_default_reaper()
    reaper.run_once()
    reaper.start()
    try:
        yield
    finally:
        reaper.stop()
        for factory in _DEFAULT_FACTORIES:
            factory.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Stream",
        description="Real-time temperature and humidity readings with rolling history.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    static_dir = Path(__file__).resolve().parent.parent / "static"
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    app.include_router(router)
    app.include_router(live_router)
    app.include_router(web_router)
    return app


def serve() -> None:
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


app = create_app()

if __name__ == "__main__":
    serve()
