"""FastAPI app entrypoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from toolgate.api.deps import get_health_monitor_registry
from toolgate.api.routes.gateway import router as gateway_router
from toolgate.config import get_settings


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await get_health_monitor_registry().stop_all()


def create_app() -> FastAPI:
    app = FastAPI(title="toolgate API", version="0.1.0", lifespan=lifespan)
    app.include_router(gateway_router)

    @app.get("/api/v1/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def run() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run("toolgate.api.app:app", host=settings.host, port=settings.port, reload=False)
