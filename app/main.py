from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.connections import build_default_connection_checker
from services.orchestrator import build_default_orchestrator


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    orchestrator = build_default_orchestrator()
    checker = build_default_connection_checker()
    try:
        yield
    finally:
        await orchestrator.aclose()
        await checker.aclose()
        build_default_orchestrator.cache_clear()
        build_default_connection_checker.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Lavendair Exports",
        description="Calibrates particulate sensor readings and exports them to files, Eagle.io and EPA AQS.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()
