from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.validator import build_default_validator


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    validator = build_default_validator()
    try:
        yield
    finally:
        validator.shutdown()
        build_default_validator.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Cross-Validator",
        description=(
            "Aligns reference and device-under-test sensor streams, checks them against "
            "per-sensor tolerances and evaluates audio capture quality."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
