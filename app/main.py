from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.state import build_default_state


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    state = build_default_state()
    state.start_sensors()
    try:
        yield
    finally:
        state.stop_sensors()
        build_default_state.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Kegerator Monitor",
        description="Keg levels, pours and ambient conditions of a multi-keg dispensing rig.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
