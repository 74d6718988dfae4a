"""FastAPI application entrypoint for the match room service."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi import Request
from fastapi.responses import JSONResponse

import arena.runtime as runtime
from arena.api.errors import handle_http_exception
from arena.api.errors import handle_match_room_error
from arena.api.routers.admin import router as admin_router
from arena.api.routers.rooms import router as rooms_router
from arena.core.logging_config import setup_logging
from matchroom.errors import MatchRoomError

logger = logging.getLogger("arena.main")


def startup() -> None:
    """Rebuild runtime state from the current environment."""
    runtime.startup()
    setup_logging(runtime.settings.arena_log_level, runtime.settings.arena_log_file)
    logger.info(
        "match room service starting (env=%s, db=%s)",
        runtime.settings.arena_app_env,
        runtime.settings.arena_sqlite_path,
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    startup()
    stop = asyncio.Event()
    supervisor_task = None
    if runtime.settings.arena_supervisor_enabled:
        supervisor_task = asyncio.create_task(runtime.supervisor.run(stop))
    try:
        yield
    finally:
        stop.set()
        if supervisor_task is not None:
            await supervisor_task


app = FastAPI(title="Ludo Arena match rooms", lifespan=lifespan)
app.include_router(rooms_router)
app.include_router(admin_router)


@app.exception_handler(HTTPException)
async def handle_http_exception_route(request: Request, exc: HTTPException) -> JSONResponse:
    """Adapter used by FastAPI exception handling."""
    return await handle_http_exception(request, exc)


@app.exception_handler(MatchRoomError)
async def handle_match_room_error_route(request: Request, exc: MatchRoomError) -> JSONResponse:
    return await handle_match_room_error(request, exc)


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


__all__ = ["app", "startup"]
