from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.adapters.api.controllers.tracking import router as tracking_router
from src.adapters.api.dependencies import get_position_feed, get_tracking_service
from src.worker import run_position_feed


@asynccontextmanager
async def lifespan(app: FastAPI):
    feed = get_position_feed()
    stop = asyncio.Event()
    task = None
    if feed is not None:
        task = asyncio.create_task(
            run_position_feed(get_tracking_service(), feed, stop=stop)
        )
    try:
        yield
    finally:
        stop.set()
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        if get_tracking_service.cache_info().currsize:
            await get_tracking_service().aclose()


app = FastAPI(title="RideAlong", lifespan=lifespan)
app.include_router(tracking_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return API errors as JSON so rider clients can display them."""

    logging.getLogger("uvicorn.error").exception(
        "Unhandled exception", extra={"path": str(request.url.path)}
    )

    reveal = (os.getenv("RIDEALONG_REVEAL_ERRORS") or "").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }

    if reveal or isinstance(exc, (FileNotFoundError, RuntimeError, ValueError)):
        detail = str(exc) or exc.__class__.__name__
    else:
        detail = "Internal Server Error"

    return JSONResponse(status_code=500, content={"detail": detail})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
