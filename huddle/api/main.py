"""
huddle.api.main — FastAPI application entry point
===================================================

Run with::

    uvicorn huddle.api.main:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from huddle.api.auth import router as auth_router  # noqa: E402
from huddle.api.deps import get_config, get_engine, get_hub  # noqa: E402
from huddle.api.routes.map_preferences import router as map_preferences_router  # noqa: E402
from huddle.api.routes.notifications import router as notifications_router  # noqa: E402
from huddle.api.routes.realtime import router as realtime_router  # noqa: E402
from huddle.api.routes.social import router as social_router  # noqa: E402
from huddle.api.routes.user import router as user_router  # noqa: E402
from huddle.api.routes.xp import router as xp_router  # noqa: E402
from huddle.errors import HuddleError  # noqa: E402
from huddle.services.retention_service import retention_loop  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine, run the retention job."""
    engine = get_engine()
    cfg = get_config()
    retention_task = None
    if cfg.retention_days > 0:
        retention_task = asyncio.create_task(
            retention_loop(
                engine, cfg.retention_days, cfg.retention_check_hours, get_hub()
            )
        )
    logger.info("Huddle API started — engine ready (%s)", engine.url.database)
    yield
    if retention_task is not None:
        retention_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await retention_task
    await get_hub().drain()
    logger.info("Huddle API shutting down")


app = FastAPI(
    title="Huddle API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HuddleError)
async def huddle_error_handler(_request: Request, exc: HuddleError) -> JSONResponse:
    """Business-rule failures → ``{"message", "code"}`` with the mapped status."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(user_router, prefix="/api")
app.include_router(social_router, prefix="/api")
app.include_router(xp_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(map_preferences_router, prefix="/api")
app.include_router(realtime_router)


@app.get("/api/health")
def health():
    return {"status": "ok"}
