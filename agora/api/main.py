"""
agora.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn agora.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from agora.api.deps import get_cache, get_config, get_engine  # noqa: E402
from agora.api.routes.admin import router as admin_router  # noqa: E402
from agora.api.routes.public import router as public_router  # noqa: E402
from agora.database.engine import init_db, run_db  # noqa: E402
from agora.errors import AgoraError, ConflictError, NotFoundError, ValidationError  # noqa: E402
from agora.services.scheduler import LeaderboardRefresher  # noqa: E402

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
    """Schema and cache warm-up, then the APScheduler refresh job until shutdown."""
    engine = get_engine()
    await run_db(init_db, engine)
    cache = await run_db(get_cache)

    refresher = LeaderboardRefresher(
        engine, cache, interval_minutes=get_config().leaderboard_refresh_minutes,
    )
    refresher.start()
    logger.info("Agora API started — engine ready (%s)", engine.url.database)
    yield
    await refresher.stop()
    logger.info("Agora API shutting down")


app = FastAPI(
    title="Agora Gamification API",
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


# ---------------------------------------------------------------------------
# Core error → HTTP status
# ---------------------------------------------------------------------------
_STATUS_FOR_ERROR: dict[type[AgoraError], int] = {
    NotFoundError: 404,
    ValidationError: 422,
    ConflictError: 409,
}


@app.exception_handler(AgoraError)
async def agora_error_handler(request: Request, exc: AgoraError) -> JSONResponse:
    status_code = _STATUS_FOR_ERROR.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"detail": exc.detail})


# Mount routers
app.include_router(public_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
