"""FastAPI application — session lifecycle endpoints around the skane core.

This module wires together:
- Request logging + error-handling middleware
- Database initialisation
- The :class:`SessionService` holding live flow orchestrators
- Session and catalog routers
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from skane_core.api.middleware import setup_middleware
from skane_core.api.routes.actions import router as actions_router
from skane_core.api.routes.sessions import router as sessions_router
from skane_core.config import get_settings
from skane_core.engine.catalog import CATALOG_VERSION
from skane_core.service import SessionService
from skane_core.storage.database import dispose_engine, init_db
from skane_core.storage.repository import SessionRepository

logger = structlog.get_logger(__name__)

# ── Shared state (initialised in lifespan) ────────────────────

_sessions: SessionService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hooks."""
    global _sessions

    settings = get_settings()

    # 1. Database
    await init_db()
    logger.info("server.db_ready")

    # 2. Session service
    _sessions = SessionService(SessionRepository(), settings)

    logger.info("server.started", port=settings.api_port, catalog_version=CATALOG_VERSION)

    yield  # ← application runs

    # Shutdown
    _sessions = None
    await dispose_engine()
    logger.info("server.stopped")


app = FastAPI(
    title="Skane Core API",
    description="Activation-state decision, Skane Index scoring and micro-action selection.",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ────────────────────────────────────────────────
setup_middleware(app)

# ── Routers ───────────────────────────────────────────────────
app.include_router(sessions_router)
app.include_router(actions_router)


# ── Health ────────────────────────────────────────────────────

@app.get("/health", tags=["system"])
async def health():
    return {
        "status": "ok",
        "catalog_version": CATALOG_VERSION,
        "live_sessions": _sessions.live_count if _sessions else 0,
    }
