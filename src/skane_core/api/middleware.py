"""Middleware — request logging, error handling, domain error mapping."""

from __future__ import annotations

import time
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from skane_core.errors import (
    DuplicateSessionError,
    IllegalTransitionError,
    SessionNotFoundError,
)

logger = structlog.get_logger(__name__)


# ── Request logging ───────────────────────────────────────────


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log request method, path, status, and duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        # Skip noisy health checks
        if request.url.path != "/health":
            logger.info(
                "http.request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=duration_ms,
            )
        return response


# ── Global error handler ─────────────────────────────────────


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return a clean 500 response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("http.unhandled_error", path=request.url.path, error=str(exc))
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error."},
            )


# ── Domain errors ─────────────────────────────────────────────


async def _illegal_transition(request: Request, exc: IllegalTransitionError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "flow_state": exc.current,
            "allowed": list(exc.allowed),
        },
    )


async def _session_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _duplicate_session(request: Request, exc: DuplicateSessionError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IllegalTransitionError, _illegal_transition)
    app.add_exception_handler(SessionNotFoundError, _session_not_found)
    app.add_exception_handler(DuplicateSessionError, _duplicate_session)


# ── Setup helper ──────────────────────────────────────────────


def setup_middleware(app: FastAPI) -> None:
    """Wire all middleware into the FastAPI application.

    Outermost first: error handler, then request logging.
    """
    add_exception_handlers(app)
    # Add from innermost → outermost (FastAPI reverses the stack)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
