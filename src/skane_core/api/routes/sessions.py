"""Session lifecycle routes — one endpoint per flow transition.

Responses carry the UI view only: flow state, index pair and action id.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, HTTPException

from skane_core.api.schemas import CreateSessionRequest, FeedbackRequest, ScanRequest
from skane_core.errors import IllegalTransitionError, SessionNotFoundError
from skane_core.service import SessionService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _service() -> SessionService:
    from skane_core.api.server import _sessions

    if _sessions is None:
        raise HTTPException(503, "Session service not ready.")
    return _sessions


@router.post("", status_code=201)
async def create_session(req: CreateSessionRequest | None = None):
    req = req or CreateSessionRequest()
    orchestrator = await _service().create(
        user_id=req.user_id,
        device_id=req.device_id,
        session_id=req.session_id,
    )
    return orchestrator.view().model_dump(mode="json")


@router.get("/{session_id}")
async def get_session(session_id: str):
    """Current view of a session, restored from storage if not live."""
    view = await _service().view(session_id)
    return view.model_dump(mode="json")


@router.post("/{session_id}/scan")
async def start_scan(session_id: str):
    view = await _service().start_scan(session_id)
    return view.model_dump(mode="json")


@router.post("/{session_id}/scan/result")
async def submit_scan(session_id: str, req: ScanRequest):
    """Process upstream signal estimates; moves the session to ``DECIDE``.

    A failure inside the core moves the session to ``ERROR`` and returns 422.
    """
    try:
        view = await _service().process_scan(
            session_id,
            req.signals,
            physiological=req.physiological,
            context=req.context,
            activation_level=req.activation_level,
            primary_need=req.primary_need,
        )
    except (IllegalTransitionError, SessionNotFoundError):
        raise
    except Exception as exc:
        # exception text may name the internal state; keep it in the log
        logger.warning(
            "sessions.scan_rejected",
            session_id=session_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        raise HTTPException(422, "Scan could not be processed.") from exc
    return view.model_dump(mode="json")


@router.post("/{session_id}/action/start")
async def start_action(session_id: str):
    view = await _service().start_action(session_id)
    return view.model_dump(mode="json")


@router.post("/{session_id}/action/complete")
async def complete_action(session_id: str):
    view = await _service().complete_action(session_id)
    return view.model_dump(mode="json")


@router.post("/{session_id}/feedback")
async def submit_feedback(session_id: str, req: FeedbackRequest):
    view = await _service().submit_feedback(session_id, req.feedback)
    return view.model_dump(mode="json")


@router.post("/{session_id}/share")
async def go_to_share(session_id: str):
    view = await _service().go_to_share(session_id)
    return view.model_dump(mode="json")
