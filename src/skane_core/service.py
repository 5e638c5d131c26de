"""Session service — live orchestrators, durable snapshots, user history.

The service is what the FastAPI lifespan wires up.  It owns one
:class:`FlowOrchestrator` per live session, persists every transition to
the database through :class:`SessionRepository`, and restores sessions that
are no longer in memory (process restart, another worker) from their last
snapshot.

A live session is dropped from memory when it reaches ``SHARE`` or when a
newer session is created for the same user (or device, for guests).
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog

from skane_core.config import Settings, get_settings
from skane_core.engine.context import time_of_day
from skane_core.engine.decision import StateClassifier
from skane_core.engine.models import PhysiologicalSignals, SituationalContext, UserHistory
from skane_core.engine.scoring import IndexEngine
from skane_core.engine.selector import ActionSelector
from skane_core.engine.tuning import IndexConfig
from skane_core.errors import DuplicateSessionError, SessionNotFoundError
from skane_core.flow.orchestrator import FlowOrchestrator, SessionView
from skane_core.flow.store import MemorySnapshotStore
from skane_core.models import FlowState, UserFeedback
from skane_core.storage.repository import SessionRepository

logger = structlog.get_logger(__name__)


class SessionService:
    """Coordinates orchestrators with persistence.

    Parameters
    ----------
    repository : SessionRepository
        Durable snapshot store and history queries.
    settings : Settings | None
        Runtime configuration; the cached settings when omitted.
    """

    def __init__(
        self,
        repository: SessionRepository,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repo = repository
        # holds snapshots of live sessions only; cleared on evict
        self._store = MemorySnapshotStore()
        self._live: dict[str, FlowOrchestrator] = {}
        self._owners: dict[str, str] = {}  # user or device id → newest live session id
        self._components: dict[str, Any] = {
            "classifier": StateClassifier(),
            "index_engine": IndexEngine(IndexConfig(strict=self._settings.strict_invariants)),
            "selector": ActionSelector(),
            "history_window": self._settings.action_history_window,
            "guest_actions_only": self._settings.guest_mode_actions_only,
            "min_amplifier_dysregulation": self._settings.amplifier_min_dysregulation,
        }

    @property
    def live_count(self) -> int:
        return len(self._live)

    # ── Lookup ────────────────────────────────────────────────

    async def create(
        self,
        user_id: str | None = None,
        device_id: str | None = None,
        session_id: str | None = None,
    ) -> FlowOrchestrator:
        session_id = session_id or uuid.uuid4().hex
        if session_id in self._live or await self._repo.load_snapshot(session_id) is not None:
            raise DuplicateSessionError(session_id)

        device_id = device_id or self._settings.device_id
        orchestrator = FlowOrchestrator(
            session_id,
            user_id,
            device_id=device_id,
            store=self._store,
            **self._components,
        )
        await self._repo.save_snapshot(orchestrator.context)

        owner = user_id or device_id
        replaced = self._owners.get(owner)
        if replaced is not None:
            self.evict(replaced)
            logger.info("session.replaced", session_id=replaced, replaced_by=session_id)
        self._live[session_id] = orchestrator
        self._owners[owner] = session_id
        logger.info("session.created", session_id=session_id, guest=user_id is None)
        return orchestrator

    async def get(self, session_id: str) -> FlowOrchestrator:
        """Return the live orchestrator, restoring it from the database if needed."""
        orchestrator = self._live.get(session_id)
        if orchestrator is not None:
            return orchestrator

        payload = await self._repo.load_snapshot(session_id)
        if payload is None:
            raise SessionNotFoundError(session_id)
        orchestrator = FlowOrchestrator.from_json(
            payload,
            store=self._store,
            expected_session_id=session_id,
            **self._components,
        )
        if orchestrator is None:
            raise SessionNotFoundError(session_id)

        if orchestrator.flow_state != FlowState.SHARE:
            self._live[session_id] = orchestrator
        logger.info("session.restored", session_id=session_id, flow_state=orchestrator.flow_state.value)
        return orchestrator

    async def view(self, session_id: str) -> SessionView:
        return (await self.get(session_id)).view()

    # ── Transitions ───────────────────────────────────────────

    async def start_scan(self, session_id: str) -> SessionView:
        orchestrator = await self.get(session_id)
        orchestrator.start_scan()
        self._live[session_id] = orchestrator
        return await self._persist(orchestrator)

    async def process_scan(
        self,
        session_id: str,
        signals: dict[str, Any] | None,
        *,
        physiological: PhysiologicalSignals | None = None,
        context: SituationalContext | None = None,
        activation_level: float | None = None,
        primary_need: str | None = None,
    ) -> SessionView:
        """Run a scan with stored history and today's amplifier usage.

        A failing scan is persisted in ``ERROR`` before the exception
        propagates.
        """
        orchestrator = await self.get(session_id)
        user_id = orchestrator.context.user_id

        context = context or SituationalContext()
        if context.time_of_day is None:
            context = context.model_copy(update={"time_of_day": time_of_day()})
        history: UserHistory = await self._repo.get_user_history(user_id)
        used_today = await self._repo.amplifier_used_today(user_id)

        try:
            orchestrator.process_scan(
                signals,
                physiological=physiological,
                context=context,
                history=history,
                activation_level=activation_level,
                primary_need=primary_need,
                amplifier_used_today=used_today,
            )
        finally:
            await self._persist(orchestrator)
        return orchestrator.view()

    async def start_action(self, session_id: str) -> SessionView:
        orchestrator = await self.get(session_id)
        orchestrator.start_action()
        return await self._persist(orchestrator)

    async def complete_action(self, session_id: str) -> SessionView:
        orchestrator = await self.get(session_id)
        orchestrator.complete_action()
        return await self._persist(orchestrator)

    async def submit_feedback(self, session_id: str, feedback: UserFeedback) -> SessionView:
        orchestrator = await self.get(session_id)
        orchestrator.submit_feedback(feedback)
        return await self._persist(orchestrator)

    async def go_to_share(self, session_id: str) -> SessionView:
        orchestrator = await self.get(session_id)
        orchestrator.go_to_share()
        view = await self._persist(orchestrator)
        # SHARE ends the session
        self.evict(session_id)
        return view

    def evict(self, session_id: str) -> None:
        """Drop the live copy; the next access restores from the database."""
        self._live.pop(session_id, None)
        self._store.delete(session_id)
        for owner, live_id in list(self._owners.items()):
            if live_id == session_id:
                del self._owners[owner]

    # ── Internals ─────────────────────────────────────────────

    async def _persist(self, orchestrator: FlowOrchestrator) -> SessionView:
        await self._repo.save_snapshot(orchestrator.context)
        return orchestrator.view()
