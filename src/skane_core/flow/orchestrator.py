"""Flow orchestrator — the only valid call order through a skane session.

::

    IDLE → SCANNING → DECIDE → ACTION → FEEDBACK → RESULT → SHARE
                         ↘ ERROR (reachable from anywhere)

Each transition method checks the current flow state first and raises
:class:`IllegalTransitionError` otherwise.  :meth:`FlowOrchestrator.process_scan`
is the single place where the engine components run; it computes a complete
:class:`ScanOutcome` before touching the session context, so a failure
never leaves the context half-populated.

Every transition writes a JSON snapshot through the injected
:class:`SnapshotStore`.  :meth:`FlowOrchestrator.restore` replaces the whole
context from a snapshot; malformed snapshots read as "no session".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from skane_core.engine import amplifier as amplifier_engine
from skane_core.engine.catalog import GUEST_MODE_ACTIONS, MICRO_ACTIONS
from skane_core.engine.decision import StateClassifier
from skane_core.engine.models import (
    Amplifier,
    FeatureVector,
    PhysiologicalSignals,
    ScanOutcome,
    SeedInputs,
    SituationalContext,
    UserHistory,
)
from skane_core.engine.scoring import IndexEngine, compute_raw_dysregulation
from skane_core.engine.selector import ActionSelector
from skane_core.engine.signals import normalize_signals
from skane_core.errors import IllegalTransitionError
from skane_core.flow.store import MemorySnapshotStore, SnapshotStore
from skane_core.models import FlowState, InternalState, MicroActionId, UserFeedback

logger = structlog.get_logger(__name__)

_ALLOWED: dict[str, tuple[FlowState, ...]] = {
    "start_scan": (FlowState.IDLE, FlowState.RESULT, FlowState.SHARE, FlowState.ERROR),
    "process_scan": (FlowState.SCANNING,),
    "start_action": (FlowState.DECIDE,),
    "complete_action": (FlowState.ACTION,),
    "submit_feedback": (FlowState.FEEDBACK,),
    "go_to_share": (FlowState.RESULT,),
}

DEFAULT_HISTORY_WINDOW = 3


# ── Context models ────────────────────────────────────────────


class SessionContext(BaseModel):
    """Everything the flow knows about one session.  Mirrors the snapshot."""

    session_id: str
    user_id: str | None = None
    device_id: str = "guest"  # seed identity for guest sessions
    flow_state: FlowState = FlowState.IDLE
    internal_state: InternalState | None = None
    previous_state: InternalState | None = None  # hysteresis input for the next scan
    raw_dysregulation: float | None = Field(None, ge=0.0, le=1.0)
    before_index: int | None = Field(None, ge=0, le=100)
    after_index: int | None = Field(None, ge=0, le=100)
    micro_action: MicroActionId | None = None
    amplifier: Amplifier | None = None
    feedback: UserFeedback | None = None
    recent_action_ids: list[MicroActionId] = Field(default_factory=list)
    error: str | None = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SessionView(BaseModel):
    """What the UI layer may see.  No internal state, no raw score."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    flow_state: FlowState
    before_index: int | None = None
    after_index: int | None = None
    micro_action: MicroActionId | None = None


# ── Orchestrator ──────────────────────────────────────────────


class FlowOrchestrator:
    """State machine for a single skane session.

    Parameters
    ----------
    session_id : str
        Non-null session identifier, also half of the index seed.
    user_id : str | None
        Authenticated user, or ``None`` for guest sessions.
    device_id : str
        Anonymous seed identity used when ``user_id`` is ``None``.
    classifier, index_engine, selector
        Engine components; production tuning when omitted.
    store : SnapshotStore | None
        Snapshot port; an in-memory store when omitted.
    history_window : int
        How many recent actions are excluded from re-selection.
    guest_actions_only : bool
        Restrict guest sessions to the guest shortlist.
    min_amplifier_dysregulation : float
        Raw dysregulation needed before an amplifier is offered.
    """

    def __init__(
        self,
        session_id: str,
        user_id: str | None = None,
        *,
        device_id: str = "guest",
        classifier: StateClassifier | None = None,
        index_engine: IndexEngine | None = None,
        selector: ActionSelector | None = None,
        store: SnapshotStore | None = None,
        history_window: int = DEFAULT_HISTORY_WINDOW,
        guest_actions_only: bool = False,
        min_amplifier_dysregulation: float = amplifier_engine.DEFAULT_MIN_DYSREGULATION,
    ) -> None:
        self._classifier = classifier or StateClassifier()
        self._index_engine = index_engine or IndexEngine()
        self._selector = selector or ActionSelector()
        self._store: SnapshotStore = store if store is not None else MemorySnapshotStore()
        self._history_window = max(0, history_window)
        self._guest_actions_only = guest_actions_only
        self._min_amplifier_dysregulation = min_amplifier_dysregulation
        self._context = SessionContext(
            session_id=session_id, user_id=user_id, device_id=device_id
        )

    # ── Read access ───────────────────────────────────────────

    @property
    def context(self) -> SessionContext:
        """A copy of the session context; mutating it has no effect."""
        return self._context.model_copy(deep=True)

    @property
    def flow_state(self) -> FlowState:
        return self._context.flow_state

    @property
    def session_id(self) -> str:
        return self._context.session_id

    def view(self) -> SessionView:
        ctx = self._context
        return SessionView(
            session_id=ctx.session_id,
            flow_state=ctx.flow_state,
            before_index=ctx.before_index,
            after_index=ctx.after_index,
            micro_action=ctx.micro_action,
        )

    # ── Transitions ───────────────────────────────────────────

    def start_scan(self) -> None:
        """Begin a (new) scan.  Per-scan results are cleared, history kept."""
        self._require("start_scan")
        ctx = self._context
        self._commit(
            FlowState.SCANNING,
            previous_state=ctx.internal_state or ctx.previous_state,
            internal_state=None,
            raw_dysregulation=None,
            before_index=None,
            after_index=None,
            micro_action=None,
            amplifier=None,
            feedback=None,
            error=None,
        )

    def process_scan(
        self,
        signals: Mapping[str, Any] | BaseModel | None,
        *,
        physiological: PhysiologicalSignals | None = None,
        context: SituationalContext | None = None,
        history: UserHistory | None = None,
        activation_level: float | None = None,
        primary_need: str | None = None,
        amplifier_used_today: bool = False,
    ) -> SessionView:
        """Run normaliser, classifier, selector and index engine, then commit.

        On any failure the flow moves to ``ERROR`` and the exception is
        re-raised; previously committed fields are left untouched.
        """
        self._require("process_scan")
        try:
            outcome = self._evaluate(
                signals,
                physiological=physiological,
                context=context,
                history=history,
                activation_level=activation_level,
                primary_need=primary_need,
                amplifier_used_today=amplifier_used_today,
            )

            recent = [*self._context.recent_action_ids, outcome.selection.action_id]
            if self._history_window:
                recent = recent[-self._history_window:]
            else:
                recent = []

            self._commit(
                FlowState.DECIDE,
                internal_state=outcome.internal_state,
                raw_dysregulation=outcome.raw_dysregulation,
                before_index=outcome.before_index,
                after_index=outcome.after_index,
                micro_action=outcome.selection.action_id,
                amplifier=outcome.amplifier,
                recent_action_ids=recent,
            )
        except Exception as exc:
            logger.error(
                "flow.scan_failed",
                session_id=self.session_id,
                error=str(exc),
                exc_info=True,
            )
            self._enter_error(f"{type(exc).__name__}: {exc}")
            raise

        logger.info(
            "flow.scan_processed",
            session_id=self.session_id,
            internal_state=outcome.internal_state.value,
            raw_dysregulation=round(outcome.raw_dysregulation, 3),
            action=outcome.selection.action_id.value,
            reasoning=outcome.selection.reasoning,
            amplifier=outcome.amplifier.type.value if outcome.amplifier.type else None,
        )
        return self.view()

    def start_action(self) -> None:
        self._require("start_action")
        self._commit(FlowState.ACTION)

    def complete_action(self) -> None:
        self._require("complete_action")
        self._commit(FlowState.FEEDBACK)

    def submit_feedback(self, feedback: UserFeedback | str) -> None:
        self._require("submit_feedback")
        self._commit(FlowState.RESULT, feedback=UserFeedback(feedback))

    def go_to_share(self) -> None:
        self._require("go_to_share")
        self._commit(FlowState.SHARE)

    def fail(self, error: BaseException | str) -> None:
        """Move to ``ERROR`` from any state, recording the cause."""
        message = error if isinstance(error, str) else f"{type(error).__name__}: {error}"
        logger.warning("flow.failed", session_id=self.session_id, error=message)
        self._enter_error(message)

    # ── Persistence ───────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        return self._context.model_dump(mode="json")

    def to_json(self) -> str:
        return self._context.model_dump_json()

    @classmethod
    def restore(
        cls,
        session_id: str,
        store: SnapshotStore,
        **kwargs: Any,
    ) -> FlowOrchestrator | None:
        """Rebuild an orchestrator from its last snapshot.

        Returns ``None`` when no snapshot exists or it cannot be parsed.
        ``kwargs`` are forwarded to the constructor (engine components,
        device id, ...).
        """
        payload = store.read(session_id)
        if payload is None:
            return None
        return cls.from_json(payload, store=store, expected_session_id=session_id, **kwargs)

    @classmethod
    def from_json(
        cls,
        payload: str | bytes,
        *,
        store: SnapshotStore | None = None,
        expected_session_id: str | None = None,
        **kwargs: Any,
    ) -> FlowOrchestrator | None:
        try:
            context = SessionContext.model_validate_json(payload)
        except (ValidationError, ValueError) as exc:
            logger.warning(
                "flow.snapshot_invalid",
                session_id=expected_session_id,
                error=str(exc),
            )
            return None
        if expected_session_id is not None and context.session_id != expected_session_id:
            logger.warning(
                "flow.snapshot_mismatch",
                session_id=expected_session_id,
                snapshot_session_id=context.session_id,
            )
            return None

        orchestrator = cls(context.session_id, context.user_id, store=store, **kwargs)
        orchestrator._context = context
        return orchestrator

    # ── Internals ─────────────────────────────────────────────

    def _require(self, action: str) -> None:
        allowed = _ALLOWED[action]
        current = self._context.flow_state
        if current not in allowed:
            raise IllegalTransitionError(action, current.value, [s.value for s in allowed])

    def _commit(self, flow_state: FlowState, **fields: Any) -> None:
        """Write the next context, then make it current.

        A failed write leaves the live context unchanged.
        """
        previous = self._context.flow_state
        updated = self._context.model_copy(
            update={**fields, "flow_state": flow_state, "updated_at": datetime.utcnow()}
        )
        self._store.write(updated.session_id, updated.model_dump_json())
        self._context = updated
        logger.debug(
            "flow.transition",
            session_id=updated.session_id,
            from_state=previous.value,
            to_state=flow_state.value,
        )

    def _enter_error(self, message: str) -> None:
        # ERROR is entered even if its snapshot cannot be written.
        previous = self._context.flow_state
        self._context = self._context.model_copy(
            update={"flow_state": FlowState.ERROR, "error": message, "updated_at": datetime.utcnow()}
        )
        logger.debug(
            "flow.transition",
            session_id=self._context.session_id,
            from_state=previous.value,
            to_state=FlowState.ERROR.value,
        )
        self._store.write(self._context.session_id, self.to_json())

    def _seed_inputs(self) -> SeedInputs:
        return SeedInputs(
            session_id=self._context.session_id,
            user_id=self._context.user_id,
            device_id=self._context.device_id,
        )

    def _candidates(self) -> list[MicroActionId]:
        if self._guest_actions_only and self._context.user_id is None:
            pool = list(GUEST_MODE_ACTIONS)
        else:
            pool = list(MICRO_ACTIONS)
        fresh = [a for a in pool if a not in self._context.recent_action_ids]
        return fresh or pool

    def _history(self, history: UserHistory | None) -> UserHistory:
        history = history or UserHistory()
        if history.last_action_id is None and self._context.recent_action_ids:
            history = history.model_copy(
                update={"last_action_id": self._context.recent_action_ids[-1]}
            )
        return history

    def _evaluate(
        self,
        signals: Mapping[str, Any] | BaseModel | None,
        *,
        physiological: PhysiologicalSignals | None,
        context: SituationalContext | None,
        history: UserHistory | None,
        activation_level: float | None,
        primary_need: str | None,
        amplifier_used_today: bool,
    ) -> ScanOutcome:
        features: FeatureVector = normalize_signals(signals)
        state = self._classifier.classify(features, self._context.previous_state)
        raw = compute_raw_dysregulation(features, self._classifier.config)

        selection = self._selector.select(
            state,
            signals=physiological,
            activation_level=activation_level,
            primary_need=primary_need,
            context=context,
            history=self._history(history),
            candidates=self._candidates(),
        )

        amplifier = Amplifier()
        if amplifier_engine.should_enable_amplifier(
            state, raw, amplifier_used_today, self._min_amplifier_dysregulation
        ):
            kind = amplifier_engine.select_amplifier(state, selection.duration_seconds)
            amplifier = Amplifier(enabled=kind is not None, type=kind)

        pair = self._index_engine.compute_pair(
            state,
            raw,
            selection.action_id,
            amplifier.enabled,
            self._seed_inputs(),
        )
        return ScanOutcome(
            features=features,
            internal_state=state,
            raw_dysregulation=raw,
            before_index=pair.before,
            after_index=pair.after,
            selection=selection,
            amplifier=amplifier,
        )
