"""Action selector — multi-factor weighted scoring over the micro-action catalog.

Scoring steps, applied in order to every candidate (all start at 0):

==  =======================  ==========================================
#   Step                     Effect
==  =======================  ==========================================
1   State priority           rank-proportional bonus from the state's
                             shortlist
2   Signals                  muscle tension → breathing; fatigue or
                             LOW_ENERGY → energising / grounding;
                             activation level → box breathing
3   Primary need             half of the need table's boost
4   Context                  time of day, low HRV, short sleep,
                             declared preferences
5   Anti-repetition          penalty on the most recently used action
6   History                  signed adjustment from mean feedback
==  =======================  ==========================================

Candidates are ranked by score, ties broken by catalog order.  If the most
recent action still ranks first and another candidate exists, the runner-up
is returned instead.
"""

from __future__ import annotations

from typing import Iterable, Mapping

import structlog

from skane_core.engine.catalog import DEFAULT_ACTION, MICRO_ACTIONS, MicroAction
from skane_core.engine.models import (
    ActionSelection,
    PhysiologicalSignals,
    ScoredAction,
    SituationalContext,
    UserHistory,
)
from skane_core.engine.tuning import SelectorConfig
from skane_core.models import InternalState, MicroActionId, TimeOfDay

logger = structlog.get_logger(__name__)

_FALLBACK_SCORE = 50
_FALLBACK_REASONING = "Default action"


class ActionSelector:
    """Pick one micro-action for a classified scan.

    Parameters
    ----------
    catalog : Mapping[MicroActionId, MicroAction] | None
        Action lookup table.  Defaults to the built-in catalog.
    config : SelectorConfig | None
        Bonus weights and lookup tables.
    """

    def __init__(
        self,
        catalog: Mapping[MicroActionId, MicroAction] | None = None,
        config: SelectorConfig | None = None,
    ) -> None:
        self._catalog = catalog if catalog is not None else MICRO_ACTIONS
        self._config = config or SelectorConfig()

    @property
    def config(self) -> SelectorConfig:
        return self._config

    # ── Public API ────────────────────────────────────────────

    def rank(
        self,
        state: InternalState,
        signals: PhysiologicalSignals | None = None,
        activation_level: float | None = None,
        primary_need: str | None = None,
        context: SituationalContext | None = None,
        history: UserHistory | None = None,
        candidates: Iterable[MicroActionId] | None = None,
    ) -> list[ScoredAction]:
        """Score every candidate and return them best first."""
        state = InternalState(state)
        signals = signals or PhysiologicalSignals()
        context = context or SituationalContext()
        history = history or UserHistory()

        pool = self._pool(candidates)
        scores = {action_id: ScoredAction(action_id=action_id) for action_id in pool}

        self._apply_state_priority(scores, state)
        self._apply_signals(scores, state, signals, activation_level)
        self._apply_need(scores, primary_need)
        self._apply_context(scores, context)
        self._apply_repetition(scores, history)
        self._apply_feedback(scores, history)

        # sorted() is stable: equal scores keep pool (catalog) order
        return sorted(scores.values(), key=lambda s: s.score, reverse=True)

    def select(
        self,
        state: InternalState,
        signals: PhysiologicalSignals | None = None,
        activation_level: float | None = None,
        primary_need: str | None = None,
        context: SituationalContext | None = None,
        history: UserHistory | None = None,
        candidates: Iterable[MicroActionId] | None = None,
    ) -> ActionSelection:
        """Return the winning action with its score and reasoning trail."""
        ranking = self.rank(
            state,
            signals=signals,
            activation_level=activation_level,
            primary_need=primary_need,
            context=context,
            history=history,
            candidates=candidates,
        )
        if not ranking:
            logger.warning("selector.no_candidates", state=InternalState(state).value)
            return self._fallback(ranking)

        best = ranking[0]
        last = history.last_action_id if history else None
        if last is not None and best.action_id == last and len(ranking) > 1:
            best = ranking[1]

        action = self._catalog.get(best.action_id)
        if action is None:
            logger.warning(
                "selector.catalog_miss",
                action_id=str(best.action_id),
                fallback=DEFAULT_ACTION.value,
            )
            return self._fallback(ranking)

        reasoning = ", ".join(best.reasons[: self._config.reasons_in_summary])
        return ActionSelection(
            action_id=action.id,
            name=action.name,
            category=action.category,
            duration_seconds=action.duration,
            score=round(best.score * 100),
            reasoning=reasoning,
            ranking=ranking,
        )

    def _pool(self, candidates: Iterable[MicroActionId] | None) -> list[MicroActionId]:
        if candidates is None:
            return list(self._catalog)
        wanted = list(dict.fromkeys(candidates))
        # catalog order first; ids the catalog does not know go last
        ordered = [a for a in self._catalog if a in wanted]
        return ordered + [a for a in wanted if a not in self._catalog]

    # ── Scoring steps ─────────────────────────────────────────

    def _apply_state_priority(self, scores: dict[MicroActionId, ScoredAction], state: InternalState) -> None:
        shortlist = self._config.state_priority.get(
            state, self._config.state_priority[InternalState.REGULATED]
        )
        n = len(shortlist)
        for index, action_id in enumerate(shortlist):
            boost = (n - index) / n * self._config.state_weight
            _bump(scores, action_id, boost, f"State {state.value}: +{boost * 100:.0f}%")

    def _apply_signals(
        self,
        scores: dict[MicroActionId, ScoredAction],
        state: InternalState,
        signals: PhysiologicalSignals,
        activation_level: float | None,
    ) -> None:
        cfg = self._config
        facial = signals.facial
        postural = signals.postural

        tension = max(
            facial.forehead_tension or 0.0,
            facial.jaw_tension or 0.0,
            postural.shoulder_tension or 0.0,
        )
        if tension > cfg.tension_threshold:
            _bump(scores, MicroActionId.PHYSIOLOGICAL_SIGH, 0.2, "High muscle tension detected")
            _bump(scores, MicroActionId.EXPIRATION_3_8, 0.15)

        eye_openness = facial.eye_openness if facial.eye_openness is not None else 0.5
        fatigue = max(1.0 - eye_openness, facial.blink_frequency or 0.0)
        if fatigue > cfg.fatigue_threshold or state == InternalState.LOW_ENERGY:
            _bump(scores, MicroActionId.RESPIRATION_2_1, 0.2, "Physiological fatigue detected")
            _bump(scores, MicroActionId.POSTURE_ANCRAGE, 0.15)

        if activation_level is not None and activation_level > cfg.activation_level_threshold:
            _bump(scores, MicroActionId.BOX_BREATHING, 0.2, "High physiological activation")

    def _apply_need(self, scores: dict[MicroActionId, ScoredAction], primary_need: str | None) -> None:
        need = primary_need or self._config.default_need
        for action_id, boost in self._config.need_boosts.get(need, {}).items():
            _bump(scores, action_id, boost * self._config.need_weight, f"Need: {need}")

    def _apply_context(self, scores: dict[MicroActionId, ScoredAction], context: SituationalContext) -> None:
        cfg = self._config
        bonus = cfg.context_bonus

        if context.time_of_day == TimeOfDay.MORNING:
            _bump(scores, MicroActionId.POSTURE_ANCRAGE, bonus, "Morning boost")
        if context.time_of_day in (TimeOfDay.EVENING, TimeOfDay.NIGHT):
            _bump(scores, MicroActionId.EXPIRATION_3_8, bonus, "Evening wind-down")
            _bump(scores, MicroActionId.RESPIRATION_4_6, bonus)

        if context.hrv is not None and 0 < context.hrv < cfg.low_hrv_ms:
            _bump(scores, MicroActionId.PHYSIOLOGICAL_SIGH, bonus, "Low HRV")
        if context.sleep_hours is not None and 0 < context.sleep_hours < cfg.short_sleep_hours:
            _bump(scores, MicroActionId.RESPIRATION_2_1, bonus, "Short sleep")

        for action_id in context.preferred_actions:
            _bump(scores, action_id, cfg.preference_bonus, "Preferred action")

    def _apply_repetition(self, scores: dict[MicroActionId, ScoredAction], history: UserHistory) -> None:
        if history.last_action_id is not None:
            _bump(
                scores,
                history.last_action_id,
                -self._config.repetition_penalty,
                "Avoid repetition",
            )

    def _apply_feedback(self, scores: dict[MicroActionId, ScoredAction], history: UserHistory) -> None:
        for action_id, average in history.action_feedback.items():
            # mean feedback 1..3 → -weight..+weight
            adjustment = (average - 2.0) / 2.0 * self._config.feedback_weight
            reason = "Good feedback history" if adjustment > 0 else None
            _bump(scores, action_id, adjustment, reason)

    # ── Fallback ──────────────────────────────────────────────

    def _fallback(self, ranking: list[ScoredAction]) -> ActionSelection:
        action = MICRO_ACTIONS[DEFAULT_ACTION]
        return ActionSelection(
            action_id=action.id,
            name=action.name,
            category=action.category,
            duration_seconds=action.duration,
            score=_FALLBACK_SCORE,
            reasoning=_FALLBACK_REASONING,
            ranking=ranking,
            fallback=True,
        )


def _bump(
    scores: dict[MicroActionId, ScoredAction],
    action_id: MicroActionId,
    amount: float,
    reason: str | None = None,
) -> None:
    entry = scores.get(action_id)
    if entry is None:
        return
    entry.score += amount
    if reason:
        entry.reasons.append(reason)
