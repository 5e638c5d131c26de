"""Tests for the action selector and the micro-action catalog."""

from __future__ import annotations

import pytest

from skane_core.engine.catalog import (
    DEFAULT_ACTION,
    GUEST_MODE_ACTIONS,
    MICRO_ACTIONS,
    actions_for_state,
    get_action,
)
from skane_core.engine.models import (
    FacialSignals,
    PhysiologicalSignals,
    PosturalSignals,
    SituationalContext,
    UserHistory,
)
from skane_core.engine.selector import ActionSelector
from skane_core.models import InternalState, MicroActionId, TimeOfDay


@pytest.fixture
def selector() -> ActionSelector:
    return ActionSelector()


def _score_of(selection, action_id: MicroActionId) -> float:
    return next(s.score for s in selection.ranking if s.action_id == action_id)


# ── Catalog ───────────────────────────────────────────────────


class TestCatalog:
    def test_exhaustive(self):
        assert set(MICRO_ACTIONS) == set(MicroActionId)

    def test_get_action_by_string(self):
        action = get_action("box_breathing")
        assert action is not None
        assert action.id == MicroActionId.BOX_BREATHING

    def test_get_unknown_action(self):
        assert get_action("jaw_release") is None

    def test_every_state_has_eligible_actions(self):
        for state in InternalState:
            assert actions_for_state(state)

    def test_guest_shortlist_in_catalog(self):
        assert all(a in MICRO_ACTIONS for a in GUEST_MODE_ACTIONS)

    def test_instruction_steps_are_ordered_and_timed(self):
        sigh = MICRO_ACTIONS[MicroActionId.PHYSIOLOGICAL_SIGH]
        assert [step.type.value for step in sigh.instructions] == ["inhale", "inhale", "exhale"]
        assert all(step.duration > 0 for step in sigh.instructions)


# ── Selection ─────────────────────────────────────────────────


class TestStatePriority:
    @pytest.mark.parametrize(
        ("state", "expected"),
        [
            (InternalState.HIGH_ACTIVATION, MicroActionId.PHYSIOLOGICAL_SIGH),
            (InternalState.LOW_ENERGY, MicroActionId.RESPIRATION_2_1),
            (InternalState.REGULATED, MicroActionId.BOX_BREATHING),
        ],
    )
    def test_empty_history_picks_top_of_shortlist(self, selector, state, expected):
        selection = selector.select(state)
        assert selection.action_id == expected
        assert selection.action_id in selector.config.state_priority[state]
        assert not selection.fallback

    def test_score_and_reasoning(self, selector):
        selection = selector.select(InternalState.HIGH_ACTIVATION)
        assert selection.score == 30
        assert selection.reasoning == "State HIGH_ACTIVATION: +30%"
        assert selection.duration_seconds == MICRO_ACTIONS[MicroActionId.PHYSIOLOGICAL_SIGH].duration

    def test_ranking_covers_catalog(self, selector):
        selection = selector.select(InternalState.REGULATED)
        assert [s.action_id for s in selection.ranking][0] == MicroActionId.BOX_BREATHING
        assert len(selection.ranking) == len(MICRO_ACTIONS)

    def test_ties_broken_by_catalog_order(self, selector):
        candidates = [MicroActionId.PRESSION_PLANTAIRE, MicroActionId.SHAKE_NEUROMUSCULAIRE]
        selection = selector.select(InternalState.REGULATED, candidates=candidates)
        # both score 0; shake comes first in the catalog
        assert selection.action_id == MicroActionId.SHAKE_NEUROMUSCULAIRE

    def test_reasoning_keeps_first_three_reasons(self, selector):
        selection = selector.select(
            InternalState.HIGH_ACTIVATION,
            signals=PhysiologicalSignals(facial=FacialSignals(forehead_tension=0.9)),
            primary_need="calm_down",
            context=SituationalContext(hrv=30),
        )
        assert selection.action_id == MicroActionId.PHYSIOLOGICAL_SIGH
        assert selection.reasoning.count(", ") == 2


class TestSignalBonuses:
    def test_tension_boosts_sigh(self, selector):
        selection = selector.select(
            InternalState.REGULATED,
            signals=PhysiologicalSignals(postural=PosturalSignals(shoulder_tension=0.8)),
        )
        assert _score_of(selection, MicroActionId.PHYSIOLOGICAL_SIGH) == pytest.approx(0.2)
        assert _score_of(selection, MicroActionId.EXPIRATION_3_8) == pytest.approx(0.15)

    def test_fatigue_boosts_energising_actions(self, selector):
        selection = selector.select(
            InternalState.REGULATED,
            signals=PhysiologicalSignals(facial=FacialSignals(eye_openness=0.2)),
        )
        assert _score_of(selection, MicroActionId.RESPIRATION_2_1) == pytest.approx(0.2)
        assert _score_of(selection, MicroActionId.POSTURE_ANCRAGE) == pytest.approx(0.15)

    def test_activation_level_boosts_box_breathing(self, selector):
        selection = selector.select(InternalState.HIGH_ACTIVATION, activation_level=85)
        # 0.2 signal + 0.1 "maintain" need
        assert _score_of(selection, MicroActionId.BOX_BREATHING) == pytest.approx(0.3)


class TestNeedAndContext:
    def test_primary_need(self, selector):
        selection = selector.select(InternalState.REGULATED, primary_need="energize")
        assert _score_of(selection, MicroActionId.RESPIRATION_2_1) == pytest.approx(0.15)
        assert _score_of(selection, MicroActionId.BOX_BREATHING) == pytest.approx(0.3)

    def test_unknown_need_adds_nothing(self, selector):
        selection = selector.select(InternalState.REGULATED, primary_need="teleport")
        assert _score_of(selection, MicroActionId.BOX_BREATHING) == pytest.approx(0.3)

    def test_evening_context(self, selector):
        selection = selector.select(
            InternalState.REGULATED,
            context=SituationalContext(time_of_day=TimeOfDay.EVENING),
        )
        entry = next(s for s in selection.ranking if s.action_id == MicroActionId.EXPIRATION_3_8)
        assert entry.score == pytest.approx(0.1)
        assert "Evening wind-down" in entry.reasons

    def test_short_sleep_and_preference(self, selector):
        selection = selector.select(
            InternalState.REGULATED,
            context=SituationalContext(
                sleep_hours=4.5,
                preferred_actions=[MicroActionId.PRESSION_PLANTAIRE],
            ),
        )
        assert _score_of(selection, MicroActionId.RESPIRATION_2_1) == pytest.approx(0.1)
        assert _score_of(selection, MicroActionId.PRESSION_PLANTAIRE) == pytest.approx(0.1)


class TestAntiRepetition:
    def test_penalty_moves_to_runner_up(self, selector):
        history = UserHistory(last_action_id=MicroActionId.PHYSIOLOGICAL_SIGH)
        selection = selector.select(InternalState.HIGH_ACTIVATION, history=history)
        assert selection.action_id == MicroActionId.EXPIRATION_3_8

    def test_last_action_never_wins_with_alternatives(self, selector):
        # Bonuses large enough to survive the penalty
        history = UserHistory(last_action_id=MicroActionId.PHYSIOLOGICAL_SIGH)
        selection = selector.select(
            InternalState.HIGH_ACTIVATION,
            signals=PhysiologicalSignals(facial=FacialSignals(jaw_tension=0.9)),
            context=SituationalContext(
                hrv=25,
                preferred_actions=[MicroActionId.PHYSIOLOGICAL_SIGH],
            ),
            history=history,
        )
        assert selection.ranking[0].action_id == MicroActionId.PHYSIOLOGICAL_SIGH
        assert selection.action_id != MicroActionId.PHYSIOLOGICAL_SIGH

    def test_only_candidate_is_kept(self, selector):
        history = UserHistory(last_action_id=MicroActionId.PHYSIOLOGICAL_SIGH)
        selection = selector.select(
            InternalState.HIGH_ACTIVATION,
            history=history,
            candidates=[MicroActionId.PHYSIOLOGICAL_SIGH],
        )
        assert selection.action_id == MicroActionId.PHYSIOLOGICAL_SIGH


class TestFeedbackHistory:
    def test_feedback_adjusts_scores(self, selector):
        history = UserHistory(
            action_feedback={
                MicroActionId.RESPIRATION_4_6: 3.0,
                MicroActionId.BOX_BREATHING: 1.0,
            }
        )
        selection = selector.select(InternalState.REGULATED, history=history)
        assert _score_of(selection, MicroActionId.RESPIRATION_4_6) == pytest.approx(0.225)
        assert _score_of(selection, MicroActionId.BOX_BREATHING) == pytest.approx(0.375)
        r46 = next(s for s in selection.ranking if s.action_id == MicroActionId.RESPIRATION_4_6)
        assert "Good feedback history" in r46.reasons


class TestFallback:
    def test_catalog_miss_falls_back_to_default(self):
        partial = {k: v for k, v in MICRO_ACTIONS.items() if k != MicroActionId.PHYSIOLOGICAL_SIGH}
        selector = ActionSelector(catalog=partial)
        selection = selector.select(InternalState.HIGH_ACTIVATION, candidates=list(MicroActionId))
        assert selection.fallback is True
        assert selection.action_id == DEFAULT_ACTION
        assert selection.score == 50

    def test_no_candidates_falls_back(self, selector):
        selection = selector.select(InternalState.REGULATED, candidates=[])
        assert selection.fallback is True
        assert selection.action_id == DEFAULT_ACTION
