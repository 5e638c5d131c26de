"""Tunable parameter sets for the classifier, the index engine and the selector.

Every table is a plain pydantic model so it can be passed explicitly into
component constructors, validated at construction time and overridden in
tests.  The defaults are the production tables.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from skane_core.models import InternalState, MicroActionId

Range = tuple[int, int]

_WEIGHT_TOLERANCE = 1e-6


# ── Classifier ────────────────────────────────────────────────


class ClassifierConfig(BaseModel):
    """Axis weights and hysteresis thresholds for the state classifier.

    Each axis's weights must sum to 1.0.  Energy-axis keys prefixed with
    ``inv_`` are applied to ``1 - feature``.
    """

    model_config = ConfigDict(frozen=True)

    activation_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "brow_furrow": 0.25,
            "jaw_tension": 0.25,
            "head_jitter": 0.20,
            "lip_compression": 0.15,
            "symmetry_delta": 0.15,
        }
    )
    energy_weights: dict[str, float] = Field(
        default_factory=lambda: {
            "inv_eye_openness": 0.35,
            "skin_tone_variance": 0.25,
            "inv_blink_rate": 0.25,
            "symmetry_delta": 0.15,
        }
    )

    high_enter: float = 0.62
    high_exit: float = 0.55  # must stay above this to remain HIGH_ACTIVATION
    low_enter: float = 0.58
    low_exit: float = 0.50  # must stay above this to remain LOW_ENERGY

    @model_validator(mode="after")
    def _check(self) -> "ClassifierConfig":
        for axis, weights in (
            ("activation", self.activation_weights),
            ("energy", self.energy_weights),
        ):
            total = sum(weights.values())
            if abs(total - 1.0) > _WEIGHT_TOLERANCE:
                raise ValueError(f"{axis} weights sum to {total:.4f}, expected 1.0")
        if self.high_exit > self.high_enter:
            raise ValueError("high_exit must not exceed high_enter")
        if self.low_exit > self.low_enter:
            raise ValueError("low_exit must not exceed low_enter")
        return self


# ── Index engine ──────────────────────────────────────────────


def _per_state(high: Range, low: Range, regulated: Range) -> dict[InternalState, Range]:
    return {
        InternalState.HIGH_ACTIVATION: high,
        InternalState.LOW_ENERGY: low,
        InternalState.REGULATED: regulated,
    }


class IndexConfig(BaseModel):
    """Range tables for the Skane Index generator."""

    model_config = ConfigDict(frozen=True)

    base_before: dict[InternalState, Range] = Field(
        default_factory=lambda: _per_state((83, 91), (78, 88), (42, 58))
    )
    safe_before: dict[InternalState, Range] = Field(
        default_factory=lambda: _per_state((78, 96), (72, 93), (35, 65))
    )
    base_after: dict[InternalState, Range] = Field(
        default_factory=lambda: _per_state((18, 32), (20, 35), (18, 30))
    )
    safe_after: dict[InternalState, Range] = Field(
        default_factory=lambda: _per_state((12, 38), (14, 42), (10, 36))
    )
    impact_base: dict[InternalState, Range] = Field(
        default_factory=lambda: _per_state((52, 68), (45, 62), (18, 30))
    )
    min_delta: dict[InternalState, int] = Field(
        default_factory=lambda: {
            InternalState.HIGH_ACTIVATION: 45,
            InternalState.LOW_ENERGY: 38,
            InternalState.REGULATED: 15,
        }
    )
    action_bonus: dict[MicroActionId, int] = Field(
        default_factory=lambda: {
            MicroActionId.PHYSIOLOGICAL_SIGH: 6,
            MicroActionId.EXPIRATION_3_8: 5,
            MicroActionId.SHAKE_NEUROMUSCULAIRE: 4,
            MicroActionId.DROP_TRAPEZES: 3,
            MicroActionId.BOX_BREATHING: 2,
            MicroActionId.RESPIRATION_4_6: 2,
            MicroActionId.RESPIRATION_2_1: 2,
            MicroActionId.OUVERTURE_THORACIQUE: 1,
            MicroActionId.POSTURE_ANCRAGE: 1,
            MicroActionId.PRESSION_PLANTAIRE: 1,
            MicroActionId.REGARD_FIXE_EXPIRATION: 1,
        }
    )
    amplifier_bonus: tuple[float, float] = (4.0, 9.0)
    range_shift: Range = (-5, 5)
    value_noise: tuple[float, float] = (-2.0, 2.0)
    min_range_width: int = 6
    dysregulation_edges: tuple[float, float] = (0.35, 0.85)

    # Raise instead of degrading when the minimum delta cannot be honoured.
    strict: bool = False

    @model_validator(mode="after")
    def _check(self) -> "IndexConfig":
        per_state_tables = {
            "base_before": self.base_before,
            "safe_before": self.safe_before,
            "base_after": self.base_after,
            "safe_after": self.safe_after,
            "impact_base": self.impact_base,
            "min_delta": self.min_delta,
        }
        for name, table in per_state_tables.items():
            missing = set(InternalState) - set(table)
            if missing:
                raise ValueError(f"{name} is missing states: {sorted(s.value for s in missing)}")
        missing_actions = set(MicroActionId) - set(self.action_bonus)
        if missing_actions:
            raise ValueError(
                f"action_bonus is missing actions: {sorted(a.value for a in missing_actions)}"
            )
        return self


# ── Action selector ───────────────────────────────────────────


class SelectorConfig(BaseModel):
    """Weights and lookup tables for the multi-factor action selector."""

    model_config = ConfigDict(frozen=True)

    state_priority: dict[InternalState, list[MicroActionId]] = Field(
        default_factory=lambda: {
            InternalState.HIGH_ACTIVATION: [
                MicroActionId.PHYSIOLOGICAL_SIGH,
                MicroActionId.EXPIRATION_3_8,
                MicroActionId.DROP_TRAPEZES,
            ],
            InternalState.LOW_ENERGY: [
                MicroActionId.RESPIRATION_2_1,
                MicroActionId.POSTURE_ANCRAGE,
                MicroActionId.OUVERTURE_THORACIQUE,
            ],
            InternalState.REGULATED: [
                MicroActionId.BOX_BREATHING,
                MicroActionId.RESPIRATION_4_6,
                MicroActionId.REGARD_FIXE_EXPIRATION,
            ],
        }
    )
    need_boosts: dict[str, dict[MicroActionId, float]] = Field(
        default_factory=lambda: {
            "calm_down": {
                MicroActionId.PHYSIOLOGICAL_SIGH: 0.3,
                MicroActionId.EXPIRATION_3_8: 0.3,
            },
            "energize": {
                MicroActionId.RESPIRATION_2_1: 0.3,
                MicroActionId.POSTURE_ANCRAGE: 0.3,
            },
            "focus": {
                MicroActionId.BOX_BREATHING: 0.3,
                MicroActionId.REGARD_FIXE_EXPIRATION: 0.2,
            },
            "release_tension": {
                MicroActionId.DROP_TRAPEZES: 0.3,
                MicroActionId.SHAKE_NEUROMUSCULAIRE: 0.2,
            },
            "rest": {
                MicroActionId.RESPIRATION_4_6: 0.3,
                MicroActionId.EXPIRATION_3_8: 0.2,
            },
            "maintain": {MicroActionId.BOX_BREATHING: 0.2},
        }
    )
    default_need: str = "maintain"

    state_weight: float = 0.3
    need_weight: float = 0.5
    tension_threshold: float = 0.6
    fatigue_threshold: float = 0.6
    activation_level_threshold: float = 70.0
    low_hrv_ms: float = 40.0
    short_sleep_hours: float = 6.0
    context_bonus: float = 0.1
    preference_bonus: float = 0.1
    repetition_penalty: float = 0.3
    feedback_weight: float = 0.05
    reasons_in_summary: int = 3
