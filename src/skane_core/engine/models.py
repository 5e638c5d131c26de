"""Pydantic models for the decision and scoring engine.

These models represent:
- The normalised eight-field feature vector produced by a scan
- Identity inputs used to seed the index generator
- Physiological sub-signals, situational context and user history consumed
  by the action selector
- The selector's ranked output with its reasoning trail
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from skane_core.models import (
    ActionCategory,
    AmplifierType,
    InternalState,
    MicroActionId,
    TimeOfDay,
)

FEATURE_NAMES: tuple[str, ...] = (
    "eye_openness",
    "blink_rate",
    "brow_furrow",
    "jaw_tension",
    "lip_compression",
    "head_jitter",
    "skin_tone_variance",
    "symmetry_delta",
)


# ── Feature vector ────────────────────────────────────────────


class FeatureVector(BaseModel):
    """Complete, bounded facial feature vector for a single scan.

    Immutable once computed.  Every field is a float in [0, 1].
    """

    model_config = ConfigDict(frozen=True)

    eye_openness: float = Field(ge=0.0, le=1.0)
    blink_rate: float = Field(ge=0.0, le=1.0)
    brow_furrow: float = Field(ge=0.0, le=1.0)
    jaw_tension: float = Field(ge=0.0, le=1.0)
    lip_compression: float = Field(ge=0.0, le=1.0)
    head_jitter: float = Field(ge=0.0, le=1.0)
    skin_tone_variance: float = Field(ge=0.0, le=1.0)
    symmetry_delta: float = Field(ge=0.0, le=1.0)

    def mean(self) -> float:
        return sum(getattr(self, name) for name in FEATURE_NAMES) / len(FEATURE_NAMES)


# ── Identity ──────────────────────────────────────────────────


class SeedInputs(BaseModel):
    """Identity inputs for the deterministic index generator.

    ``device_id`` is the caller-supplied anonymous identity used when no
    user is signed in (guest mode).
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    user_id: str | None = None
    device_id: str = "guest"

    @property
    def stable_id(self) -> str:
        return self.user_id or self.device_id


# ── Selector inputs ───────────────────────────────────────────


class FacialSignals(BaseModel):
    forehead_tension: float | None = None
    jaw_tension: float | None = None
    eye_openness: float | None = None
    blink_frequency: float | None = None


class PosturalSignals(BaseModel):
    shoulder_tension: float | None = None
    neck_tension: float | None = None
    head_forward: float | None = None


class RespiratorySignals(BaseModel):
    breathing_depth: float | None = None
    breathing_rate: float | None = None


class PhysiologicalSignals(BaseModel):
    """Optional sub-signals grouped by body area."""

    facial: FacialSignals = Field(default_factory=FacialSignals)
    postural: PosturalSignals = Field(default_factory=PosturalSignals)
    respiratory: RespiratorySignals = Field(default_factory=RespiratorySignals)


class SituationalContext(BaseModel):
    """Situational hints: time of day, biometrics, declared preferences."""

    time_of_day: TimeOfDay | None = None
    hrv: float | None = Field(None, description="Heart-rate variability (ms RMSSD).")
    sleep_hours: float | None = None
    preferred_actions: list[MicroActionId] = Field(default_factory=list)


class UserHistory(BaseModel):
    """Per-user history relevant to action selection."""

    last_action_id: MicroActionId | None = None
    action_feedback: dict[MicroActionId, float] = Field(
        default_factory=dict,
        description="Action id → mean feedback score (1=worse, 3=better).",
    )


# ── Selector output ───────────────────────────────────────────


class ScoredAction(BaseModel):
    """One catalog entry with its accumulated score and reasons."""

    action_id: MicroActionId
    score: float = 0.0
    reasons: list[str] = Field(default_factory=list)


class ActionSelection(BaseModel):
    """Winner of a selection round plus the ranked trail for analytics."""

    action_id: MicroActionId
    name: str
    category: ActionCategory
    duration_seconds: int
    score: int
    reasoning: str
    ranking: list[ScoredAction] = Field(default_factory=list)
    fallback: bool = False


class Amplifier(BaseModel):
    """Amplifier decision attached to a session."""

    enabled: bool = False
    type: AmplifierType | None = None


class ScanOutcome(BaseModel):
    """Everything derived from one scan, before it is committed to a session."""

    model_config = ConfigDict(frozen=True)

    features: FeatureVector
    internal_state: InternalState
    raw_dysregulation: float = Field(ge=0.0, le=1.0)
    before_index: int = Field(ge=0, le=100)
    after_index: int = Field(ge=0, le=100)
    selection: ActionSelection
    amplifier: Amplifier
