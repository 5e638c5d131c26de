"""Shared enums and value objects used across the framework."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# ── Enums ─────────────────────────────────────────────────────


class InternalState(str, Enum):
    """Hidden activation classification.  Never shown to the end user."""

    HIGH_ACTIVATION = "HIGH_ACTIVATION"
    LOW_ENERGY = "LOW_ENERGY"
    REGULATED = "REGULATED"


class FlowState(str, Enum):
    """Lifecycle position of a skane session."""

    IDLE = "IDLE"
    SCANNING = "SCANNING"
    DECIDE = "DECIDE"
    ACTION = "ACTION"
    FEEDBACK = "FEEDBACK"
    RESULT = "RESULT"
    SHARE = "SHARE"
    ERROR = "ERROR"


class UserFeedback(str, Enum):
    """Self-reported outcome after a micro-action."""

    WORSE = "worse"
    SAME = "same"
    BETTER = "better"

    @property
    def score(self) -> int:
        """Numeric score used for historical averages (1-3)."""
        return _FEEDBACK_SCORES[self]


_FEEDBACK_SCORES = {
    UserFeedback.WORSE: 1,
    UserFeedback.SAME: 2,
    UserFeedback.BETTER: 3,
}


class MicroActionId(str, Enum):
    """Closed set of micro-action identifiers.

    Renaming a member invalidates historical feedback keyed by its value.
    """

    PHYSIOLOGICAL_SIGH = "physiological_sigh"
    EXPIRATION_3_8 = "expiration_3_8"
    RESPIRATION_4_6 = "respiration_4_6"
    BOX_BREATHING = "box_breathing"
    RESPIRATION_2_1 = "respiration_2_1"
    DROP_TRAPEZES = "drop_trapezes"
    OUVERTURE_THORACIQUE = "ouverture_thoracique"
    POSTURE_ANCRAGE = "posture_ancrage"
    SHAKE_NEUROMUSCULAIRE = "shake_neuromusculaire"
    PRESSION_PLANTAIRE = "pression_plantaire"
    REGARD_FIXE_EXPIRATION = "regard_fixe_expiration"


class ActionCategory(str, Enum):
    BREATHING = "breathing"
    POSTURE = "posture"
    MOVEMENT = "movement"
    SENSORY = "sensory"


class AmplifierType(str, Enum):
    """Optional sensory add-on appended to a micro-action."""

    WARM_SIP = "warm_sip"
    FIXED_GAZE_EXPIRATION = "fixed_gaze_expiration"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


# ── Value objects ─────────────────────────────────────────────


class IndexPair(BaseModel):
    """Cosmetic before/after Skane Index shown to the user."""

    model_config = ConfigDict(frozen=True)

    before: int = Field(ge=0, le=100)
    after: int = Field(ge=0, le=100)

    @property
    def delta(self) -> int:
        return self.before - self.after
