"""Micro-action catalog — versioned lookup table keyed by :class:`MicroActionId`.

The table is exhaustive over the enum; :func:`_check_catalog` runs at import
time so a missing or mislabelled entry fails immediately instead of at
selection time.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from skane_core.models import ActionCategory, InternalState, MicroActionId

CATALOG_VERSION = "2024.1"

DEFAULT_ACTION = MicroActionId.PHYSIOLOGICAL_SIGH


class StepType(str, Enum):
    INHALE = "inhale"
    EXHALE = "exhale"
    HOLD = "hold"
    ACTION = "action"
    PAUSE = "pause"


class Instruction(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    text_key: str
    duration: int  # seconds
    type: StepType


class MicroAction(BaseModel):
    """A guided corrective micro-action."""

    model_config = ConfigDict(frozen=True)

    id: MicroActionId
    name: str
    name_key: str
    category: ActionCategory
    duration: int  # seconds, whole action
    repetitions: int
    instructions: tuple[Instruction, ...]
    eligible_states: frozenset[InternalState] = Field(default_factory=frozenset)
    tip_key: str | None = None


def _step(text: str, key: str, duration: int, type_: StepType) -> Instruction:
    return Instruction(text=text, text_key=key, duration=duration, type=type_)


_HIGH = InternalState.HIGH_ACTIVATION
_LOW = InternalState.LOW_ENERGY
_REG = InternalState.REGULATED


MICRO_ACTIONS: dict[MicroActionId, MicroAction] = {
    MicroActionId.PHYSIOLOGICAL_SIGH: MicroAction(
        id=MicroActionId.PHYSIOLOGICAL_SIGH,
        name="Physiological Sigh",
        name_key="actions.physiologicalSigh",
        category=ActionCategory.BREATHING,
        duration=24,
        repetitions=3,
        tip_key="actions.tips.physiologicalSigh",
        eligible_states=frozenset({_HIGH}),
        instructions=(
            _step("Inhale through the nose", "breathing.inhaleNose", 2, StepType.INHALE),
            _step("Inhale a little more", "breathing.inhaleMore", 1, StepType.INHALE),
            _step("Exhale slowly through the mouth", "breathing.exhaleSlowMouth", 5, StepType.EXHALE),
        ),
    ),
    MicroActionId.EXPIRATION_3_8: MicroAction(
        id=MicroActionId.EXPIRATION_3_8,
        name="Long exhale",
        name_key="actions.expiration38",
        category=ActionCategory.BREATHING,
        duration=33,
        repetitions=3,
        tip_key="actions.tips.expiration38",
        eligible_states=frozenset({_HIGH}),
        instructions=(
            _step("Inhale through the nose", "breathing.inhaleNose", 3, StepType.INHALE),
            _step("Exhale slowly through the mouth", "breathing.exhaleSlowMouth", 8, StepType.EXHALE),
        ),
    ),
    MicroActionId.RESPIRATION_4_6: MicroAction(
        id=MicroActionId.RESPIRATION_4_6,
        name="Steadying breath",
        name_key="actions.respiration46",
        category=ActionCategory.BREATHING,
        duration=30,
        repetitions=3,
        tip_key="actions.tips.respiration46",
        eligible_states=frozenset({_REG}),
        instructions=(
            _step("Inhale through the nose", "breathing.inhaleNose", 4, StepType.INHALE),
            _step("Exhale gently through the mouth", "breathing.exhaleGentleMouth", 6, StepType.EXHALE),
        ),
    ),
    MicroActionId.BOX_BREATHING: MicroAction(
        id=MicroActionId.BOX_BREATHING,
        name="Box Breathing",
        name_key="actions.boxBreathing",
        category=ActionCategory.BREATHING,
        duration=24,
        repetitions=2,
        eligible_states=frozenset({_REG}),
        instructions=(
            _step("Inhale", "breathing.inhale", 3, StepType.INHALE),
            _step("Hold", "breathing.hold", 3, StepType.HOLD),
            _step("Exhale", "breathing.exhale", 3, StepType.EXHALE),
            _step("Pause", "breathing.pause", 3, StepType.PAUSE),
        ),
    ),
    MicroActionId.RESPIRATION_2_1: MicroAction(
        id=MicroActionId.RESPIRATION_2_1,
        name="Energising breath",
        name_key="actions.respiration21",
        category=ActionCategory.BREATHING,
        duration=30,
        repetitions=10,
        eligible_states=frozenset({_LOW}),
        instructions=(
            _step("Inhale quickly through the nose", "breathing.inhaleQuickNose", 2, StepType.INHALE),
            _step("Exhale through the mouth", "breathing.exhaleMouth", 1, StepType.EXHALE),
        ),
    ),
    MicroActionId.DROP_TRAPEZES: MicroAction(
        id=MicroActionId.DROP_TRAPEZES,
        name="Shoulder drop",
        name_key="actions.dropTrapezes",
        category=ActionCategory.POSTURE,
        duration=20,
        repetitions=5,
        tip_key="actions.tips.dropTrapezes",
        eligible_states=frozenset({_HIGH}),
        instructions=(
            _step("Raise your shoulders", "body.raiseShoulders", 2, StepType.ACTION),
            _step("Release completely", "body.releaseCompletely", 2, StepType.PAUSE),
        ),
    ),
    MicroActionId.OUVERTURE_THORACIQUE: MicroAction(
        id=MicroActionId.OUVERTURE_THORACIQUE,
        name="Chest opener",
        name_key="actions.ouvertureThoracique",
        category=ActionCategory.POSTURE,
        duration=30,
        repetitions=1,
        tip_key="actions.tips.ouvertureThoracique",
        eligible_states=frozenset({_LOW}),
        instructions=(
            _step("Open your chest slightly", "body.openChest", 10, StepType.ACTION),
            _step("Breathe calmly", "body.breatheCalmly", 10, StepType.ACTION),
            _step("Hold the posture", "body.holdPosture", 10, StepType.ACTION),
        ),
    ),
    MicroActionId.POSTURE_ANCRAGE: MicroAction(
        id=MicroActionId.POSTURE_ANCRAGE,
        name="Grounding posture",
        name_key="actions.postureAncrage",
        category=ActionCategory.POSTURE,
        duration=30,
        repetitions=1,
        eligible_states=frozenset({_LOW}),
        instructions=(
            _step("Stand with your feet grounded", "body.standGrounded", 10, StepType.ACTION),
            _step("Look straight ahead", "body.lookAhead", 10, StepType.ACTION),
            _step("Breathe calmly", "body.calmBreathing", 10, StepType.ACTION),
        ),
    ),
    MicroActionId.SHAKE_NEUROMUSCULAIRE: MicroAction(
        id=MicroActionId.SHAKE_NEUROMUSCULAIRE,
        name="Neuromuscular shake",
        name_key="actions.shakeNeuromusculaire",
        category=ActionCategory.MOVEMENT,
        duration=20,
        repetitions=1,
        eligible_states=frozenset({_HIGH}),
        instructions=(
            _step("Gently shake your arms and hands", "body.shakeArms", 10, StepType.ACTION),
            _step("Let your body move freely", "body.moveFreely", 10, StepType.ACTION),
        ),
    ),
    MicroActionId.PRESSION_PLANTAIRE: MicroAction(
        id=MicroActionId.PRESSION_PLANTAIRE,
        name="Foot press",
        name_key="actions.pressionPlantaire",
        category=ActionCategory.SENSORY,
        duration=20,
        repetitions=5,
        eligible_states=frozenset({_LOW, _HIGH}),
        instructions=(
            _step("Press your feet into the floor", "body.pressFeet", 2, StepType.ACTION),
            _step("Release", "body.release", 2, StepType.PAUSE),
        ),
    ),
    MicroActionId.REGARD_FIXE_EXPIRATION: MicroAction(
        id=MicroActionId.REGARD_FIXE_EXPIRATION,
        name="Fixed gaze + exhale",
        name_key="actions.regardFixeExpiration",
        category=ActionCategory.SENSORY,
        duration=24,
        repetitions=3,
        tip_key="actions.tips.regardFixeExpiration",
        eligible_states=frozenset({_REG}),
        instructions=(
            _step("Fix a stable point", "body.fixPoint", 2, StepType.ACTION),
            _step("Inhale calmly", "breathing.inhaleCalmly", 2, StepType.INHALE),
            _step("Exhale slowly and fully", "breathing.exhaleSlowLong", 4, StepType.EXHALE),
        ),
    ),
}

# Offered to anonymous users when the guest shortlist is enforced.
GUEST_MODE_ACTIONS: tuple[MicroActionId, ...] = (
    MicroActionId.PHYSIOLOGICAL_SIGH,
    MicroActionId.BOX_BREATHING,
)


def get_action(action_id: MicroActionId | str) -> MicroAction | None:
    """Look up an action; ``None`` for unknown ids."""
    try:
        return MICRO_ACTIONS.get(MicroActionId(action_id))
    except ValueError:
        return None


def actions_for_state(state: InternalState) -> list[MicroActionId]:
    """Catalog actions eligible for ``state``, in catalog order."""
    return [a.id for a in MICRO_ACTIONS.values() if state in a.eligible_states]


def _check_catalog() -> None:
    missing = set(MicroActionId) - set(MICRO_ACTIONS)
    if missing:
        raise RuntimeError(f"Catalog missing actions: {sorted(a.value for a in missing)}")
    for key, action in MICRO_ACTIONS.items():
        if action.id is not key:
            raise RuntimeError(f"Catalog entry {key.value} carries id {action.id.value}")
        if sum(step.duration for step in action.instructions) <= 0:
            raise RuntimeError(f"Catalog entry {key.value} has no timed steps")
    for state in InternalState:
        if not actions_for_state(state):
            raise RuntimeError(f"No catalog action eligible for {state.value}")


_check_catalog()
