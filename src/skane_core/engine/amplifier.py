"""Amplifier engine — optional sensory add-on appended to a micro-action."""

from __future__ import annotations

from skane_core.models import AmplifierType, InternalState

# Only actions shorter than this leave room for an amplifier step.
MAX_ACTION_SECONDS_FOR_AMPLIFIER = 25

DEFAULT_MIN_DYSREGULATION = 0.70

_DURATIONS = {
    AmplifierType.WARM_SIP: 5,
    AmplifierType.FIXED_GAZE_EXPIRATION: 8,
}

_INSTRUCTIONS = {
    AmplifierType.WARM_SIP: "Take one warm, mindful sip",
    AmplifierType.FIXED_GAZE_EXPIRATION: "Fixed gaze, long exhale",
}


def should_enable_amplifier(
    state: InternalState,
    raw_dysregulation: float,
    used_today: bool,
    min_dysregulation: float = DEFAULT_MIN_DYSREGULATION,
) -> bool:
    """An amplifier is offered at most once a day, only to strongly dysregulated scans."""
    if state == InternalState.REGULATED:
        return False
    if raw_dysregulation < min_dysregulation:
        return False
    return not used_today


def select_amplifier(state: InternalState, action_duration: int) -> AmplifierType | None:
    """Pick the amplifier matching the state, or ``None`` if the action is too long."""
    if action_duration >= MAX_ACTION_SECONDS_FOR_AMPLIFIER:
        return None
    if state == InternalState.HIGH_ACTIVATION:
        return AmplifierType.WARM_SIP
    if state == InternalState.LOW_ENERGY:
        return AmplifierType.FIXED_GAZE_EXPIRATION
    return None


def get_amplifier_duration(amplifier: AmplifierType | None) -> int:
    if amplifier is None:
        return 0
    return _DURATIONS[amplifier]


def get_amplifier_instructions(amplifier: AmplifierType | None) -> str:
    if amplifier is None:
        return ""
    return _INSTRUCTIONS[amplifier]
