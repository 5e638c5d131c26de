"""Decision engine — feature vector to internal state, with hysteresis.

Two weighted axes are computed from the feature vector:

=================  ====================================================
Axis               Emphasis
=================  ====================================================
Activation         brow furrow, jaw tension, head jitter, lip
                   compression, symmetry delta
Energy (deficit)   closed eyes, skin-tone variance, low blink rate,
                   symmetry delta
=================  ====================================================

Entering ``HIGH_ACTIVATION`` or ``LOW_ENERGY`` needs the axis to clear an
*entry* threshold; staying there only needs the lower *exit* threshold.
The classifier holds no state of its own: the previous state is an explicit
argument.
"""

from __future__ import annotations

from typing import Mapping

import structlog

from skane_core.engine.models import FeatureVector
from skane_core.engine.tuning import ClassifierConfig
from skane_core.models import InternalState

logger = structlog.get_logger(__name__)

_INVERSE_PREFIX = "inv_"


def _weighted_axis(features: FeatureVector, weights: Mapping[str, float]) -> float:
    total = 0.0
    for key, weight in weights.items():
        if key.startswith(_INVERSE_PREFIX):
            value = 1.0 - getattr(features, key[len(_INVERSE_PREFIX):])
        else:
            value = getattr(features, key)
        total += weight * value
    return max(0.0, min(1.0, total))


def compute_axes(
    features: FeatureVector,
    config: ClassifierConfig | None = None,
) -> tuple[float, float]:
    """Return ``(activation_axis, energy_axis)``, each in [0, 1]."""
    cfg = config or ClassifierConfig()
    return (
        _weighted_axis(features, cfg.activation_weights),
        _weighted_axis(features, cfg.energy_weights),
    )


class StateClassifier:
    """Map a :class:`FeatureVector` to an :class:`InternalState`.

    Parameters
    ----------
    config : ClassifierConfig | None
        Axis weights and entry/exit thresholds.  Defaults to the production
        tuning.
    """

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self._config = config or ClassifierConfig()

    @property
    def config(self) -> ClassifierConfig:
        return self._config

    def axes(self, features: FeatureVector) -> tuple[float, float]:
        return compute_axes(features, self._config)

    def classify(
        self,
        features: FeatureVector,
        previous_state: InternalState | None = None,
    ) -> InternalState:
        """Classify one scan.

        A previous ``HIGH_ACTIVATION`` (or ``LOW_ENERGY``) is kept as long as
        its axis stays at or above the exit threshold.  Otherwise the normal
        entry thresholds apply, activation first.
        """
        cfg = self._config
        activation, energy = self.axes(features)

        if previous_state == InternalState.HIGH_ACTIVATION and activation >= cfg.high_exit:
            state = InternalState.HIGH_ACTIVATION
        elif previous_state == InternalState.LOW_ENERGY and energy >= cfg.low_exit:
            state = InternalState.LOW_ENERGY
        elif activation >= cfg.high_enter:
            state = InternalState.HIGH_ACTIVATION
        elif energy >= cfg.low_enter:
            state = InternalState.LOW_ENERGY
        else:
            state = InternalState.REGULATED

        logger.debug(
            "decision.classified",
            activation=round(activation, 3),
            energy=round(energy, 3),
            previous=previous_state,
            state=state.value,
        )
        return state


def classify(
    features: FeatureVector,
    previous_state: InternalState | None = None,
) -> InternalState:
    """Classify with the default tuning."""
    return _DEFAULT_CLASSIFIER.classify(features, previous_state)


_DEFAULT_CLASSIFIER = StateClassifier()
