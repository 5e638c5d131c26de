"""Score engine — raw dysregulation and the cosmetic Skane Index pair.

The Skane Index is a narrative of improvement, not a measurement.  It must

1. look different every session, even for the same user and state,
2. be reproducible within a session (refreshing a result screen shows the
   same numbers), and
3. always show a large improvement: ``before - after >= min_delta[state]``.

Every random draw comes from a :class:`Mulberry32` sub-stream seeded by the
session identity, so the same ``(state, raw, identity, action, amplifier)``
inputs always produce the same integers.

Minimum delta versus the after-range
------------------------------------
When forcing ``after = before - min_delta`` lands outside the shifted
after-range, the minimum delta wins: the after-range is a cosmetic target,
the delta is the invariant.  Only when no value in [0, 100] can satisfy the
delta (a misconfigured table) is the invariant reported, by raising
:class:`InvariantViolationError` in strict mode or logging and returning the
clamped value otherwise.
"""

from __future__ import annotations

import structlog

from skane_core.engine import seeding
from skane_core.engine.decision import compute_axes
from skane_core.engine.models import FeatureVector, SeedInputs
from skane_core.engine.seeding import Mulberry32
from skane_core.engine.tuning import ClassifierConfig, IndexConfig
from skane_core.errors import InvariantViolationError
from skane_core.models import IndexPair, InternalState, MicroActionId

logger = structlog.get_logger(__name__)


# ── Helpers ───────────────────────────────────────────────────


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def smoothstep(edge0: float, edge1: float, x: float) -> float:
    """Hermite interpolation: 0 below ``edge0``, 1 above ``edge1``."""
    t = clamp((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3 - 2 * t)


# ── Raw dysregulation ────────────────────────────────────────


def compute_raw_dysregulation(
    features: FeatureVector,
    config: ClassifierConfig | None = None,
) -> float:
    """Summarise how far the face is from baseline, in [0, 1].

    Blend of the dominant axis (55 %) and the mean of all eight features
    (45 %).
    """
    activation, energy = compute_axes(features, config)
    raw = 0.55 * max(activation, energy) + 0.45 * features.mean()
    return clamp(raw, 0.0, 1.0)


# ── Index engine ──────────────────────────────────────────────


class IndexEngine:
    """Deterministic before/after Skane Index generator.

    Parameters
    ----------
    config : IndexConfig | None
        Range tables, bonuses and the strict-invariant switch.
    """

    def __init__(self, config: IndexConfig | None = None) -> None:
        self._config = config or IndexConfig()

    @property
    def config(self) -> IndexConfig:
        return self._config

    def _shifted_range(
        self,
        rng: Mulberry32,
        base: tuple[int, int],
        safe: tuple[int, int],
    ) -> tuple[float, float]:
        shift = rng.int_in_range(*self._config.range_shift)
        lo = clamp(base[0] + shift, *safe)
        hi = clamp(base[1] + shift, *safe)
        return lo, hi

    def compute_before(
        self,
        state: InternalState,
        raw_dysregulation: float,
        seed_inputs: SeedInputs,
    ) -> int:
        """Return the "before" index for a scan, an integer in [0, 100]."""
        cfg = self._config
        state = InternalState(state)
        seed = seeding.generate_seed(seed_inputs)
        shift_rng = Mulberry32.substream(seed, seeding.STREAM_BEFORE_SHIFT)
        noise_rng = Mulberry32.substream(seed, seeding.STREAM_BEFORE_NOISE)

        safe_lo, safe_hi = cfg.safe_before[state]
        lo, hi = self._shifted_range(shift_rng, cfg.base_before[state], (safe_lo, safe_hi))
        if hi - lo < cfg.min_range_width:
            hi = clamp(lo + cfg.min_range_width, safe_lo, safe_hi)

        raw = clamp(raw_dysregulation, 0.0, 1.0)
        score = lerp(lo, hi, smoothstep(*cfg.dysregulation_edges, raw))
        score += noise_rng.float_in_range(*cfg.value_noise)
        score = clamp(score, safe_lo, safe_hi)

        return int(clamp(round(score), 0, 100))

    def compute_after(
        self,
        state: InternalState,
        action_id: MicroActionId | None,
        amplifier_enabled: bool,
        seed_inputs: SeedInputs,
        before_index: int,
    ) -> int:
        """Return the "after" index for a session, an integer in [0, 100].

        The minimum-delta enforcement runs last, after every random draw.
        """
        cfg = self._config
        state = InternalState(state)
        seed = seeding.generate_seed(seed_inputs)
        impact_rng = Mulberry32.substream(seed, seeding.STREAM_AFTER_IMPACT)
        amp_rng = Mulberry32.substream(seed, seeding.STREAM_AFTER_AMPLIFIER)
        shift_rng = Mulberry32.substream(seed, seeding.STREAM_AFTER_SHIFT)
        noise_rng = Mulberry32.substream(seed, seeding.STREAM_AFTER_NOISE)

        # 1. Total impact
        impact = impact_rng.float_in_range(*cfg.impact_base[state])
        if action_id is not None:
            impact += cfg.action_bonus[MicroActionId(action_id)]
        if amplifier_enabled:
            impact += amp_rng.float_in_range(*cfg.amplifier_bonus)

        # 2. Re-project into the shifted after-range, then noise
        lo, hi = self._shifted_range(shift_rng, cfg.base_after[state], cfg.safe_after[state])
        after = clamp(before_index - impact, lo, hi)
        after += noise_rng.float_in_range(*cfg.value_noise)

        # 3. Minimum delta
        min_delta = cfg.min_delta[state]
        if before_index - after < min_delta:
            after = clamp(before_index - min_delta, lo, hi)
            if before_index - after < min_delta:
                after = before_index - min_delta

        result = int(clamp(round(after), 0, 100))
        if before_index - result < min_delta:
            self._report_violation(state, before_index, result, min_delta)
        return result

    def compute_pair(
        self,
        state: InternalState,
        raw_dysregulation: float,
        action_id: MicroActionId | None,
        amplifier_enabled: bool,
        seed_inputs: SeedInputs,
    ) -> IndexPair:
        before = self.compute_before(state, raw_dysregulation, seed_inputs)
        after = self.compute_after(state, action_id, amplifier_enabled, seed_inputs, before)
        return IndexPair(before=before, after=after)

    def _report_violation(
        self,
        state: InternalState,
        before: int,
        after: int,
        min_delta: int,
    ) -> None:
        message = (
            f"Skane Index delta {before - after} below minimum {min_delta} "
            f"for {state.value} (before={before}, after={after})"
        )
        if self._config.strict:
            raise InvariantViolationError(message)
        logger.warning(
            "index.invariant_violation",
            state=state.value,
            before=before,
            after=after,
            min_delta=min_delta,
        )
