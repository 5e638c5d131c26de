"""Tests for seeding and the Skane Index engine."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from skane_core.engine.models import SeedInputs
from skane_core.engine.scoring import IndexEngine, compute_raw_dysregulation, smoothstep
from skane_core.engine.seeding import Mulberry32, generate_seed, hash_string
from skane_core.engine.tuning import IndexConfig
from skane_core.errors import InvariantViolationError
from skane_core.models import InternalState, MicroActionId

RAW_GRID = (0.0, 0.2, 0.35, 0.5, 0.7, 0.85, 0.9, 1.0)


# ── Seeding ───────────────────────────────────────────────────


class TestSeeding:
    def test_hash_string_known_values(self):
        assert hash_string("") == 0
        assert hash_string("a") == 97
        assert hash_string("ab") == 97 * 31 + 98

    def test_hash_string_is_non_negative_32_bit(self):
        for text in ("user-123_session-456", "x" * 500, "ümlaut_✓"):
            h = hash_string(text)
            assert 0 <= h <= 2**31

    def test_hash_string_uses_utf16_code_units(self):
        # U+1F600 is the surrogate pair D83D DE00
        assert hash_string("\U0001F600") == 0xD83D * 31 + 0xDE00
        assert hash_string("é") == 0xE9

    def test_seed_prefers_user_over_device(self):
        a = SeedInputs(session_id="s1", user_id="u1", device_id="dev-a")
        b = SeedInputs(session_id="s1", user_id="u1", device_id="dev-b")
        assert generate_seed(a) == generate_seed(b)

    def test_guest_seed_uses_device(self):
        a = SeedInputs(session_id="s1", device_id="dev-a")
        b = SeedInputs(session_id="s1", device_id="dev-b")
        assert generate_seed(a) != generate_seed(b)

    def test_mulberry32_reproducible(self):
        a, b = Mulberry32(1234), Mulberry32(1234)
        assert [a.random() for _ in range(10)] == [b.random() for _ in range(10)]

    def test_mulberry32_range(self):
        rng = Mulberry32(42)
        for _ in range(1000):
            assert 0.0 <= rng.random() < 1.0

    def test_int_in_range_inclusive(self):
        rng = Mulberry32(7)
        seen = {rng.int_in_range(-2, 2) for _ in range(500)}
        assert seen == {-2, -1, 0, 1, 2}

    def test_substreams_differ(self):
        a = Mulberry32.substream(99, 0)
        b = Mulberry32.substream(99, 0x9E3779B9)
        assert a.random() != b.random()


# ── Raw dysregulation ────────────────────────────────────────


class TestRawDysregulation:
    def test_high_activation_scenario(self, high_activation_features):
        raw = compute_raw_dysregulation(high_activation_features)
        assert raw == pytest.approx(0.55 * 0.805 + 0.45 * 0.675)

    def test_bounded(self, regulated_features, low_energy_features):
        for fv in (regulated_features, low_energy_features):
            assert 0.0 <= compute_raw_dysregulation(fv) <= 1.0

    def test_smoothstep_saturates(self):
        assert smoothstep(0.35, 0.85, 0.0) == 0.0
        assert smoothstep(0.35, 0.85, 1.0) == 1.0
        assert smoothstep(0.35, 0.85, 0.6) == pytest.approx(0.5)


# ── Index engine ──────────────────────────────────────────────


class TestComputeBefore:
    def test_integer_in_safe_range(self):
        engine = IndexEngine()
        cfg = engine.config
        for state in InternalState:
            lo, hi = cfg.safe_before[state]
            for i in range(30):
                seed = SeedInputs(session_id=f"s-{i}", user_id="u1")
                for raw in RAW_GRID:
                    before = engine.compute_before(state, raw, seed)
                    assert isinstance(before, int)
                    assert 0 <= before <= 100
                    assert lo <= before <= hi

    def test_out_of_range_raw_is_clamped(self, seed):
        engine = IndexEngine()
        state = InternalState.LOW_ENERGY
        assert engine.compute_before(state, 5.0, seed) == engine.compute_before(state, 1.0, seed)
        assert engine.compute_before(state, -3.0, seed) == engine.compute_before(state, 0.0, seed)

    def test_monotonic_in_raw_for_same_session(self, seed):
        engine = IndexEngine()
        for state in InternalState:
            values = [engine.compute_before(state, raw, seed) for raw in RAW_GRID]
            assert values == sorted(values)

    def test_varies_across_sessions(self):
        engine = IndexEngine()
        values = {
            engine.compute_before(InternalState.HIGH_ACTIVATION, 0.8, SeedInputs(session_id=f"s-{i}"))
            for i in range(40)
        }
        assert len(values) > 1

    def test_accepts_state_value_strings(self, seed):
        engine = IndexEngine()
        assert engine.compute_before("REGULATED", 0.5, seed) == engine.compute_before(  # type: ignore[arg-type]
            InternalState.REGULATED, 0.5, seed
        )


class TestComputeAfter:
    def test_end_to_end_high_activation(self, seed):
        engine = IndexEngine()
        before = engine.compute_before(InternalState.HIGH_ACTIVATION, 0.9, seed)
        assert 78 <= before <= 96
        after = engine.compute_after(
            InternalState.HIGH_ACTIVATION,
            MicroActionId.PHYSIOLOGICAL_SIGH,
            False,
            seed,
            before,
        )
        assert before - after >= 45

    def test_deterministic(self, seed):
        engine = IndexEngine()
        for state in InternalState:
            first = engine.compute_pair(state, 0.66, MicroActionId.BOX_BREATHING, True, seed)
            second = engine.compute_pair(state, 0.66, MicroActionId.BOX_BREATHING, True, seed)
            assert first == second

    def test_separate_engines_agree(self, seed):
        a = IndexEngine().compute_pair(InternalState.LOW_ENERGY, 0.5, None, False, seed)
        b = IndexEngine().compute_pair(InternalState.LOW_ENERGY, 0.5, None, False, seed)
        assert a == b

    def test_min_delta_holds_everywhere(self):
        engine = IndexEngine()
        cfg = engine.config
        for state in InternalState:
            min_delta = cfg.min_delta[state]
            for i in range(25):
                seed = SeedInputs(session_id=f"session-{i}", user_id=None, device_id=f"dev-{i % 3}")
                for raw in (0.0, 0.5, 1.0):
                    before = engine.compute_before(state, raw, seed)
                    for action in (None, *MicroActionId):
                        for amplifier in (False, True):
                            after = engine.compute_after(state, action, amplifier, seed, before)
                            assert 0 <= after <= 100
                            assert before - after >= min_delta

    def test_pair_reports_delta(self, seed):
        pair = IndexEngine().compute_pair(
            InternalState.REGULATED, 0.3, MicroActionId.RESPIRATION_4_6, False, seed
        )
        assert pair.delta == pair.before - pair.after
        assert pair.delta >= 15


class TestInvariantViolation:
    def _broken_config(self, strict: bool) -> IndexConfig:
        min_delta = {
            InternalState.HIGH_ACTIVATION: 45,
            InternalState.LOW_ENERGY: 38,
            InternalState.REGULATED: 90,
        }
        return IndexConfig(min_delta=min_delta, strict=strict)

    def test_strict_mode_raises(self, seed):
        engine = IndexEngine(self._broken_config(strict=True))
        before = engine.compute_before(InternalState.REGULATED, 0.5, seed)
        with pytest.raises(InvariantViolationError):
            engine.compute_after(InternalState.REGULATED, None, False, seed, before)

    def test_lenient_mode_returns_clamped_value(self, seed):
        engine = IndexEngine(self._broken_config(strict=False))
        before = engine.compute_before(InternalState.REGULATED, 0.5, seed)
        after = engine.compute_after(InternalState.REGULATED, None, False, seed, before)
        assert after == 0


class TestIndexConfig:
    def test_missing_state_rejected(self):
        with pytest.raises(ValidationError):
            IndexConfig(min_delta={InternalState.HIGH_ACTIVATION: 45})

    def test_missing_action_bonus_rejected(self):
        with pytest.raises(ValidationError):
            IndexConfig(action_bonus={MicroActionId.PHYSIOLOGICAL_SIGH: 6})
