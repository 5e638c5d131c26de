"""Deterministic 32-bit seeding and the mulberry32 generator.

Index values must differ between sessions yet be reproducible within one,
so every draw comes from a generator seeded by a hash of
``"{stable_id}_{session_id}"``.  Independent sub-streams are derived by
XOR-ing that seed with fixed constants.
"""

from __future__ import annotations

import math

from skane_core.engine.models import SeedInputs

_MASK32 = 0xFFFFFFFF

# Sub-stream salts (golden ratio and SHA-1 round constants)
STREAM_BEFORE_SHIFT = 0x00000000
STREAM_BEFORE_NOISE = 0x9E3779B9
STREAM_AFTER_IMPACT = 0x5A827999
STREAM_AFTER_AMPLIFIER = 0x6ED9EBA1
STREAM_AFTER_SHIFT = 0x8F1BBCDC
STREAM_AFTER_NOISE = 0xCA62C1D6


def _imul(a: int, b: int) -> int:
    """32-bit wrapping multiplication."""
    return (a * b) & _MASK32


def hash_string(text: str) -> int:
    """Java-style 31-multiplier string hash, folded to a non-negative 32-bit int.

    Hashes UTF-16 code units, so characters outside the Basic Multilingual
    Plane contribute both halves of their surrogate pair.
    """
    data = text.encode("utf-16-le", "surrogatepass")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & _MASK32
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def generate_seed(seed_inputs: SeedInputs) -> int:
    """Derive the session seed from the injected identity."""
    return hash_string(f"{seed_inputs.stable_id}_{seed_inputs.session_id}")


class Mulberry32:
    """Small, fast, well-distributed 32-bit PRNG.

    Produces floats in ``[0, 1)``.  Two instances with the same seed yield
    the same sequence.
    """

    __slots__ = ("_state",)

    def __init__(self, seed: int) -> None:
        self._state = seed & _MASK32

    @classmethod
    def substream(cls, seed: int, salt: int) -> "Mulberry32":
        return cls((seed ^ salt) & _MASK32)

    def random(self) -> float:
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t = ((t + _imul(t ^ (t >> 7), t | 61)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296.0

    def int_in_range(self, lo: int, hi: int) -> int:
        """Uniform integer in ``[lo, hi]`` inclusive."""
        return math.floor(self.random() * (hi - lo + 1)) + lo

    def float_in_range(self, lo: float, hi: float) -> float:
        """Uniform float in ``[lo, hi)``."""
        return self.random() * (hi - lo) + lo
