"""Signal normalisation — partial upstream estimates to a complete feature vector.

The vision model returns zero or more facial estimates, sometimes under
source-specific names (``forehead_tension`` instead of ``brow_furrow``,
``head_stability`` instead of ``head_jitter``).  :func:`normalize_signals`
turns whatever arrived into a full :class:`FeatureVector`.

Each missing field is filled, in order of preference, from

1. a direct analogous upstream field,
2. a value inferred from other supplied fields,
3. a neutral default describing a regulated baseline.

The function is total: malformed values (``None``, strings, NaN) are treated
as absent, numbers are clamped to [0, 1], and nothing raises.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Mapping

import structlog
from pydantic import BaseModel

from skane_core.engine.models import FEATURE_NAMES, FeatureVector

logger = structlog.get_logger(__name__)

# ── Defaults ──────────────────────────────────────────────────

# Mid-range values for a regulated face, used when nothing better exists.
DEFAULT_FEATURES: dict[str, float] = {
    "eye_openness": 0.6,
    "blink_rate": 0.4,
    "brow_furrow": 0.3,
    "jaw_tension": 0.3,
    "lip_compression": 0.2,
    "head_jitter": 0.2,
    "skin_tone_variance": 0.3,
    "symmetry_delta": 0.2,
}

# Upstream analogues: feature → [(source field, transform)]
_ANALOGUES: dict[str, list[tuple[str, Callable[[float], float]]]] = {
    "brow_furrow": [("forehead_tension", lambda v: v), ("brow_tension", lambda v: v)],
    "head_jitter": [("head_stability", lambda v: 1.0 - v), ("micro_movements", lambda v: v)],
    "blink_rate": [("blink_frequency", lambda v: v)],
    "eye_openness": [("eye_lid_droop", lambda v: 1.0 - v)],
}


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, value))


def _coerce(value: Any) -> float | None:
    """Return a finite float or ``None`` for anything unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return clamp(number)


def _as_mapping(raw: Any) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    if isinstance(raw, Mapping):
        return raw
    logger.warning("signals.unsupported_input", type=type(raw).__name__)
    return {}


# ── Inference rules ───────────────────────────────────────────


def _infer_skin_tone_variance(known: dict[str, float]) -> float | None:
    """Skin-tone variance tracks overall facial tension."""
    sources = [known[k] for k in ("brow_furrow", "jaw_tension", "lip_compression") if k in known]
    if not sources:
        return None
    return sum(sources) / len(sources)


def _infer_symmetry_delta(known: dict[str, float]) -> float | None:
    """Asymmetry grows with tension imbalance and off-centre eye openness."""
    parts: list[float] = []
    if "brow_furrow" in known and "jaw_tension" in known:
        parts.append(abs(known["brow_furrow"] - known["jaw_tension"]) * 0.5)
    if "eye_openness" in known:
        parts.append(abs(known["eye_openness"] - 0.5) * 0.5)
    if not parts:
        return None
    return sum(parts)


_INFERENCES: dict[str, Callable[[dict[str, float]], float | None]] = {
    "skin_tone_variance": _infer_skin_tone_variance,
    "symmetry_delta": _infer_symmetry_delta,
}


# ── Public API ────────────────────────────────────────────────


def normalize_signals(raw: Mapping[str, Any] | BaseModel | None) -> FeatureVector:
    """Build a complete :class:`FeatureVector` from partial upstream signals.

    Parameters
    ----------
    raw
        A mapping (or pydantic model) with zero or more of the eight feature
        names and/or their upstream analogues.  Extra keys are ignored.

    Returns
    -------
    FeatureVector
        Eight values, each clamped to [0, 1].
    """
    if isinstance(raw, FeatureVector):
        return raw

    source = _as_mapping(raw)
    known: dict[str, float] = {}
    origin: dict[str, str] = {}

    # 1. Direct fields, then analogues
    for name in FEATURE_NAMES:
        direct = _coerce(source.get(name))
        if direct is not None:
            known[name] = direct
            origin[name] = "direct"
            continue
        for field, transform in _ANALOGUES.get(name, []):
            value = _coerce(source.get(field))
            if value is not None:
                known[name] = clamp(transform(value))
                origin[name] = f"analogue:{field}"
                break

    # 2. Inferred from what was supplied
    inferred: dict[str, float] = {}
    for name, rule in _INFERENCES.items():
        if name in known:
            continue
        value = rule(known)
        if value is not None:
            inferred[name] = clamp(value)
            origin[name] = "inferred"

    # 3. Defaults
    values = {
        name: known.get(name, inferred.get(name, DEFAULT_FEATURES[name]))
        for name in FEATURE_NAMES
    }
    defaulted = [name for name in FEATURE_NAMES if name not in origin]

    if defaulted:
        logger.debug("signals.defaults_applied", fields=defaulted)

    return FeatureVector(**values)


def generate_default_features() -> FeatureVector:
    """Return the neutral regulated baseline vector."""
    return FeatureVector(**DEFAULT_FEATURES)
