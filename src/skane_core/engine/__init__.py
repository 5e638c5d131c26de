"""Decision and scoring core — pure, synchronous components.

Architecture
------------
1. **Signal normaliser** (`signals.py`)
   - Partial upstream estimates → complete, bounded feature vector
   - Analogue mapping, inference from related fields, neutral defaults

2. **State classifier** (`decision.py`)
   - Weighted activation / energy axes
   - Entry and exit thresholds per axis (hysteresis)

3. **Index engine** (`scoring.py`, `seeding.py`)
   - Raw dysregulation scalar
   - Seeded before/after Skane Index with a per-state minimum gap

4. **Action selector** (`selector.py`, `catalog.py`, `amplifier.py`)
   - Multi-factor weighted scoring over the micro-action catalog
   - Anti-repetition and historical feedback
   - Optional amplifier step

Design principles
-----------------
- No I/O and no shared mutable state: every input is an explicit argument,
  tunables arrive as config objects (`tuning.py`).
- The same session identity always reproduces the same numbers.
"""

from skane_core.engine.decision import StateClassifier, classify, compute_axes
from skane_core.engine.models import (
    ActionSelection,
    Amplifier,
    FeatureVector,
    PhysiologicalSignals,
    ScanOutcome,
    SeedInputs,
    SituationalContext,
    UserHistory,
)
from skane_core.engine.scoring import IndexEngine, compute_raw_dysregulation
from skane_core.engine.selector import ActionSelector
from skane_core.engine.signals import generate_default_features, normalize_signals
from skane_core.engine.tuning import ClassifierConfig, IndexConfig, SelectorConfig

__all__ = [
    "ActionSelection",
    "ActionSelector",
    "Amplifier",
    "ClassifierConfig",
    "FeatureVector",
    "IndexConfig",
    "IndexEngine",
    "PhysiologicalSignals",
    "ScanOutcome",
    "SeedInputs",
    "SelectorConfig",
    "SituationalContext",
    "StateClassifier",
    "UserHistory",
    "classify",
    "compute_axes",
    "compute_raw_dysregulation",
    "generate_default_features",
    "normalize_signals",
]
