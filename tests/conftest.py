"""Shared pytest fixtures."""

from __future__ import annotations

import os
import tempfile
import uuid
from pathlib import Path

# Point the service at a throwaway database before any skane_core import
# reads (and caches) the settings.
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="skane-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR / 'skane-test.db'}")

import pytest  # noqa: E402

from skane_core.engine.models import FeatureVector, SeedInputs  # noqa: E402
from skane_core.flow.orchestrator import FlowOrchestrator  # noqa: E402
from skane_core.flow.store import MemorySnapshotStore  # noqa: E402


@pytest.fixture
def high_activation_features() -> FeatureVector:
    return FeatureVector(
        eye_openness=0.5,
        blink_rate=0.5,
        brow_furrow=0.9,
        jaw_tension=0.9,
        lip_compression=0.7,
        head_jitter=0.8,
        skin_tone_variance=0.5,
        symmetry_delta=0.6,
    )


@pytest.fixture
def low_energy_features() -> FeatureVector:
    return FeatureVector(
        eye_openness=0.1,
        blink_rate=0.1,
        brow_furrow=0.2,
        jaw_tension=0.2,
        lip_compression=0.1,
        head_jitter=0.1,
        skin_tone_variance=0.8,
        symmetry_delta=0.3,
    )


@pytest.fixture
def regulated_features() -> FeatureVector:
    return FeatureVector(
        eye_openness=0.6,
        blink_rate=0.4,
        brow_furrow=0.3,
        jaw_tension=0.3,
        lip_compression=0.2,
        head_jitter=0.2,
        skin_tone_variance=0.3,
        symmetry_delta=0.2,
    )


@pytest.fixture
def seed() -> SeedInputs:
    return SeedInputs(session_id="session-001", user_id="user-001")


@pytest.fixture
def store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def orchestrator(store: MemorySnapshotStore) -> FlowOrchestrator:
    return FlowOrchestrator("session-001", "user-001", store=store)


@pytest.fixture
def unique_id() -> str:
    return uuid.uuid4().hex
