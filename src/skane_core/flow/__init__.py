"""Session flow — the state machine that drives one skane session."""

from skane_core.flow.orchestrator import FlowOrchestrator, SessionContext, SessionView
from skane_core.flow.store import MemorySnapshotStore, SnapshotStore

__all__ = [
    "FlowOrchestrator",
    "MemorySnapshotStore",
    "SessionContext",
    "SessionView",
    "SnapshotStore",
]
