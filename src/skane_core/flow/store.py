"""Snapshot persistence port for the flow orchestrator."""

from __future__ import annotations

from typing import Protocol


class SnapshotStore(Protocol):
    """Synchronous read/write port keyed by session id.

    Payloads are opaque JSON strings; the store never parses them.
    """

    def write(self, session_id: str, payload: str) -> None: ...

    def read(self, session_id: str) -> str | None: ...


class MemorySnapshotStore:
    """In-process :class:`SnapshotStore` backed by a dict."""

    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}

    def write(self, session_id: str, payload: str) -> None:
        self._snapshots[session_id] = payload

    def read(self, session_id: str) -> str | None:
        return self._snapshots.get(session_id)

    def delete(self, session_id: str) -> None:
        self._snapshots.pop(session_id, None)
