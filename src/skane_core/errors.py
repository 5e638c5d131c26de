"""Exception hierarchy shared by the engine, the flow and the API layer."""

from __future__ import annotations

from typing import Iterable


class SkaneError(Exception):
    """Base class for every error raised by skane-core."""


class IllegalTransitionError(SkaneError):
    """A flow method was called from a state that does not allow it."""

    def __init__(self, action: str, current: str, allowed: Iterable[str]) -> None:
        self.action = action
        self.current = current
        self.allowed = tuple(allowed)
        super().__init__(
            f"Cannot {action} from flow state {current} "
            f"(allowed: {', '.join(self.allowed)})"
        )


class InvariantViolationError(SkaneError):
    """A computed value broke a configured invariant (misconfigured tables)."""


class SessionNotFoundError(SkaneError):
    """No live or persisted session exists for the given id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class DuplicateSessionError(SkaneError):
    """A session with this id already exists."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} already exists")
