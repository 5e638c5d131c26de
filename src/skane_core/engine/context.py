"""Situational-context helpers for the action selector."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from skane_core.engine.models import UserHistory
from skane_core.models import MicroActionId, TimeOfDay, UserFeedback

# Half-open hour bands; anything outside them is night.
_BANDS: tuple[tuple[int, int, TimeOfDay], ...] = (
    (5, 12, TimeOfDay.MORNING),
    (12, 17, TimeOfDay.AFTERNOON),
    (17, 21, TimeOfDay.EVENING),
)

FEEDBACK_SAMPLE_SIZE = 50


def time_of_day(hour: int | None = None) -> TimeOfDay:
    """Map an hour (0-23, defaults to now) to a :class:`TimeOfDay` band."""
    if hour is None:
        hour = datetime.now().hour
    for start, end, band in _BANDS:
        if start <= hour < end:
            return band
    return TimeOfDay.NIGHT


def summarise_history(
    records: Iterable[tuple[MicroActionId | str | None, UserFeedback | str | None]],
    last_action_id: MicroActionId | str | None = None,
) -> UserHistory:
    """Build a :class:`UserHistory` from ``(action_id, feedback)`` pairs.

    Records are assumed newest first; only the first
    :data:`FEEDBACK_SAMPLE_SIZE` rated ones count.  Unknown action ids and
    unrated sessions are skipped.
    """
    buckets: dict[MicroActionId, list[int]] = {}
    rated = 0
    for action_id, feedback in records:
        if rated >= FEEDBACK_SAMPLE_SIZE:
            break
        if action_id is None or feedback is None:
            continue
        try:
            action = MicroActionId(action_id)
            outcome = UserFeedback(feedback)
        except ValueError:
            continue
        buckets.setdefault(action, []).append(outcome.score)
        rated += 1

    last: MicroActionId | None = None
    if last_action_id is not None:
        try:
            last = MicroActionId(last_action_id)
        except ValueError:
            last = None

    return UserHistory(
        last_action_id=last,
        action_feedback={a: sum(s) / len(s) for a, s in buckets.items()},
    )
