"""Request / response models shared across API route modules."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from skane_core.engine.models import PhysiologicalSignals, SituationalContext
from skane_core.models import UserFeedback


class CreateSessionRequest(BaseModel):
    user_id: str | None = None       # None → guest session
    device_id: str | None = None     # anonymous seed identity for guests
    session_id: str | None = None    # generated when omitted


class ScanRequest(BaseModel):
    """Upstream signal estimates plus optional selector hints."""
    signals: dict[str, Any] = Field(default_factory=dict)
    physiological: PhysiologicalSignals | None = None
    context: SituationalContext | None = None
    activation_level: float | None = Field(None, ge=0, le=100)
    primary_need: str | None = None


class FeedbackRequest(BaseModel):
    feedback: UserFeedback
