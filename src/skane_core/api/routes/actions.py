"""Micro-action catalog routes."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from skane_core.engine.amplifier import get_amplifier_duration, get_amplifier_instructions
from skane_core.engine.catalog import CATALOG_VERSION, MICRO_ACTIONS, get_action
from skane_core.models import AmplifierType

router = APIRouter(tags=["actions"])


@router.get("/actions")
async def list_actions():
    """Every catalog entry, in catalog order."""
    return {
        "catalog_version": CATALOG_VERSION,
        "actions": [a.model_dump(mode="json", exclude={"eligible_states"}) for a in MICRO_ACTIONS.values()],
    }


@router.get("/actions/{action_id}")
async def get_micro_action(action_id: str):
    """Instruction steps for a single action (what the UI plays back)."""
    action = get_action(action_id)
    if action is None:
        raise HTTPException(404, f"Unknown action {action_id}.")
    return action.model_dump(mode="json", exclude={"eligible_states"})


@router.get("/amplifiers/{amplifier_type}")
async def get_amplifier(amplifier_type: AmplifierType):
    return {
        "type": amplifier_type.value,
        "duration": get_amplifier_duration(amplifier_type),
        "instructions": get_amplifier_instructions(amplifier_type),
    }
