"""Simulation route: play the scripted creator's next reply.

Disabled (404) unless ``simulation_enabled`` is set.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from dealflow.api.dependencies import get_app_settings, get_orchestrator
from dealflow.config import Settings
from dealflow.orchestrator import NegotiationOrchestrator, feed_scripted_reply

router = APIRouter(prefix="/simulate", tags=["simulation"])


@router.post("/{conversation_id}/reply")
async def simulate_reply(
    conversation_id: str,
    settings: Settings = Depends(get_app_settings),
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Feed the next scripted creator reply through normal ingestion."""
    if not settings.simulation_enabled:
        raise HTTPException(status_code=404, detail="Simulation is disabled")

    result = await feed_scripted_reply(orchestrator, conversation_id)
    if result is None:
        return {"finished": True}
    return {"finished": False, **result.model_dump(mode="json")}
