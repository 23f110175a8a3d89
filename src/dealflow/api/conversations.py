"""Operator routes for starting, inspecting and overriding conversations."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dealflow.api.dependencies import get_orchestrator
from dealflow.domain.models import NegotiationTerms
from dealflow.domain.types import ConversationStage
from dealflow.orchestrator import ConversationStateView, ConversationView, NegotiationOrchestrator

router = APIRouter(prefix="/conversations", tags=["conversations"])


class StartConversationRequest(BaseModel):
    """Outreach to a creator for one campaign."""

    campaign_id: str
    creator_id: str
    creator_address: str
    subject: str
    body_text: str
    terms: NegotiationTerms
    thread_ref: str | None = None


class OverrideRequest(BaseModel):
    """A manual stage change; ``actor`` and ``reason`` end up in the audit trail."""

    stage: ConversationStage
    actor: str
    reason: str


@router.post("", response_model=ConversationView, status_code=201)
async def start_conversation(
    body: StartConversationRequest,
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> ConversationView:
    return await orchestrator.start_conversation(
        campaign_id=body.campaign_id,
        creator_id=body.creator_id,
        creator_address=body.creator_address,
        subject=body.subject,
        body_text=body.body_text,
        terms=body.terms,
        thread_ref=body.thread_ref,
    )


@router.get("/{conversation_id}", response_model=ConversationStateView)
async def get_conversation(
    conversation_id: str,
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> ConversationStateView:
    return orchestrator.get_conversation_state(conversation_id)


@router.post("/{conversation_id}/override", response_model=ConversationView)
async def override_stage(
    conversation_id: str,
    body: OverrideRequest,
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> ConversationView:
    return await orchestrator.override_stage(
        conversation_id, body.stage, actor=body.actor, reason=body.reason
    )
