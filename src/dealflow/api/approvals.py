"""Routes for the human approval queue."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from dealflow.api.dependencies import get_orchestrator
from dealflow.domain.models import NegotiationTerms
from dealflow.domain.types import ApprovalDecision
from dealflow.orchestrator import ApprovalSummary, NegotiationOrchestrator, ResolutionResult

router = APIRouter(prefix="/approvals", tags=["approvals"])


class ResolveRequest(BaseModel):
    """A reviewer's decision.

    ``human_text`` is required for ``substitute``.  ``revised_terms``
    replaces the conversation's baseline offer when the reviewer agreed to
    new terms in the reply being sent.
    """

    decision: ApprovalDecision
    human_text: str | None = None
    notes: str | None = None
    resolved_by: str | None = None
    revised_terms: NegotiationTerms | None = None


@router.get("", response_model=list[ApprovalSummary])
async def list_pending(
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> list[ApprovalSummary]:
    return orchestrator.list_pending_approvals()


@router.post("/{approval_id}/resolve", response_model=ResolutionResult)
async def resolve(
    approval_id: str,
    body: ResolveRequest,
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> ResolutionResult:
    return await orchestrator.resolve_approval(
        approval_id,
        body.decision,
        human_text=body.human_text,
        notes=body.notes,
        resolved_by=body.resolved_by,
        revised_terms=body.revised_terms,
    )
