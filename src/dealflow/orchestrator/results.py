"""Return types of the orchestrator operations.

These are read-only projections; the HTTP layer serializes them as-is.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dealflow.domain.models import (
    Contract,
    Conversation,
    HumanApproval,
    Message,
    NegotiationTerms,
    StageTransition,
)
from dealflow.domain.types import ContractStatus, ConversationStage


class ConversationView(BaseModel):
    """Summary of one conversation record."""

    model_config = ConfigDict(frozen=True)

    id: str
    campaign_id: str
    creator_id: str
    creator_address: str
    thread_ref: str | None = None
    stage: ConversationStage
    terms: NegotiationTerms
    version: int
    contract_status: ContractStatus | None = None
    pending_delivery: bool = False
    created_at: datetime
    last_message_at: datetime | None = None

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> ConversationView:
        return cls(
            id=conversation.id,
            campaign_id=conversation.campaign_id,
            creator_id=conversation.creator_id,
            creator_address=conversation.creator_address,
            thread_ref=conversation.thread_ref,
            stage=conversation.stage,
            terms=conversation.terms,
            version=conversation.version,
            contract_status=conversation.contract_status,
            pending_delivery=conversation.pending_outbound is not None,
            created_at=conversation.created_at,
            last_message_at=conversation.last_message_at,
        )


class IngestResult(BaseModel):
    """Outcome of ingesting one inbound message.

    ``accepted`` is False only for messages that were rejected (malformed or
    for an unknown conversation); a redelivered message is accepted with
    ``duplicate=True``.
    """

    accepted: bool
    duplicate: bool = False
    conversation_id: str | None = None
    stage: ConversationStage | None = None
    reason: str | None = None


class ResolutionResult(BaseModel):
    """Outcome of resolving a human approval."""

    approval_id: str
    conversation_id: str
    conversation_stage: ConversationStage
    outbound_sent: bool


class DownstreamResult(BaseModel):
    """Outcome of a Contract or Payment Trigger report.

    ``applied`` is False when the same event had already been recorded.
    """

    conversation_id: str
    stage: ConversationStage
    applied: bool


class ConversationStateView(BaseModel):
    """Full projection of a conversation for operators."""

    conversation: ConversationView
    stage: ConversationStage
    messages: list[Message]
    pending_approval: HumanApproval | None = None
    contract_status: ContractStatus | None = None
    contract: Contract | None = None
    history: list[StageTransition] = Field(default_factory=list)
    lifecycle_events: dict[str, bool] = Field(default_factory=dict)


class ApprovalSummary(BaseModel):
    """One row of the pending approval list."""

    approval_id: str
    conversation_id: str
    campaign_id: str
    creator_id: str
    stage: ConversationStage
    summary: str
    reasons: list[str]
    proposed_reply: str
    recommendation: str
    created_at: datetime


class SweepReport(BaseModel):
    """What one periodic sweep did."""

    escalated: list[str] = Field(default_factory=list)
    reanalyzed: list[str] = Field(default_factory=list)
    abandoned: list[str] = Field(default_factory=list)
    redelivered: list[str] = Field(default_factory=list)
    delivery_failed: list[str] = Field(default_factory=list)
    triggers_retried: list[str] = Field(default_factory=list)
    active_conversations: int = 0

