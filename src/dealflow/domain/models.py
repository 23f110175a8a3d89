"""Pydantic v2 models for the negotiation lifecycle domain.

Conversations, ledger messages, human approvals and the classifier's
analysis all live here so that the persistence layer, the policy and the
orchestrator share one vocabulary.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dealflow.domain.types import (
    ApprovalStatus,
    ContractStatus,
    ConversationStage,
    Intent,
    RiskLevel,
    SenderType,
    Sentiment,
)


def parse_amount(value: str | None) -> Decimal | None:
    """Parse a monetary string such as ``"$15,000"`` or ``"15k"`` into a Decimal.

    Args:
        value: The raw amount string, or ``None``.

    Returns:
        The parsed amount, or ``None`` if *value* is ``None`` or blank.

    Raises:
        ValueError: If *value* is not a recognisable amount.
    """
    if value is None:
        return None
    cleaned = value.strip().replace("$", "").replace(",", "").lower()
    if not cleaned:
        return None
    multiplier = Decimal("1")
    if cleaned.endswith("k"):
        multiplier = Decimal("1000")
        cleaned = cleaned[:-1]
    try:
        return Decimal(cleaned) * multiplier
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


class NegotiationTerms(BaseModel):
    """The brand's baseline offer for a conversation.

    Uses Decimal for exact monetary arithmetic -- float inputs are rejected.
    """

    model_config = ConfigDict(frozen=True)

    compensation: Decimal
    budget_ceiling: Decimal
    deliverable_count: int = 1
    video_length_minutes: int | None = None
    timeline: str | None = None

    @field_validator("compensation", "budget_ceiling", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        if isinstance(v, float):
            raise ValueError("Use Decimal or string, not float, for monetary values")
        return v

    @field_validator("deliverable_count")
    @classmethod
    def count_must_be_positive(cls, v: int) -> int:
        """Ensure at least one deliverable is offered."""
        if v < 1:
            raise ValueError("deliverable_count must be at least 1")
        return v

    @model_validator(mode="after")
    def compensation_within_ceiling(self) -> NegotiationTerms:
        """Ensure the opening offer does not already exceed the budget ceiling."""
        if self.compensation > self.budget_ceiling:
            raise ValueError(
                f"compensation ({self.compensation}) must not exceed "
                f"budget_ceiling ({self.budget_ceiling})"
            )
        return self


class Attachment(BaseModel):
    """Metadata of a file attached to a message; content stays with the provider."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content_type: str = "application/octet-stream"
    url: str | None = None


class MessageDraft(BaseModel):
    """A message about to be appended to a conversation ledger.

    Exactly one of ``sent_at`` (outbound) and ``received_at`` (inbound) is set.
    """

    model_config = ConfigDict(frozen=True)

    sender_type: SenderType
    sender_address: str
    body_text: str
    subject: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    provider_message_id: str | None = None
    sent_at: datetime | None = None
    received_at: datetime | None = None

    @model_validator(mode="after")
    def direction_timestamps_are_exclusive(self) -> MessageDraft:
        """Inbound messages carry ``received_at``; everything else ``sent_at``."""
        if (self.sent_at is None) == (self.received_at is None):
            raise ValueError("exactly one of sent_at and received_at must be set")
        if self.sender_type == SenderType.CREATOR and self.received_at is None:
            raise ValueError("creator messages must carry received_at")
        if self.sender_type != SenderType.CREATOR and self.sent_at is None:
            raise ValueError(f"{self.sender_type} messages must carry sent_at")
        return self

    @property
    def timestamp(self) -> datetime:
        """The wall-clock time of the message regardless of direction."""
        return self.sent_at or self.received_at  # type: ignore[return-value]


class Message(MessageDraft):
    """A message recorded in a conversation ledger; immutable once appended."""

    conversation_id: str
    sequence: int


class OutboundDraft(BaseModel):
    """An outbound message accepted for delivery but not yet confirmed.

    Persisted on the conversation so that a failed or interrupted delivery
    can be retried without deciding again.  ``idempotency_key`` is passed to
    the transport so a retry never produces a second email.  ``in_reply_to``
    is the sequence of the newest creator message the reply answers.
    """

    model_config = ConfigDict(frozen=True)

    idempotency_key: str
    purpose: str
    sender_type: SenderType
    sender_address: str
    recipient: str
    subject: str | None = None
    body_text: str
    approval_id: str | None = None
    agreement: bool = False
    in_reply_to: int | None = None


class Conversation(BaseModel):
    """One negotiation between a campaign and a creator."""

    id: str
    campaign_id: str
    creator_id: str
    creator_address: str
    thread_ref: str | None = None
    stage: ConversationStage = ConversationStage.INITIATED
    terms: NegotiationTerms
    version: int = 0
    pending_outbound: OutboundDraft | None = None
    contract_status: ContractStatus | None = None
    created_at: datetime
    updated_at: datetime
    stage_entered_at: datetime
    last_message_at: datetime | None = None


class ConversationKey(BaseModel):
    """Ways an inbound message can identify its conversation.

    Lookup precedence: ``conversation_id``, then ``thread_ref``, then the
    ``(campaign_id, creator_id)`` pair.
    """

    model_config = ConfigDict(frozen=True)

    conversation_id: str | None = None
    thread_ref: str | None = None
    campaign_id: str | None = None
    creator_id: str | None = None

    @model_validator(mode="after")
    def must_identify_something(self) -> ConversationKey:
        """Require at least one usable identifier."""
        if self.conversation_id or self.thread_ref:
            return self
        if self.campaign_id and self.creator_id:
            return self
        raise ValueError(
            "conversation key needs conversation_id, thread_ref, or campaign_id + creator_id"
        )

    def describe(self) -> str:
        """Return a short human-readable rendering for logs and errors."""
        if self.conversation_id:
            return self.conversation_id
        if self.thread_ref:
            return f"thread:{self.thread_ref}"
        return f"{self.campaign_id}/{self.creator_id}"


class ExtractedTerms(BaseModel):
    """Negotiable fields the creator proposed in a reply."""

    compensation: str | None = Field(
        default=None,
        description=(
            "The compensation the creator asks for, as a numeric string "
            "(e.g., '20000.00'). None if no amount is mentioned."
        ),
    )
    deliverable_count: int | None = Field(
        default=None,
        description="Number of deliverables the creator proposes. None if unchanged.",
    )
    video_length_minutes: int | None = Field(
        default=None,
        description="Video length in minutes the creator proposes. None if unchanged.",
    )
    timeline: str | None = Field(
        default=None,
        description="Timeline the creator proposes, in their words. None if unchanged.",
    )
    other: list[str] = Field(
        default_factory=list,
        description="Any other requested changes (usage rights, exclusivity, revisions).",
    )

    @property
    def compensation_amount(self) -> Decimal | None:
        """Return the proposed compensation as a Decimal.

        Raises:
            ValueError: If the string is not a recognisable amount.
        """
        return parse_amount(self.compensation)


class Analysis(BaseModel):
    """Structured classification of one creator reply.

    Used as the structured output schema for the AI service, so every field
    carries a description.
    """

    sentiment: Sentiment = Field(description="Overall tone of the reply")
    intent: Intent = Field(description="The creator's primary negotiation intent")
    extracted_terms: ExtractedTerms = Field(
        default_factory=ExtractedTerms,
        description="Negotiable fields the creator proposed; empty if none",
    )
    risk_level: RiskLevel = Field(
        description="Risk of replying without a human (low, medium or high)"
    )
    budget_concern: bool = Field(
        default=False,
        description="True if the creator raises any concern about pay or budget",
    )
    budget_delta: str | None = Field(
        default=None,
        description=(
            "Difference between the creator's ask and the current offer as a "
            "numeric string (e.g., '10000'). None if no monetary change."
        ),
    )
    confidence: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Confidence in this analysis (0.0 to 1.0)",
    )
    summary: str = Field(description="One-sentence summary of what the creator is saying")
    suggested_reply: str = Field(
        default="",
        description="A reply draft to send to the creator if no human review is needed",
    )


class ProposedAction(BaseModel):
    """What the reviewer is asked to approve."""

    model_config = ConfigDict(frozen=True)

    reply_text: str = ""
    recommendation: str = ""


class HumanApproval(BaseModel):
    """A queued decision awaiting human resolution."""

    id: str
    conversation_id: str
    summary: str
    proposed_action: ProposedAction
    analysis: Analysis | None = None
    reasons: list[str] = Field(default_factory=list)
    status: ApprovalStatus = ApprovalStatus.PENDING
    resolution_notes: str | None = None
    resolved_by: str | None = None
    created_at: datetime
    resolved_at: datetime | None = None


class StageTransition(BaseModel):
    """One applied stage transition, as recorded in the stage history."""

    model_config = ConfigDict(frozen=True)

    from_stage: ConversationStage
    event: str
    to_stage: ConversationStage
    actor: str = "system"
    reason: str | None = None
    at: datetime


class Contract(BaseModel):
    """The orchestrator's mirror of a contract owned by the Contract Trigger."""

    conversation_id: str
    status: ContractStatus
    details: dict[str, Any] = Field(default_factory=dict)
    updated_at: datetime
