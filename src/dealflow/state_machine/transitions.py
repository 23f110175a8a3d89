"""Transition map defining all valid (stage, event) -> stage mappings."""

from enum import StrEnum

from dealflow.domain.types import TERMINAL_STAGES, ConversationStage


class ConversationEvent(StrEnum):
    """Events that can trigger stage transitions in a conversation."""

    DELIVERY_CONFIRMED = "delivery_confirmed"
    RECEIVE_REPLY = "receive_reply"
    BEGIN_ANALYSIS = "begin_analysis"
    AUTO_REPLY = "auto_reply"
    ESCALATE = "escalate"
    REPLY_SENT = "reply_sent"
    AGREEMENT_REACHED = "agreement_reached"
    APPROVAL_SENT = "approval_sent"
    APPROVAL_REJECTED = "approval_rejected"
    CONTRACT_REQUESTED = "contract_requested"
    CONTRACT_DRAFTED = "contract_drafted"
    CONTRACT_SIGNED = "contract_signed"
    CONTRACT_ACTIVATED = "contract_activated"
    PAYMENT_MILESTONE_COMPLETED = "payment_milestone_completed"
    TIMEOUT = "timeout"


# All valid (current_stage, event_string) -> next_stage mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[ConversationStage, str], ConversationStage] = {
    # From INITIATED
    (ConversationStage.INITIATED, ConversationEvent.DELIVERY_CONFIRMED): ConversationStage.SENT,
    (ConversationStage.INITIATED, ConversationEvent.TIMEOUT): ConversationStage.ABANDONED,
    # From SENT
    (ConversationStage.SENT, ConversationEvent.RECEIVE_REPLY): ConversationStage.REPLIED,
    (ConversationStage.SENT, ConversationEvent.TIMEOUT): ConversationStage.ABANDONED,
    # From REPLIED
    (ConversationStage.REPLIED, ConversationEvent.BEGIN_ANALYSIS): ConversationStage.ANALYZING,
    # From ANALYZING
    (ConversationStage.ANALYZING, ConversationEvent.AUTO_REPLY): (
        ConversationStage.AUTO_RESPONDING
    ),
    (ConversationStage.ANALYZING, ConversationEvent.ESCALATE): (
        ConversationStage.PENDING_HUMAN_REVIEW
    ),
    # From AUTO_RESPONDING
    (ConversationStage.AUTO_RESPONDING, ConversationEvent.REPLY_SENT): ConversationStage.SENT,
    (ConversationStage.AUTO_RESPONDING, ConversationEvent.AGREEMENT_REACHED): (
        ConversationStage.NEGOTIATION_AGREED
    ),
    # From PENDING_HUMAN_REVIEW
    (ConversationStage.PENDING_HUMAN_REVIEW, ConversationEvent.APPROVAL_SENT): (
        ConversationStage.SENT
    ),
    (ConversationStage.PENDING_HUMAN_REVIEW, ConversationEvent.APPROVAL_REJECTED): (
        ConversationStage.DECLINED
    ),
    # Contract hand-off
    (ConversationStage.NEGOTIATION_AGREED, ConversationEvent.CONTRACT_REQUESTED): (
        ConversationStage.CONTRACT_DRAFTING
    ),
    (ConversationStage.CONTRACT_DRAFTING, ConversationEvent.CONTRACT_DRAFTED): (
        ConversationStage.CONTRACT_PENDING_SIGNATURE
    ),
    (ConversationStage.CONTRACT_PENDING_SIGNATURE, ConversationEvent.CONTRACT_SIGNED): (
        ConversationStage.CONTRACT_PENDING_SIGNATURE
    ),
    (ConversationStage.CONTRACT_PENDING_SIGNATURE, ConversationEvent.CONTRACT_ACTIVATED): (
        ConversationStage.CONTRACT_ACTIVE
    ),
    # Payment milestones are recorded without leaving CONTRACT_ACTIVE
    (ConversationStage.CONTRACT_ACTIVE, ConversationEvent.PAYMENT_MILESTONE_COMPLETED): (
        ConversationStage.CONTRACT_ACTIVE
    ),
}
