"""Domain enumerations for the negotiation lifecycle."""

from enum import StrEnum


class ConversationStage(StrEnum):
    """Stages in the negotiation lifecycle of one campaign/creator pairing."""

    INITIATED = "initiated"
    SENT = "sent"
    REPLIED = "replied"
    ANALYZING = "analyzing"
    AUTO_RESPONDING = "auto_responding"
    PENDING_HUMAN_REVIEW = "pending_human_review"
    NEGOTIATION_AGREED = "negotiation_agreed"
    CONTRACT_DRAFTING = "contract_drafting"
    CONTRACT_PENDING_SIGNATURE = "contract_pending_signature"
    CONTRACT_ACTIVE = "contract_active"
    DECLINED = "declined"
    ABANDONED = "abandoned"


class SenderType(StrEnum):
    """Who authored a message in the ledger."""

    BRAND = "brand"
    AI_SYSTEM = "ai-system"
    CREATOR = "creator"


class ApprovalStatus(StrEnum):
    """Lifecycle of a human approval item."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ACTION_TAKEN = "action_taken"


class ApprovalDecision(StrEnum):
    """Decisions a human reviewer can take on a pending approval."""

    APPROVE = "approve"
    REJECT = "reject"
    SUBSTITUTE = "substitute"


class DownstreamEvent(StrEnum):
    """Completion events reported by the contract and payment collaborators."""

    CONTRACT_DRAFTED = "contract_drafted"
    CONTRACT_SIGNED = "contract_signed"
    CONTRACT_ACTIVE = "contract_active"
    PAYMENT_MILESTONE_COMPLETED = "payment_milestone_completed"


class LifecycleEvent(StrEnum):
    """Events raised by the orchestrator that must fire once per conversation."""

    NEGOTIATION_AGREED = "negotiation_agreed"
    CONTRACT_REQUESTED = "contract_requested"
    PAYMENT_REQUESTED = "payment_requested"


class ContractStatus(StrEnum):
    """Status of the downstream contract, mirrored from trigger reports."""

    DRAFTING = "drafting"
    PENDING_APPROVAL = "pending_approval"
    SENT = "sent"
    SIGNED_BY_CREATOR = "signed_by_creator"
    ACTIVE = "active"


class Sentiment(StrEnum):
    """Overall tone of a creator reply."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Intent(StrEnum):
    """The creator's negotiation intent extracted from a reply."""

    INTERESTED = "interested"
    QUESTION = "question"
    COUNTER_OFFER = "counter_offer"
    AGREEMENT = "agreement"
    DECLINING = "declining"
    UNCLEAR = "unclear"


class RiskLevel(StrEnum):
    """Classifier-assessed risk of letting the AI answer on its own."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Stages that retain the conversation for audit only.
TERMINAL_STAGES: frozenset[ConversationStage] = frozenset(
    {
        ConversationStage.CONTRACT_ACTIVE,
        ConversationStage.DECLINED,
        ConversationStage.ABANDONED,
    }
)

# Stages from which a creator reply is no longer negotiated by the AI.
POST_AGREEMENT_STAGES: frozenset[ConversationStage] = frozenset(
    {
        ConversationStage.NEGOTIATION_AGREED,
        ConversationStage.CONTRACT_DRAFTING,
        ConversationStage.CONTRACT_PENDING_SIGNATURE,
    }
)
