"""Domain types, models, and errors for the negotiation orchestrator."""

from dealflow.domain.errors import (
    AlreadyResolvedError,
    ApprovalAlreadyPendingError,
    ApprovalNotFoundError,
    ClassifierError,
    ClassifierUnavailableError,
    ConversationBusyError,
    ConversationExistsError,
    ConversationNotFoundError,
    DealflowError,
    DeliveryError,
    DownstreamTriggerError,
    DuplicateMessageError,
    InvalidTransitionError,
    MalformedMessageError,
    StaleConversationError,
    UnparseableResponseError,
)
from dealflow.domain.models import (
    Analysis,
    Attachment,
    Contract,
    Conversation,
    ConversationKey,
    ExtractedTerms,
    HumanApproval,
    Message,
    MessageDraft,
    NegotiationTerms,
    OutboundDraft,
    ProposedAction,
    StageTransition,
)
from dealflow.domain.types import (
    POST_AGREEMENT_STAGES,
    TERMINAL_STAGES,
    ApprovalDecision,
    ApprovalStatus,
    ContractStatus,
    ConversationStage,
    DownstreamEvent,
    Intent,
    LifecycleEvent,
    RiskLevel,
    SenderType,
    Sentiment,
)

__all__ = [
    "POST_AGREEMENT_STAGES",
    "TERMINAL_STAGES",
    "AlreadyResolvedError",
    "Analysis",
    "ApprovalAlreadyPendingError",
    "ApprovalDecision",
    "ApprovalNotFoundError",
    "ApprovalStatus",
    "Attachment",
    "ClassifierError",
    "ClassifierUnavailableError",
    "Contract",
    "ContractStatus",
    "Conversation",
    "ConversationBusyError",
    "ConversationExistsError",
    "ConversationKey",
    "ConversationNotFoundError",
    "ConversationStage",
    "DealflowError",
    "DeliveryError",
    "DownstreamEvent",
    "DownstreamTriggerError",
    "DuplicateMessageError",
    "ExtractedTerms",
    "HumanApproval",
    "Intent",
    "InvalidTransitionError",
    "LifecycleEvent",
    "MalformedMessageError",
    "Message",
    "MessageDraft",
    "NegotiationTerms",
    "OutboundDraft",
    "ProposedAction",
    "RiskLevel",
    "SenderType",
    "Sentiment",
    "StaleConversationError",
    "StageTransition",
    "UnparseableResponseError",
]
