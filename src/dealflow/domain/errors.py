"""Domain-specific exception classes for the negotiation orchestrator."""

from dealflow.domain.types import ApprovalStatus, ConversationStage


class DealflowError(Exception):
    """Base class for all domain errors in the orchestrator."""


class MalformedMessageError(DealflowError):
    """Raised when an inbound payload lacks a sender or a body."""


class DuplicateMessageError(DealflowError):
    """Raised when a provider message id is already present in a conversation.

    Attributes:
        conversation_id: The conversation that already holds the message.
        provider_message_id: The duplicated provider identifier.
    """

    def __init__(self, conversation_id: str, provider_message_id: str) -> None:
        self.conversation_id = conversation_id
        self.provider_message_id = provider_message_id
        super().__init__(
            f"Message '{provider_message_id}' already recorded for conversation "
            f"'{conversation_id}'"
        )


class ConversationNotFoundError(DealflowError):
    """Raised when no conversation matches the given id or key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"No conversation found for '{key}'")


class ConversationExistsError(DealflowError):
    """Raised when a conversation already exists for a campaign/creator pair."""

    def __init__(self, campaign_id: str, creator_id: str, conversation_id: str) -> None:
        self.campaign_id = campaign_id
        self.creator_id = creator_id
        self.conversation_id = conversation_id
        super().__init__(
            f"Conversation '{conversation_id}' already exists for campaign "
            f"'{campaign_id}' and creator '{creator_id}'"
        )


class InvalidTransitionError(DealflowError):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        current_stage: The stage the conversation was in.
        event: The event that was rejected.
    """

    def __init__(self, current_stage: ConversationStage, event: str) -> None:
        self.current_stage = current_stage
        self.event = event
        super().__init__(f"Cannot apply event '{event}' in stage '{current_stage}'")


class ApprovalNotFoundError(DealflowError):
    """Raised when an approval id is unknown."""

    def __init__(self, approval_id: str) -> None:
        self.approval_id = approval_id
        super().__init__(f"No approval found with id '{approval_id}'")


class ApprovalAlreadyPendingError(DealflowError):
    """Raised when creating an approval while another one is still pending.

    Attributes:
        conversation_id: The conversation under review.
        existing_id: The id of the approval that is already pending.
    """

    def __init__(self, conversation_id: str, existing_id: str) -> None:
        self.conversation_id = conversation_id
        self.existing_id = existing_id
        super().__init__(
            f"Approval '{existing_id}' is already pending for conversation "
            f"'{conversation_id}'"
        )


class AlreadyResolvedError(DealflowError):
    """Raised when resolving an approval a second time.

    Attributes:
        approval_id: The approval that was already resolved.
        status: The status it was resolved with.
        current_stage: The conversation stage at the time of the conflict,
            filled in by the orchestrator when known.
    """

    def __init__(
        self,
        approval_id: str,
        status: ApprovalStatus,
        current_stage: ConversationStage | None = None,
    ) -> None:
        self.approval_id = approval_id
        self.status = status
        self.current_stage = current_stage
        message = f"Approval '{approval_id}' already handled by {status}"
        if current_stage is not None:
            message += f", current stage is {current_stage}"
        super().__init__(message)


class StaleConversationError(DealflowError):
    """Raised when an optimistic version check fails on write."""

    def __init__(self, conversation_id: str, expected_version: int) -> None:
        self.conversation_id = conversation_id
        self.expected_version = expected_version
        super().__init__(
            f"Conversation '{conversation_id}' changed since version {expected_version}"
        )


class ConversationBusyError(DealflowError):
    """Raised when a write keeps losing the version race after bounded retries."""

    def __init__(self, conversation_id: str, attempts: int) -> None:
        self.conversation_id = conversation_id
        self.attempts = attempts
        super().__init__(
            f"Conversation '{conversation_id}' is busy; gave up after {attempts} attempts"
        )


class ClassifierError(DealflowError):
    """Base class for typed classifier failures."""


class ClassifierUnavailableError(ClassifierError):
    """Raised when the AI service cannot be reached or times out."""


class UnparseableResponseError(ClassifierError):
    """Raised when the AI service answers with something that is not an analysis."""


class DeliveryError(DealflowError):
    """Raised when the email transport fails to deliver an outbound message."""


class DownstreamTriggerError(DealflowError):
    """Raised when a contract or payment trigger call fails."""
