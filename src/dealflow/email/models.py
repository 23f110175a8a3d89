"""Pydantic v2 models for the email domain.

Provides frozen (immutable) models for inbound provider payloads, outbound
messages handed to a transport, and the receipt a transport returns.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from dealflow.domain.models import Attachment, ConversationKey


class InboundEmail(BaseModel):
    """An inbound message as posted by the email provider's webhook.

    Sender and body are optional at this layer so that malformed payloads
    can still be parsed, logged, and rejected by the orchestrator.  Without
    a ``provider_message_id`` the message cannot be deduplicated on retry.
    """

    model_config = ConfigDict(frozen=True)

    provider_message_id: str | None = None
    from_email: str | None = None
    body_text: str | None = None
    subject: str | None = None
    conversation_id: str | None = None
    thread_ref: str | None = None
    campaign_id: str | None = None
    creator_id: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    received_at: datetime | None = None

    def conversation_key(self) -> ConversationKey:
        """Return the identifiers this message carries for conversation lookup.

        Raises:
            ValueError: If the payload identifies no conversation.
        """
        return ConversationKey(
            conversation_id=self.conversation_id,
            thread_ref=self.thread_ref,
            campaign_id=self.campaign_id,
            creator_id=self.creator_id,
        )


class OutboundEmail(BaseModel):
    """An outbound email to be delivered to a creator.

    ``idempotency_key`` is stable across retries of the same logical send so
    a transport can return the original receipt instead of sending twice.
    When ``thread_ref`` is set the email continues that provider thread.
    """

    model_config = ConfigDict(frozen=True)

    to: str
    from_email: str
    subject: str
    body: str
    idempotency_key: str
    thread_ref: str | None = None


class DeliveryReceipt(BaseModel):
    """Confirmation that a transport accepted an outbound email."""

    model_config = ConfigDict(frozen=True)

    provider_message_id: str
    thread_ref: str | None = None
    sent_at: datetime
