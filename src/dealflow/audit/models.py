"""Audit trail models for tracking every conversation event.

Each entry carries the conversation identifiers, the stage at the time of
the event, the message body where there is one, who acted, and arbitrary
string metadata.
"""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events tracked in the audit trail."""

    MESSAGE_RECEIVED = "message_received"
    MESSAGE_SENT = "message_sent"
    MESSAGE_REJECTED = "message_rejected"
    DUPLICATE_MESSAGE = "duplicate_message"
    STATE_TRANSITION = "state_transition"
    ESCALATION = "escalation"
    APPROVAL_RESOLVED = "approval_resolved"
    AGREEMENT = "agreement"
    STAGE_OVERRIDE = "stage_override"
    DOWNSTREAM_EVENT = "downstream_event"
    TRIGGER_FIRED = "trigger_fired"
    ERROR = "error"


class AuditEntry(BaseModel):
    """A single audit trail entry.

    All fields except event_type are optional to accommodate different
    event types (e.g., a rejected message may match no conversation).
    """

    event_type: EventType
    conversation_id: str | None = None
    campaign_id: str | None = None
    creator_id: str | None = None
    direction: str | None = None
    message_body: str | None = None
    stage: str | None = None
    actor: str | None = None
    metadata: dict[str, str] | None = None
