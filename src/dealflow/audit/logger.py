"""Convenience class for inserting audit trail entries.

Logs everything that changes or is said in a conversation: messages in and
out, rejected and duplicate deliveries, transitions, escalations, approval
resolutions, agreements, overrides, downstream events and trigger calls,
and errors.  Each method creates a properly structured :class:`AuditEntry`
and inserts it via :func:`insert_audit_entry`.
"""

from __future__ import annotations

from dealflow.audit.models import AuditEntry, EventType
from dealflow.audit.store import insert_audit_entry
from dealflow.domain.models import Conversation
from dealflow.state.database import Database


def _ids(conversation: Conversation) -> dict[str, str]:
    return {
        "conversation_id": conversation.id,
        "campaign_id": conversation.campaign_id,
        "creator_id": conversation.creator_id,
    }


class AuditLogger:
    """Typed convenience API for inserting audit entries.

    Args:
        db: The database holding the ``audit_log`` table.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def log_message_received(
        self,
        conversation: Conversation,
        body_text: str,
        provider_message_id: str | None,
        sequence: int,
    ) -> int:
        """Log an inbound creator message appended to the ledger.

        Returns:
            The row ID of the inserted audit entry.
        """
        entry = AuditEntry(
            event_type=EventType.MESSAGE_RECEIVED,
            direction="received",
            message_body=body_text,
            stage=conversation.stage.value,
            actor="creator",
            metadata={
                "provider_message_id": provider_message_id or "",
                "sequence": str(sequence),
            },
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_message_sent(
        self,
        conversation: Conversation,
        body_text: str,
        sender_type: str,
        provider_message_id: str,
        purpose: str,
    ) -> int:
        """Log an outbound message confirmed by the transport.

        Returns:
            The row ID of the inserted audit entry.
        """
        entry = AuditEntry(
            event_type=EventType.MESSAGE_SENT,
            direction="sent",
            message_body=body_text,
            stage=conversation.stage.value,
            actor=sender_type,
            metadata={"provider_message_id": provider_message_id, "purpose": purpose},
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_message_rejected(
        self,
        key: str,
        reason: str,
        provider_message_id: str | None = None,
    ) -> int:
        """Log an inbound message that could not be accepted.

        Args:
            key: How the message tried to identify its conversation.
            reason: Why it was rejected.
            provider_message_id: The provider's id, if the payload had one.

        Returns:
            The row ID of the inserted audit entry.
        """
        entry = AuditEntry(
            event_type=EventType.MESSAGE_REJECTED,
            direction="received",
            metadata={
                "key": key,
                "reason": reason,
                "provider_message_id": provider_message_id or "",
            },
        )
        return insert_audit_entry(self._db, entry)

    def log_duplicate_message(
        self, conversation: Conversation, provider_message_id: str
    ) -> int:
        """Log a redelivered message that was ignored."""
        entry = AuditEntry(
            event_type=EventType.DUPLICATE_MESSAGE,
            direction="received",
            stage=conversation.stage.value,
            metadata={"provider_message_id": provider_message_id},
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_state_transition(
        self,
        conversation: Conversation,
        from_stage: str,
        to_stage: str,
        event: str,
        actor: str = "system",
    ) -> int:
        """Log a stage transition.

        Stores from_stage, to_stage, and event in metadata.

        Returns:
            The row ID of the inserted audit entry.
        """
        entry = AuditEntry(
            event_type=EventType.STATE_TRANSITION,
            stage=to_stage,
            actor=actor,
            metadata={"from_stage": from_stage, "to_stage": to_stage, "event": event},
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_escalation(
        self,
        conversation: Conversation,
        approval_id: str,
        reasons: list[str],
        merged: bool = False,
    ) -> int:
        """Log an escalation to the human approval queue.

        Args:
            conversation: The escalated conversation.
            approval_id: The approval created or merged into.
            reasons: Every reason the policy reported.
            merged: True when folded into an already pending approval.

        Returns:
            The row ID of the inserted audit entry.
        """
        entry = AuditEntry(
            event_type=EventType.ESCALATION,
            stage=conversation.stage.value,
            metadata={
                "approval_id": approval_id,
                "reasons": "; ".join(reasons),
                "merged": str(merged).lower(),
            },
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_approval_resolved(
        self,
        conversation: Conversation,
        approval_id: str,
        decision: str,
        resolved_by: str | None,
        notes: str | None = None,
    ) -> int:
        """Log a human decision on an approval."""
        meta = {"approval_id": approval_id, "decision": decision}
        if notes:
            meta["notes"] = notes
        entry = AuditEntry(
            event_type=EventType.APPROVAL_RESOLVED,
            stage=conversation.stage.value,
            actor=resolved_by,
            metadata=meta,
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_agreement(self, conversation: Conversation) -> int:
        """Log that the conversation reached an agreement."""
        terms = conversation.terms
        entry = AuditEntry(
            event_type=EventType.AGREEMENT,
            stage=conversation.stage.value,
            metadata={
                "compensation": str(terms.compensation),
                "deliverable_count": str(terms.deliverable_count),
            },
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_stage_override(
        self,
        conversation: Conversation,
        from_stage: str,
        to_stage: str,
        actor: str,
        reason: str,
    ) -> int:
        """Log a manual stage override."""
        entry = AuditEntry(
            event_type=EventType.STAGE_OVERRIDE,
            stage=to_stage,
            actor=actor,
            metadata={"from_stage": from_stage, "to_stage": to_stage, "reason": reason},
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_downstream_event(
        self,
        conversation: Conversation,
        event: str,
        applied: bool,
    ) -> int:
        """Log an event reported by the Contract or Payment system."""
        entry = AuditEntry(
            event_type=EventType.DOWNSTREAM_EVENT,
            stage=conversation.stage.value,
            actor="downstream",
            metadata={"event": event, "applied": str(applied).lower()},
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_trigger_fired(
        self,
        conversation: Conversation,
        lifecycle_event: str,
        accepted: bool,
        reference: str | None = None,
    ) -> int:
        """Log a Contract or Payment Trigger call that was answered."""
        entry = AuditEntry(
            event_type=EventType.TRIGGER_FIRED,
            stage=conversation.stage.value,
            metadata={
                "lifecycle_event": lifecycle_event,
                "accepted": str(accepted).lower(),
                "reference": reference or "",
            },
            **_ids(conversation),
        )
        return insert_audit_entry(self._db, entry)

    def log_error(
        self,
        conversation: Conversation | None,
        error_message: str,
        context: str | None = None,
    ) -> int:
        """Log an error encountered during processing.

        Args:
            conversation: The affected conversation, if known.
            error_message: The error message.
            context: Additional context about where the error occurred.

        Returns:
            The row ID of the inserted audit entry.
        """
        meta: dict[str, str] = {"error_message": error_message}
        if context is not None:
            meta["context"] = context

        ids = _ids(conversation) if conversation is not None else {}
        entry = AuditEntry(
            event_type=EventType.ERROR,
            stage=conversation.stage.value if conversation is not None else None,
            metadata=meta,
            **ids,
        )
        return insert_audit_entry(self._db, entry)
