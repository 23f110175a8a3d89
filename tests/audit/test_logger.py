"""Tests for the AuditLogger convenience methods."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from dealflow.audit.logger import AuditLogger
from dealflow.audit.store import query_audit_trail
from dealflow.domain.models import Conversation, NegotiationTerms
from dealflow.domain.types import ConversationStage
from dealflow.state import Database

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


@pytest.fixture
def audit(db: Database) -> AuditLogger:
    return AuditLogger(db)


@pytest.fixture
def conversation(terms: NegotiationTerms) -> Conversation:
    return Conversation(
        id="conv-1",
        campaign_id="camp-1",
        creator_id="sanjay",
        creator_address="sanjay@example.com",
        stage=ConversationStage.ANALYZING,
        terms=terms,
        created_at=NOW,
        updated_at=NOW,
        stage_entered_at=NOW,
    )


def _only(db: Database) -> dict:
    [row] = query_audit_trail(db)
    return row


class TestMessages:
    def test_message_received(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_message_received(conversation, "What's the timeline?", "p-1", 2)

        row = _only(db)
        assert row["event_type"] == "message_received"
        assert row["direction"] == "received"
        assert row["message_body"] == "What's the timeline?"
        assert row["actor"] == "creator"
        assert row["conversation_id"] == "conv-1"
        assert row["creator_id"] == "sanjay"
        assert row["metadata"] == {"provider_message_id": "p-1", "sequence": "2"}

    def test_message_sent(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_message_sent(conversation, "Three weeks.", "ai-system", "sim-1", "reply")

        row = _only(db)
        assert row["event_type"] == "message_sent"
        assert row["direction"] == "sent"
        assert row["actor"] == "ai-system"
        assert row["metadata"] == {"provider_message_id": "sim-1", "purpose": "reply"}

    def test_message_rejected_has_no_conversation(self, db: Database, audit: AuditLogger) -> None:
        audit.log_message_rejected("thread:t-404", "no matching conversation", "p-9")

        row = _only(db)
        assert row["event_type"] == "message_rejected"
        assert row["conversation_id"] is None
        assert row["metadata"] == {
            "key": "thread:t-404",
            "reason": "no matching conversation",
            "provider_message_id": "p-9",
        }

    def test_duplicate_message(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_duplicate_message(conversation, "p-1")
        assert _only(db)["metadata"] == {"provider_message_id": "p-1"}


class TestLifecycle:
    def test_state_transition(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_state_transition(conversation, "replied", "analyzing", "begin_analysis")

        row = _only(db)
        assert row["stage"] == "analyzing"
        assert row["actor"] == "system"
        assert row["metadata"] == {
            "from_stage": "replied",
            "to_stage": "analyzing",
            "event": "begin_analysis",
        }

    def test_escalation_joins_reasons(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_escalation(
            conversation,
            "ap-1",
            ["risk_level: risk level medium", "budget_concern: creator raised a budget concern"],
            merged=True,
        )

        assert _only(db)["metadata"] == {
            "approval_id": "ap-1",
            "reasons": (
                "risk_level: risk level medium; budget_concern: creator raised a budget concern"
            ),
            "merged": "true",
        }

    @pytest.mark.parametrize(
        ("notes", "expected"),
        [
            (None, {"approval_id": "ap-1", "decision": "approve"}),
            ("ok", {"approval_id": "ap-1", "decision": "approve", "notes": "ok"}),
        ],
        ids=["without-notes", "with-notes"],
    )
    def test_approval_resolved(
        self,
        db: Database,
        audit: AuditLogger,
        conversation: Conversation,
        notes: str | None,
        expected: dict[str, str],
    ) -> None:
        audit.log_approval_resolved(conversation, "ap-1", "approve", "maria", notes)

        row = _only(db)
        assert row["actor"] == "maria"
        assert row["metadata"] == expected

    def test_agreement_records_terms(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_agreement(conversation)
        assert _only(db)["metadata"] == {"compensation": "1000", "deliverable_count": "1"}

    def test_stage_override(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_stage_override(conversation, "sent", "declined", "ops", "creator withdrew")

        row = _only(db)
        assert row["event_type"] == "stage_override"
        assert row["stage"] == "declined"
        assert row["actor"] == "ops"
        assert row["metadata"]["reason"] == "creator withdrew"

    def test_downstream_event(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_downstream_event(conversation, "contract_signed", applied=False)

        row = _only(db)
        assert row["actor"] == "downstream"
        assert row["metadata"] == {"event": "contract_signed", "applied": "false"}

    def test_trigger_fired(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_trigger_fired(conversation, "contract_requested", True, "ct-1")

        assert _only(db)["metadata"] == {
            "lifecycle_event": "contract_requested",
            "accepted": "true",
            "reference": "ct-1",
        }


class TestErrors:
    def test_error_with_conversation(
        self, db: Database, audit: AuditLogger, conversation: Conversation
    ) -> None:
        audit.log_error(conversation, "delivery failed", context="outreach")

        row = _only(db)
        assert row["stage"] == "analyzing"
        assert row["metadata"] == {"error_message": "delivery failed", "context": "outreach"}

    def test_error_without_conversation(self, db: Database, audit: AuditLogger) -> None:
        audit.log_error(None, "sweep failed")

        row = _only(db)
        assert row["conversation_id"] is None
        assert row["stage"] is None
        assert row["metadata"] == {"error_message": "sweep failed"}
