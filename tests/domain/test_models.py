"""Tests for Pydantic domain models: terms, message drafts, keys and analyses."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from dealflow.domain.models import (
    Analysis,
    ConversationKey,
    ExtractedTerms,
    MessageDraft,
    NegotiationTerms,
    parse_amount,
)
from dealflow.domain.types import Intent, RiskLevel, SenderType, Sentiment

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


class TestParseAmount:
    """Monetary strings as creators write them."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("1000", Decimal("1000")),
            ("$15,000", Decimal("15000")),
            ("15k", Decimal("15000")),
            ("1.5K", Decimal("1500.0")),
            (" 2500.50 ", Decimal("2500.50")),
        ],
    )
    def test_parses(self, raw: str, expected: Decimal) -> None:
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank_is_none(self, raw: str | None) -> None:
        assert parse_amount(raw) is None

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError, match="Not a monetary amount"):
            parse_amount("a lot")


class TestNegotiationTerms:
    """Tests for the NegotiationTerms model."""

    def test_string_inputs_coerced(self):
        terms = NegotiationTerms(compensation="800", budget_ceiling="1200")
        assert terms.compensation == Decimal("800")
        assert terms.deliverable_count == 1
        assert terms.timeline is None

    def test_rejects_float_compensation(self):
        with pytest.raises(ValidationError, match="Use Decimal or string, not float"):
            NegotiationTerms(compensation=1000.0, budget_ceiling=Decimal("1500"))

    def test_rejects_float_ceiling(self):
        with pytest.raises(ValidationError, match="Use Decimal or string, not float"):
            NegotiationTerms(compensation=Decimal("1000"), budget_ceiling=1500.0)

    def test_rejects_offer_above_ceiling(self):
        with pytest.raises(ValidationError, match="must not exceed budget_ceiling"):
            NegotiationTerms(compensation=Decimal("2000"), budget_ceiling=Decimal("1500"))

    def test_offer_equal_to_ceiling_allowed(self):
        terms = NegotiationTerms(compensation="1500", budget_ceiling="1500")
        assert terms.compensation == terms.budget_ceiling

    def test_rejects_zero_deliverables(self):
        with pytest.raises(ValidationError, match="deliverable_count must be at least 1"):
            NegotiationTerms(
                compensation=Decimal("1000"), budget_ceiling=Decimal("1500"), deliverable_count=0
            )

    def test_frozen(self):
        terms = NegotiationTerms(compensation="800", budget_ceiling="1200")
        with pytest.raises(ValidationError):
            terms.compensation = Decimal("900")


class TestMessageDraft:
    """Direction timestamps are exclusive and match the sender."""

    def test_creator_inbound(self):
        draft = MessageDraft(
            sender_type=SenderType.CREATOR,
            sender_address="creator@example.com",
            body_text="Hi",
            received_at=NOW,
        )
        assert draft.timestamp == NOW
        assert draft.attachments == []

    def test_brand_outbound(self):
        draft = MessageDraft(
            sender_type=SenderType.BRAND,
            sender_address="brand@example.com",
            body_text="Offer",
            sent_at=NOW,
        )
        assert draft.timestamp == NOW

    def test_both_timestamps_rejected(self):
        with pytest.raises(ValidationError, match="exactly one of sent_at and received_at"):
            MessageDraft(
                sender_type=SenderType.BRAND,
                sender_address="brand@example.com",
                body_text="Offer",
                sent_at=NOW,
                received_at=NOW,
            )

    def test_creator_message_must_be_inbound(self):
        with pytest.raises(ValidationError, match="creator messages must carry received_at"):
            MessageDraft(
                sender_type=SenderType.CREATOR,
                sender_address="creator@example.com",
                body_text="Hi",
                sent_at=NOW,
            )

    def test_ai_message_must_be_outbound(self):
        with pytest.raises(ValidationError, match="ai-system messages must carry sent_at"):
            MessageDraft(
                sender_type=SenderType.AI_SYSTEM,
                sender_address="brand@example.com",
                body_text="Reply",
                received_at=NOW,
            )


class TestConversationKey:
    """A key must carry a usable identifier."""

    @pytest.mark.parametrize(
        ("fields", "described"),
        [
            ({"conversation_id": "conv-1"}, "conv-1"),
            ({"thread_ref": "t-9"}, "thread:t-9"),
            ({"campaign_id": "camp", "creator_id": "sanjay"}, "camp/sanjay"),
        ],
        ids=["id", "thread", "pair"],
    )
    def test_valid_keys(self, fields: dict[str, str], described: str) -> None:
        assert ConversationKey(**fields).describe() == described

    @pytest.mark.parametrize(
        "fields",
        [{}, {"campaign_id": "camp"}, {"creator_id": "sanjay"}, {"thread_ref": ""}],
        ids=["empty", "campaign-only", "creator-only", "blank-thread"],
    )
    def test_insufficient_keys(self, fields: dict[str, str]) -> None:
        with pytest.raises(ValidationError, match="conversation key needs"):
            ConversationKey(**fields)


class TestAnalysis:
    """The classifier's structured output."""

    def test_defaults(self):
        analysis = Analysis(
            sentiment=Sentiment.NEUTRAL,
            intent=Intent.QUESTION,
            risk_level=RiskLevel.LOW,
            summary="Asks about timing",
        )
        assert analysis.confidence == 1.0
        assert analysis.budget_concern is False
        assert analysis.extracted_terms == ExtractedTerms()
        assert analysis.suggested_reply == ""

    @pytest.mark.parametrize("confidence", [-0.1, 1.5])
    def test_confidence_bounds(self, confidence: float):
        with pytest.raises(ValidationError):
            Analysis(
                sentiment=Sentiment.NEUTRAL,
                intent=Intent.QUESTION,
                risk_level=RiskLevel.LOW,
                summary="x",
                confidence=confidence,
            )

    def test_from_json_values(self):
        analysis = Analysis.model_validate(
            {
                "sentiment": "positive",
                "intent": "counter_offer",
                "risk_level": "medium",
                "summary": "Wants more",
                "extracted_terms": {"compensation": "$1,800"},
            }
        )
        assert analysis.intent == Intent.COUNTER_OFFER
        assert analysis.extracted_terms.compensation_amount == Decimal("1800")

    def test_unknown_intent_rejected(self):
        with pytest.raises(ValidationError):
            Analysis.model_validate(
                {"sentiment": "positive", "intent": "maybe", "risk_level": "low", "summary": "x"}
            )
