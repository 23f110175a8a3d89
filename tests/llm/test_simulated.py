"""Tests for the scripted classifier and the canned creator replies."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from dealflow.domain.errors import UnparseableResponseError
from dealflow.domain.models import Analysis, Message, NegotiationTerms
from dealflow.domain.types import Intent, SenderType
from dealflow.llm.simulated import SCRIPTED_REPLIES, ScriptedClassifier, next_scripted_reply

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)


def _creator(body: str, sequence: int = 2) -> Message:
    return Message(
        conversation_id="conv-1",
        sequence=sequence,
        sender_type=SenderType.CREATOR,
        sender_address="sanjay@example.com",
        body_text=body,
        received_at=NOW,
    )


def _brand(body: str, sequence: int = 1) -> Message:
    return Message(
        conversation_id="conv-1",
        sequence=sequence,
        sender_type=SenderType.BRAND,
        sender_address="brand@example.com",
        body_text=body,
        sent_at=NOW,
    )


class TestScript:
    def test_script_has_four_replies(self) -> None:
        assert len(SCRIPTED_REPLIES) == 4
        assert [r.analysis.intent for r in SCRIPTED_REPLIES] == [
            Intent.QUESTION,
            Intent.COUNTER_OFFER,
            Intent.AGREEMENT,
            Intent.AGREEMENT,
        ]

    def test_each_reply_contains_its_fragment(self) -> None:
        for reply in SCRIPTED_REPLIES:
            assert reply.fragment.lower() in reply.body_text.lower()

    def test_last_reply_carries_signed_contract(self) -> None:
        assert SCRIPTED_REPLIES[-1].attachments[0].content_type == "application/pdf"

    @pytest.mark.parametrize("count", [0, 1, 2, 3])
    def test_next_reply_follows_script(self, count: int) -> None:
        assert next_scripted_reply(count) is SCRIPTED_REPLIES[count]

    def test_script_ends(self) -> None:
        assert next_scripted_reply(4) is None


class TestScriptedClassifier:
    def test_from_script_recognises_every_reply(self, terms: NegotiationTerms) -> None:
        classifier = ScriptedClassifier.from_script()
        for reply in SCRIPTED_REPLIES:
            assert classifier.classify([_creator(reply.body_text)], terms) == reply.analysis

    def test_match_is_case_insensitive(
        self, make_analysis: Callable[..., Analysis], terms: NegotiationTerms
    ) -> None:
        analysis = make_analysis()
        classifier = ScriptedClassifier([("Timeline", analysis)])

        assert classifier.classify([_creator("what's the TIMELINE?")], terms) == analysis

    def test_uses_latest_creator_message(
        self, make_analysis: Callable[..., Analysis], terms: NegotiationTerms
    ) -> None:
        first = make_analysis(summary="first")
        second = make_analysis(summary="second")
        classifier = ScriptedClassifier([("alpha", first), ("beta", second)])

        result = classifier.classify(
            [_creator("alpha", 1), _creator("beta", 2), _brand("alpha again", 3)], terms
        )

        assert result == second
        assert classifier.calls == ["beta"]

    def test_earlier_rules_win(
        self, make_analysis: Callable[..., Analysis], terms: NegotiationTerms
    ) -> None:
        classifier = ScriptedClassifier([("deal", make_analysis(summary="first"))])
        classifier.register("deal", make_analysis(summary="second"))

        assert classifier.classify([_creator("it's a deal")], terms).summary == "first"

    def test_unknown_text_is_unparseable(self, terms: NegotiationTerms) -> None:
        with pytest.raises(UnparseableResponseError, match="No scripted analysis"):
            ScriptedClassifier().classify([_creator("hmm")], terms)

    def test_no_creator_message(self, terms: NegotiationTerms) -> None:
        with pytest.raises(UnparseableResponseError, match="No creator message"):
            ScriptedClassifier.from_script().classify([_brand("hello")], terms)
