"""Tests for the conversation transition map."""

import pytest

from dealflow.domain.types import POST_AGREEMENT_STAGES, ConversationStage
from dealflow.state_machine.transitions import (
    TERMINAL_STAGES,
    TRANSITIONS,
    ConversationEvent,
)


class TestConversationEvent:
    """Tests for the ConversationEvent enum."""

    EXPECTED_MEMBERS = {
        "DELIVERY_CONFIRMED": "delivery_confirmed",
        "RECEIVE_REPLY": "receive_reply",
        "BEGIN_ANALYSIS": "begin_analysis",
        "AUTO_REPLY": "auto_reply",
        "ESCALATE": "escalate",
        "REPLY_SENT": "reply_sent",
        "AGREEMENT_REACHED": "agreement_reached",
        "APPROVAL_SENT": "approval_sent",
        "APPROVAL_REJECTED": "approval_rejected",
        "CONTRACT_REQUESTED": "contract_requested",
        "CONTRACT_DRAFTED": "contract_drafted",
        "CONTRACT_SIGNED": "contract_signed",
        "CONTRACT_ACTIVATED": "contract_activated",
        "PAYMENT_MILESTONE_COMPLETED": "payment_milestone_completed",
        "TIMEOUT": "timeout",
    }

    def test_has_exactly_15_members(self) -> None:
        assert len(ConversationEvent) == 15

    @pytest.mark.parametrize(
        ("name", "value"),
        list(EXPECTED_MEMBERS.items()),
        ids=list(EXPECTED_MEMBERS.keys()),
    )
    def test_member_name_and_value(self, name: str, value: str) -> None:
        assert ConversationEvent[name].value == value

    def test_is_str_enum(self) -> None:
        """ConversationEvent members should be usable as strings."""
        assert str(ConversationEvent.RECEIVE_REPLY) == "receive_reply"


class TestTransitionsMap:
    """Tests for the TRANSITIONS dict completeness."""

    def test_has_exactly_16_entries(self) -> None:
        assert len(TRANSITIONS) == 16

    def test_every_event_is_used(self) -> None:
        used = {event for _stage, event in TRANSITIONS}
        assert used == set(ConversationEvent)

    def test_all_non_terminal_stages_appear_as_source(self) -> None:
        """Every non-terminal stage must be a source in at least one transition."""
        source_stages = {stage for stage, _event in TRANSITIONS}
        non_terminal = {s for s in ConversationStage if s not in TERMINAL_STAGES}
        assert non_terminal <= source_stages

    @pytest.mark.parametrize(
        "closed",
        [ConversationStage.DECLINED, ConversationStage.ABANDONED],
        ids=lambda s: s.value,
    )
    def test_closed_stages_never_appear_as_source(self, closed: ConversationStage) -> None:
        source_stages = {stage for stage, _event in TRANSITIONS}
        assert closed not in source_stages

    def test_terminal_sources_are_self_edges(self) -> None:
        """A terminal stage may only appear as a source when it maps onto itself."""
        for (stage, _event), target in TRANSITIONS.items():
            if stage in TERMINAL_STAGES:
                assert target == stage

    def test_all_transition_values_are_stages(self) -> None:
        for target in TRANSITIONS.values():
            assert isinstance(target, ConversationStage)


class TestStageSets:
    """Tests for TERMINAL_STAGES and POST_AGREEMENT_STAGES."""

    def test_terminal_members(self) -> None:
        assert TERMINAL_STAGES == {
            ConversationStage.CONTRACT_ACTIVE,
            ConversationStage.DECLINED,
            ConversationStage.ABANDONED,
        }

    def test_terminal_is_frozenset(self) -> None:
        assert isinstance(TERMINAL_STAGES, frozenset)

    def test_post_agreement_members(self) -> None:
        assert POST_AGREEMENT_STAGES == {
            ConversationStage.NEGOTIATION_AGREED,
            ConversationStage.CONTRACT_DRAFTING,
            ConversationStage.CONTRACT_PENDING_SIGNATURE,
        }

    def test_stage_sets_do_not_overlap(self) -> None:
        assert not TERMINAL_STAGES & POST_AGREEMENT_STAGES
