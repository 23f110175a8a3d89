"""Tests for the ConversationStateMachine class."""

import pytest

from dealflow.domain.errors import InvalidTransitionError
from dealflow.domain.types import ConversationStage
from dealflow.state_machine.machine import ConversationStateMachine
from dealflow.state_machine.transitions import ConversationEvent

# ---------------------------------------------------------------------------
# All 16 valid transitions
# ---------------------------------------------------------------------------
VALID_TRANSITIONS: list[tuple[ConversationStage, str, ConversationStage]] = [
    (ConversationStage.INITIATED, "delivery_confirmed", ConversationStage.SENT),
    (ConversationStage.INITIATED, "timeout", ConversationStage.ABANDONED),
    (ConversationStage.SENT, "receive_reply", ConversationStage.REPLIED),
    (ConversationStage.SENT, "timeout", ConversationStage.ABANDONED),
    (ConversationStage.REPLIED, "begin_analysis", ConversationStage.ANALYZING),
    (ConversationStage.ANALYZING, "auto_reply", ConversationStage.AUTO_RESPONDING),
    (ConversationStage.ANALYZING, "escalate", ConversationStage.PENDING_HUMAN_REVIEW),
    (ConversationStage.AUTO_RESPONDING, "reply_sent", ConversationStage.SENT),
    (
        ConversationStage.AUTO_RESPONDING,
        "agreement_reached",
        ConversationStage.NEGOTIATION_AGREED,
    ),
    (ConversationStage.PENDING_HUMAN_REVIEW, "approval_sent", ConversationStage.SENT),
    (ConversationStage.PENDING_HUMAN_REVIEW, "approval_rejected", ConversationStage.DECLINED),
    (
        ConversationStage.NEGOTIATION_AGREED,
        "contract_requested",
        ConversationStage.CONTRACT_DRAFTING,
    ),
    (
        ConversationStage.CONTRACT_DRAFTING,
        "contract_drafted",
        ConversationStage.CONTRACT_PENDING_SIGNATURE,
    ),
    (
        ConversationStage.CONTRACT_PENDING_SIGNATURE,
        "contract_signed",
        ConversationStage.CONTRACT_PENDING_SIGNATURE,
    ),
    (
        ConversationStage.CONTRACT_PENDING_SIGNATURE,
        "contract_activated",
        ConversationStage.CONTRACT_ACTIVE,
    ),
    (
        ConversationStage.CONTRACT_ACTIVE,
        "payment_milestone_completed",
        ConversationStage.CONTRACT_ACTIVE,
    ),
]

ALL_EVENTS: list[str] = [e.value for e in ConversationEvent]

_VALID_PAIRS: set[tuple[ConversationStage, str]] = {(s, e) for s, e, _ in VALID_TRANSITIONS}

TERMINAL = {
    ConversationStage.CONTRACT_ACTIVE,
    ConversationStage.DECLINED,
    ConversationStage.ABANDONED,
}

# Every (stage, event) pair outside the map, terminal stages included.
INVALID_TRANSITIONS: list[tuple[ConversationStage, str]] = [
    (stage, event)
    for stage in ConversationStage
    for event in ALL_EVENTS
    if (stage, event) not in _VALID_PAIRS
]


# ===================================================================
# Parameterized valid transitions
# ===================================================================
class TestValidTransitions:
    """Parameterized test for all 16 valid transitions."""

    @pytest.mark.parametrize(
        ("from_stage", "event", "to_stage"),
        VALID_TRANSITIONS,
        ids=[f"{s.value}+{e}->{t.value}" for s, e, t in VALID_TRANSITIONS],
    )
    def test_valid_transition(
        self,
        from_stage: ConversationStage,
        event: str,
        to_stage: ConversationStage,
    ) -> None:
        sm = ConversationStateMachine(initial_stage=from_stage)
        result = sm.trigger(event)
        assert result == to_stage
        assert sm.stage == to_stage
        assert sm.history == [(from_stage, event, to_stage)]


# ===================================================================
# Invalid transitions
# ===================================================================
class TestInvalidTransitions:
    """Every pair outside the transition map raises and leaves the stage unchanged."""

    @pytest.mark.parametrize(
        ("stage", "event"),
        INVALID_TRANSITIONS,
        ids=[f"{s.value}+{e}" for s, e in INVALID_TRANSITIONS],
    )
    def test_invalid_transition_raises(self, stage: ConversationStage, event: str) -> None:
        sm = ConversationStateMachine(initial_stage=stage)
        with pytest.raises(InvalidTransitionError) as exc_info:
            sm.trigger(event)
        assert exc_info.value.current_stage == stage
        assert exc_info.value.event == event
        assert sm.stage == stage
        assert sm.history == []

    def test_unknown_event_string_raises(self) -> None:
        sm = ConversationStateMachine()
        with pytest.raises(InvalidTransitionError):
            sm.trigger("shrug")


# ===================================================================
# Terminal stages
# ===================================================================
class TestTerminalStages:
    """Declined and abandoned accept nothing; contract_active only records milestones."""

    @pytest.mark.parametrize(
        "terminal",
        [ConversationStage.DECLINED, ConversationStage.ABANDONED],
        ids=lambda s: s.value,
    )
    @pytest.mark.parametrize("event", ALL_EVENTS, ids=lambda e: e)
    def test_closed_stage_rejects_event(self, terminal: ConversationStage, event: str) -> None:
        sm = ConversationStateMachine(initial_stage=terminal)
        with pytest.raises(InvalidTransitionError):
            sm.trigger(event)

    def test_contract_active_only_accepts_milestones(self) -> None:
        sm = ConversationStateMachine(initial_stage=ConversationStage.CONTRACT_ACTIVE)
        assert sm.get_valid_events() == ["payment_milestone_completed"]

        sm.trigger("payment_milestone_completed")
        sm.trigger("payment_milestone_completed")

        assert sm.stage == ConversationStage.CONTRACT_ACTIVE
        assert sm.is_terminal
        assert len(sm.history) == 2


# ===================================================================
# Path integration tests
# ===================================================================
class TestAutoReplyPath:
    """Outreach, reply, analysis and an autonomous answer back to SENT."""

    def test_reply_loop_returns_to_sent(self) -> None:
        sm = ConversationStateMachine()
        sm.trigger("delivery_confirmed")
        assert sm.stage == ConversationStage.SENT
        sm.trigger("receive_reply")
        assert sm.stage == ConversationStage.REPLIED
        sm.trigger("begin_analysis")
        assert sm.stage == ConversationStage.ANALYZING
        sm.trigger("auto_reply")
        assert sm.stage == ConversationStage.AUTO_RESPONDING
        sm.trigger("reply_sent")
        assert sm.stage == ConversationStage.SENT
        assert not sm.is_terminal


class TestEscalationPath:
    """Escalation ends either in a human-sent reply or a decline."""

    def test_escalation_then_approval(self) -> None:
        sm = ConversationStateMachine(initial_stage=ConversationStage.ANALYZING)
        sm.trigger("escalate")
        assert sm.stage == ConversationStage.PENDING_HUMAN_REVIEW
        sm.trigger("approval_sent")
        assert sm.stage == ConversationStage.SENT

    def test_escalation_then_rejection(self) -> None:
        sm = ConversationStateMachine(initial_stage=ConversationStage.ANALYZING)
        sm.trigger("escalate")
        sm.trigger("approval_rejected")
        assert sm.stage == ConversationStage.DECLINED
        assert sm.is_terminal


class TestContractPath:
    """Agreement through contract activation and payment milestones."""

    def test_agreement_to_active_contract(self) -> None:
        sm = ConversationStateMachine(initial_stage=ConversationStage.AUTO_RESPONDING)
        for event in (
            "agreement_reached",
            "contract_requested",
            "contract_drafted",
            "contract_signed",
            "contract_activated",
            "payment_milestone_completed",
        ):
            sm.trigger(event)

        assert sm.stage == ConversationStage.CONTRACT_ACTIVE
        assert [event for _, event, _ in sm.history][:2] == [
            "agreement_reached",
            "contract_requested",
        ]


class TestTimeoutPath:
    """Silence after outreach abandons the conversation."""

    @pytest.mark.parametrize(
        "stage",
        [ConversationStage.INITIATED, ConversationStage.SENT],
        ids=lambda s: s.value,
    )
    def test_timeout_abandons(self, stage: ConversationStage) -> None:
        sm = ConversationStateMachine(initial_stage=stage)
        sm.trigger("timeout")
        assert sm.stage == ConversationStage.ABANDONED


# ===================================================================
# History tracking
# ===================================================================
class TestHistory:
    """History records every transition as (from_stage, event, to_stage) tuples."""

    def test_history_records_all_transitions(self) -> None:
        sm = ConversationStateMachine()
        sm.trigger("delivery_confirmed")
        sm.trigger("receive_reply")
        assert sm.history == [
            (ConversationStage.INITIATED, "delivery_confirmed", ConversationStage.SENT),
            (ConversationStage.SENT, "receive_reply", ConversationStage.REPLIED),
        ]

    def test_history_empty_at_start(self) -> None:
        assert ConversationStateMachine().history == []

    def test_history_is_a_copy(self) -> None:
        """Modifying the returned history list should not affect the machine."""
        sm = ConversationStateMachine()
        sm.trigger("delivery_confirmed")
        history = sm.history
        history.clear()
        assert len(sm.history) == 1


# ===================================================================
# from_snapshot
# ===================================================================
class TestFromSnapshot:
    """Reconstruction from a persisted stage and history."""

    def test_restores_stage_and_history(self) -> None:
        history = [
            (ConversationStage.INITIATED, "delivery_confirmed", ConversationStage.SENT),
        ]
        sm = ConversationStateMachine.from_snapshot(ConversationStage.SENT, history)

        assert sm.stage == ConversationStage.SENT
        assert sm.history == history

        sm.trigger("receive_reply")
        assert len(sm.history) == 2
        assert len(history) == 1

    def test_without_history(self) -> None:
        sm = ConversationStateMachine.from_snapshot(ConversationStage.ANALYZING)
        assert sm.stage == ConversationStage.ANALYZING
        assert sm.history == []


# ===================================================================
# can_trigger / get_valid_events
# ===================================================================
class TestGetValidEvents:
    """get_valid_events returns a sorted list of events valid from the current stage."""

    def test_initiated(self) -> None:
        sm = ConversationStateMachine()
        assert sm.get_valid_events() == ["delivery_confirmed", "timeout"]

    def test_analyzing(self) -> None:
        sm = ConversationStateMachine(initial_stage=ConversationStage.ANALYZING)
        assert sm.get_valid_events() == ["auto_reply", "escalate"]

    @pytest.mark.parametrize(
        "stage",
        [ConversationStage.DECLINED, ConversationStage.ABANDONED],
        ids=lambda s: s.value,
    )
    def test_closed_stages_have_no_events(self, stage: ConversationStage) -> None:
        assert ConversationStateMachine(initial_stage=stage).get_valid_events() == []

    def test_can_trigger_matches_map(self) -> None:
        sm = ConversationStateMachine(initial_stage=ConversationStage.SENT)
        assert sm.can_trigger("receive_reply")
        assert not sm.can_trigger("begin_analysis")


# ===================================================================
# is_terminal property
# ===================================================================
class TestIsTerminal:
    """is_terminal is true for contract_active, declined and abandoned."""

    @pytest.mark.parametrize("stage", sorted(TERMINAL), ids=lambda s: s.value)
    def test_terminal_stages_return_true(self, stage: ConversationStage) -> None:
        assert ConversationStateMachine(initial_stage=stage).is_terminal is True

    @pytest.mark.parametrize(
        "stage",
        [s for s in ConversationStage if s not in TERMINAL],
        ids=lambda s: s.value,
    )
    def test_non_terminal_stages_return_false(self, stage: ConversationStage) -> None:
        assert ConversationStateMachine(initial_stage=stage).is_terminal is False

    def test_default_initial_stage(self) -> None:
        assert ConversationStateMachine().stage == ConversationStage.INITIATED
