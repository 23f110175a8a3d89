"""ConversationStateMachine class with trigger, history, and valid_events."""

from __future__ import annotations

from dealflow.domain.errors import InvalidTransitionError
from dealflow.domain.types import ConversationStage
from dealflow.state_machine.transitions import TERMINAL_STAGES, TRANSITIONS


class ConversationStateMachine:
    """Finite state machine governing the negotiation lifecycle.

    Tracks the current stage, validates transitions against the transition
    map, and records the history of all stage changes.  Terminal stages only
    accept the self-edges listed in ``TRANSITIONS``.

    Usage::

        sm = ConversationStateMachine()
        sm.trigger("delivery_confirmed")   # -> SENT
        sm.trigger("receive_reply")        # -> REPLIED
        sm.trigger("begin_analysis")       # -> ANALYZING
    """

    def __init__(
        self,
        initial_stage: ConversationStage = ConversationStage.INITIATED,
    ) -> None:
        self._stage: ConversationStage = initial_stage
        self._history: list[tuple[ConversationStage, str, ConversationStage]] = []

    @classmethod
    def from_snapshot(
        cls,
        stage: ConversationStage,
        history: list[tuple[ConversationStage, str, ConversationStage]] | None = None,
    ) -> ConversationStateMachine:
        """Reconstruct a state machine from a persisted stage and history.

        Args:
            stage: The stage to restore.
            history: Prior ``(from, event, to)`` tuples in chronological order.

        Returns:
            A ``ConversationStateMachine`` positioned at *stage*.
        """
        instance = cls(initial_stage=stage)
        instance._history = list(history or [])
        return instance

    @property
    def stage(self) -> ConversationStage:
        """Return the current stage."""
        return self._stage

    @property
    def is_terminal(self) -> bool:
        """Return True if the conversation is in a terminal stage."""
        return self._stage in TERMINAL_STAGES

    @property
    def history(self) -> list[tuple[ConversationStage, str, ConversationStage]]:
        """Return a copy of the transition history."""
        return list(self._history)

    def can_trigger(self, event: str) -> bool:
        """Return True if *event* is a legal transition from the current stage."""
        return (self._stage, event) in TRANSITIONS

    def trigger(self, event: str) -> ConversationStage:
        """Apply an event to the current stage and transition.

        Args:
            event: The event string (e.g. ``"receive_reply"``).

        Returns:
            The new stage after the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed from
                the current stage.
        """
        key = (self._stage, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(self._stage, event)

        old_stage = self._stage
        new_stage = TRANSITIONS[key]
        self._history.append((old_stage, event, new_stage))
        self._stage = new_stage
        return new_stage

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current stage."""
        return sorted(event for stage, event in TRANSITIONS if stage == self._stage)
