"""Conversation stage machine with transition validation."""

from dealflow.state_machine.machine import ConversationStateMachine
from dealflow.state_machine.transitions import (
    TERMINAL_STAGES,
    TRANSITIONS,
    ConversationEvent,
)

__all__ = [
    "TERMINAL_STAGES",
    "TRANSITIONS",
    "ConversationEvent",
    "ConversationStateMachine",
]
