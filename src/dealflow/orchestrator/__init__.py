"""Negotiation lifecycle orchestration."""

from dealflow.orchestrator.orchestrator import NegotiationOrchestrator
from dealflow.orchestrator.results import (
    ApprovalSummary,
    ConversationStateView,
    ConversationView,
    DownstreamResult,
    IngestResult,
    ResolutionResult,
    SweepReport,
)
from dealflow.orchestrator.simulation import feed_scripted_reply

__all__ = [
    "ApprovalSummary",
    "ConversationStateView",
    "ConversationView",
    "DownstreamResult",
    "IngestResult",
    "NegotiationOrchestrator",
    "ResolutionResult",
    "SweepReport",
    "feed_scripted_reply",
]
