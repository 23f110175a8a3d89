"""Escalation policy deciding between automatic replies and human review."""

from dealflow.policy.escalation import (
    EscalationDecision,
    EscalationPolicy,
    EscalationPolicyConfig,
    EscalationReason,
    FiredReason,
    PolicyAction,
    load_policy_config,
    terms_conflicts,
)

__all__ = [
    "EscalationDecision",
    "EscalationPolicy",
    "EscalationPolicyConfig",
    "EscalationReason",
    "FiredReason",
    "PolicyAction",
    "load_policy_config",
    "terms_conflicts",
]
