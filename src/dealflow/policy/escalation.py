"""Deterministic escalation policy for classified creator replies.

One decision function, ``EscalationPolicy.decide``, is called by every entry
point (webhook ingestion, simulated replies, the timeout sweep).  It returns
AUTO only when nothing at all argues for a human, and it reports every
reason that fired rather than the first one found.

Thresholds are loaded from a YAML file validated by Pydantic; a missing,
empty, or invalid file falls back to the defaults.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from pathlib import Path

import structlog
import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, Field, ValidationError

from dealflow.domain.models import Analysis, ExtractedTerms, NegotiationTerms, parse_amount
from dealflow.domain.types import Intent, RiskLevel
from dealflow.llm.models import ClassificationFailure, ClassifierResult

logger = structlog.get_logger()

DEFAULT_POLICY_PATH = Path(__file__).resolve().parents[3] / "config" / "escalation_policy.yaml"


class PolicyAction(StrEnum):
    """What the orchestrator should do with a classified reply."""

    AUTO = "auto"
    ESCALATE = "escalate"


class EscalationReason(StrEnum):
    """Individual signals that force human review."""

    CLASSIFIER_FAILURE = "classifier_failure"
    RISK_LEVEL = "risk_level"
    MONETARY_CHANGE = "monetary_change"
    BUDGET_CONCERN = "budget_concern"
    DECLINING = "declining"
    LOW_CONFIDENCE = "low_confidence"
    TERM_CHANGE = "term_change"
    EMPTY_REPLY = "empty_reply"
    TIMEOUT = "timeout"


class EscalationPolicyConfig(BaseModel):
    """Policy thresholds.

    Loaded from YAML config file and validated by Pydantic.
    Defaults: 20% deliverable tolerance and a 0.70 confidence floor.
    """

    deliverable_tolerance_pct: float = Field(default=20.0, ge=0.0)
    min_confidence: float = Field(default=0.70, ge=0.0, le=1.0)


class FiredReason(BaseModel):
    """One escalation reason with a human-readable explanation."""

    reason: EscalationReason
    detail: str = ""


class EscalationDecision(BaseModel):
    """The policy's verdict with every reason that fired."""

    action: PolicyAction
    reasons: list[FiredReason] = Field(default_factory=list)

    @property
    def escalate(self) -> bool:
        return self.action == PolicyAction.ESCALATE

    @property
    def reason_codes(self) -> list[str]:
        return [r.reason.value for r in self.reasons]

    def describe(self) -> list[str]:
        """Return ``"code: detail"`` strings suitable for an approval's reasons."""
        return [
            f"{r.reason.value}: {r.detail}" if r.detail else r.reason.value
            for r in self.reasons
        ]


def load_policy_config(path: Path = DEFAULT_POLICY_PATH) -> EscalationPolicyConfig:
    """Load and validate escalation policy thresholds from a YAML file.

    Args:
        path: Path to the YAML config file.

    Returns:
        Validated config.  Falls back to all-defaults if the file is missing,
        empty, contains invalid YAML, or fails validation.
    """
    if not path.exists():
        return EscalationPolicyConfig()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError:
        logger.warning("Invalid YAML in escalation policy, using defaults", path=str(path))
        return EscalationPolicyConfig()

    if raw is None:
        return EscalationPolicyConfig()

    try:
        return EscalationPolicyConfig.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "Escalation policy failed validation, using defaults",
            path=str(path),
            errors=exc.error_count(),
        )
        return EscalationPolicyConfig()


def _pct_change(baseline: int, proposed: int) -> float:
    if baseline == 0:
        return 0.0 if proposed == 0 else float("inf")
    return abs(proposed - baseline) / baseline * 100.0


def monetary_change(analysis: Analysis, terms: NegotiationTerms) -> str | None:
    """Return why *analysis* requests a monetary change, or None if it does not.

    A compensation that cannot be parsed counts as a change.
    """
    try:
        asked = analysis.extracted_terms.compensation_amount
    except ValueError:
        return f"unparseable compensation {analysis.extracted_terms.compensation!r}"
    if asked is not None and asked != terms.compensation:
        return f"compensation {asked} differs from offer {terms.compensation}"

    try:
        delta = parse_amount(analysis.budget_delta)
    except ValueError:
        return f"unparseable budget delta {analysis.budget_delta!r}"
    if delta is not None and delta != Decimal("0"):
        return f"budget delta {delta}"
    return None


def terms_conflicts(extracted: ExtractedTerms, terms: NegotiationTerms) -> list[str]:
    """List every extracted term that disagrees with the baseline offer.

    An agreement only counts as final when this list is empty.
    """
    conflicts: list[str] = []
    try:
        asked = extracted.compensation_amount
    except ValueError:
        conflicts.append(f"compensation {extracted.compensation!r} is not an amount")
        asked = None
    if asked is not None and asked != terms.compensation:
        conflicts.append(f"compensation {asked} != {terms.compensation}")
    if extracted.deliverable_count is not None and (
        extracted.deliverable_count != terms.deliverable_count
    ):
        conflicts.append(
            f"deliverable_count {extracted.deliverable_count} != {terms.deliverable_count}"
        )
    if extracted.video_length_minutes is not None and (
        extracted.video_length_minutes != terms.video_length_minutes
    ):
        conflicts.append(
            f"video_length_minutes {extracted.video_length_minutes} != {terms.video_length_minutes}"
        )
    if extracted.timeline and (
        terms.timeline is None
        or extracted.timeline.strip().lower() != terms.timeline.strip().lower()
    ):
        conflicts.append(f"timeline {extracted.timeline!r} != {terms.timeline!r}")
    conflicts.extend(f"other: {item}" for item in extracted.other)
    return conflicts


class EscalationPolicy:
    """The single decision function between a classification and an action."""

    def __init__(self, config: EscalationPolicyConfig | None = None) -> None:
        self._config = config or EscalationPolicyConfig()

    @property
    def config(self) -> EscalationPolicyConfig:
        return self._config

    def decide(self, result: ClassifierResult, terms: NegotiationTerms) -> EscalationDecision:
        """Decide whether a classified reply may be answered automatically.

        Args:
            result: The classifier's analysis, or the failure it produced.
            terms: The conversation's baseline offer.

        Returns:
            AUTO with no reasons, or ESCALATE with every reason that fired.
        """
        if isinstance(result, ClassificationFailure):
            return EscalationDecision(
                action=PolicyAction.ESCALATE,
                reasons=[
                    FiredReason(
                        reason=EscalationReason.CLASSIFIER_FAILURE,
                        detail=(
                            f"{result.kind.value}: {result.message}"
                            if result.message
                            else result.kind.value
                        ),
                    )
                ],
            )

        reasons: list[FiredReason] = []

        if result.risk_level != RiskLevel.LOW:
            reasons.append(
                FiredReason(
                    reason=EscalationReason.RISK_LEVEL,
                    detail=f"risk level {result.risk_level.value}",
                )
            )

        money = monetary_change(result, terms)
        if money is not None:
            reasons.append(FiredReason(reason=EscalationReason.MONETARY_CHANGE, detail=money))

        if result.budget_concern:
            reasons.append(
                FiredReason(
                    reason=EscalationReason.BUDGET_CONCERN,
                    detail="creator raised a budget concern",
                )
            )

        if result.intent == Intent.DECLINING:
            reasons.append(
                FiredReason(reason=EscalationReason.DECLINING, detail="creator is declining")
            )

        if result.confidence < self._config.min_confidence:
            reasons.append(
                FiredReason(
                    reason=EscalationReason.LOW_CONFIDENCE,
                    detail=(
                        f"confidence {result.confidence:.2f} below "
                        f"{self._config.min_confidence:.2f}"
                    ),
                )
            )

        reasons.extend(self._term_changes(result.extracted_terms, terms))

        if not result.suggested_reply.strip():
            reasons.append(
                FiredReason(reason=EscalationReason.EMPTY_REPLY, detail="no reply was drafted")
            )

        if reasons:
            return EscalationDecision(action=PolicyAction.ESCALATE, reasons=reasons)
        return EscalationDecision(action=PolicyAction.AUTO)

    def timeout_decision(self, waited_seconds: float) -> EscalationDecision:
        """Escalation for a conversation stuck in analysis past its deadline."""
        return EscalationDecision(
            action=PolicyAction.ESCALATE,
            reasons=[
                FiredReason(
                    reason=EscalationReason.TIMEOUT,
                    detail=f"analysis did not finish within {waited_seconds:.0f}s",
                )
            ],
        )

    def _term_changes(
        self, extracted: ExtractedTerms, terms: NegotiationTerms
    ) -> list[FiredReason]:
        tolerance = self._config.deliverable_tolerance_pct
        fired: list[FiredReason] = []

        if extracted.deliverable_count is not None:
            change = _pct_change(terms.deliverable_count, extracted.deliverable_count)
            if change > tolerance:
                fired.append(
                    FiredReason(
                        reason=EscalationReason.TERM_CHANGE,
                        detail=(
                            f"deliverable count {terms.deliverable_count} -> "
                            f"{extracted.deliverable_count} exceeds {tolerance:g}% tolerance"
                        ),
                    )
                )

        if extracted.video_length_minutes is not None:
            if terms.video_length_minutes is None:
                fired.append(
                    FiredReason(
                        reason=EscalationReason.TERM_CHANGE,
                        detail=f"video length {extracted.video_length_minutes} min not in offer",
                    )
                )
            else:
                change = _pct_change(terms.video_length_minutes, extracted.video_length_minutes)
                if change > tolerance:
                    fired.append(
                        FiredReason(
                            reason=EscalationReason.TERM_CHANGE,
                            detail=(
                                f"video length {terms.video_length_minutes} -> "
                                f"{extracted.video_length_minutes} min exceeds "
                                f"{tolerance:g}% tolerance"
                            ),
                        )
                    )

        if extracted.timeline and (
            terms.timeline is None
            or extracted.timeline.strip().lower() != terms.timeline.strip().lower()
        ):
            fired.append(
                FiredReason(
                    reason=EscalationReason.TERM_CHANGE,
                    detail=f"timeline {extracted.timeline!r} differs from offer",
                )
            )

        for item in extracted.other:
            fired.append(
                FiredReason(reason=EscalationReason.TERM_CHANGE, detail=f"new term: {item}")
            )

        return fired
