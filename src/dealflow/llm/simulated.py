"""Scripted classifier and canned creator replies for simulated negotiations.

The simulation walks a creator through four replies: a first interested
question, a request to shorten the video, acceptance of the revised deal,
and a signed contract.  ``ScriptedClassifier`` maps each reply to a fixed
analysis so the whole lifecycle can be exercised without the AI service.
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, Field

from dealflow.domain.errors import UnparseableResponseError
from dealflow.domain.models import Analysis, Attachment, ExtractedTerms, Message, NegotiationTerms
from dealflow.domain.types import Intent, RiskLevel, SenderType, Sentiment


class ScriptedReply(BaseModel):
    """One canned creator reply and the analysis the script assigns to it."""

    fragment: str = Field(description="Text that identifies this reply when classifying")
    body_text: str
    attachments: list[Attachment] = Field(default_factory=list)
    analysis: Analysis


SCRIPTED_REPLIES: list[ScriptedReply] = [
    ScriptedReply(
        fragment="learning more details about this collaboration",
        body_text=(
            "Hey! Thanks for reaching out, this fits my content really well.\n\n"
            "I'm interested in learning more details about this collaboration. "
            "What deliverables do you expect, and what's the timeline?\n\nBest,\nSanjay"
        ),
        analysis=Analysis(
            sentiment=Sentiment.POSITIVE,
            intent=Intent.QUESTION,
            risk_level=RiskLevel.LOW,
            confidence=0.93,
            summary="Creator is interested and asks about deliverables and timeline.",
            suggested_reply=(
                "Hi Sanjay,\n\nGreat to hear you're interested! The collaboration is one "
                "sponsored video with full creative freedom. We ship the product within a "
                "week of signing and you have three weeks to deliver.\n\nBest regards,\n"
                "Partnerships Team"
            ),
        ),
    ),
    ScriptedReply(
        fragment="10-minute video instead",
        body_text=(
            "Thanks for the details, the compensation sounds fair.\n\n"
            "My audience retention drops after 10 minutes though. Could we do a "
            "10-minute video instead of 15? Everything else works for me.\n\nBest,\nSanjay"
        ),
        analysis=Analysis(
            sentiment=Sentiment.POSITIVE,
            intent=Intent.COUNTER_OFFER,
            extracted_terms=ExtractedTerms(video_length_minutes=10),
            risk_level=RiskLevel.MEDIUM,
            confidence=0.88,
            summary="Creator accepts the pay but asks to shorten the video from 15 to 10 minutes.",
            suggested_reply=(
                "Hi Sanjay,\n\nA 10-minute video works for us. Could you add two "
                "Instagram posts to balance the shorter runtime?\n\nBest regards,\n"
                "Partnerships Team"
            ),
        ),
    ),
    ScriptedReply(
        fragment="ready to move forward",
        body_text=(
            "Perfect! A 10-minute video plus 2 Instagram posts for $1200 over three "
            "weeks works great for me.\n\nI'm ready to move forward. What are the next "
            "steps?\n\nBest,\nSanjay"
        ),
        analysis=Analysis(
            sentiment=Sentiment.POSITIVE,
            intent=Intent.AGREEMENT,
            extracted_terms=ExtractedTerms(
                compensation="1200",
                deliverable_count=3,
                video_length_minutes=10,
            ),
            risk_level=RiskLevel.LOW,
            confidence=0.95,
            summary="Creator agrees to the revised terms and asks for next steps.",
            suggested_reply=(
                "Hi Sanjay,\n\nWonderful, we're aligned! Our team is preparing the "
                "contract and will send it over shortly.\n\nBest regards,\n"
                "Partnerships Team"
            ),
        ),
    ),
    ScriptedReply(
        fragment="signed the contract",
        body_text=(
            "Thanks for sending the contract over. I've reviewed it and signed the "
            "contract, the signed copy is attached.\n\nLooking forward to it!\n\nBest,\nSanjay"
        ),
        attachments=[
            Attachment(
                filename="signed-partnership-agreement.pdf",
                content_type="application/pdf",
            )
        ],
        analysis=Analysis(
            sentiment=Sentiment.POSITIVE,
            intent=Intent.AGREEMENT,
            risk_level=RiskLevel.LOW,
            confidence=0.97,
            summary="Creator returned the signed contract.",
        ),
    ),
]


def next_scripted_reply(creator_messages_so_far: int) -> ScriptedReply | None:
    """Return the reply the simulated creator sends next, or None when the script is done."""
    if creator_messages_so_far < len(SCRIPTED_REPLIES):
        return SCRIPTED_REPLIES[creator_messages_so_far]
    return None


class ScriptedClassifier:
    """Classifier that answers from analyses registered for body fragments.

    Matching is case-insensitive on the latest creator message.  Unknown text
    raises ``UnparseableResponseError`` so it escalates like a real failure.
    """

    def __init__(self, rules: Sequence[tuple[str, Analysis]] | None = None) -> None:
        self._rules: list[tuple[str, Analysis]] = list(rules or [])
        self.calls: list[str] = []

    @classmethod
    def from_script(cls) -> ScriptedClassifier:
        """Build a classifier that recognises every reply in ``SCRIPTED_REPLIES``."""
        return cls([(reply.fragment, reply.analysis) for reply in SCRIPTED_REPLIES])

    def register(self, fragment: str, analysis: Analysis) -> None:
        """Add a rule; earlier rules win when several fragments match."""
        self._rules.append((fragment, analysis))

    def classify(self, messages: Sequence[Message], terms: NegotiationTerms) -> Analysis:
        latest = next(
            (m for m in reversed(messages) if m.sender_type == SenderType.CREATOR),
            None,
        )
        if latest is None:
            raise UnparseableResponseError("No creator message to classify")
        self.calls.append(latest.body_text)
        body = latest.body_text.lower()
        for fragment, analysis in self._rules:
            if fragment.lower() in body:
                return analysis
        raise UnparseableResponseError(f"No scripted analysis for: {latest.body_text[:60]!r}")
