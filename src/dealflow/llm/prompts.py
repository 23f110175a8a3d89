"""System prompt templates for reply classification.

Templates use Python string placeholders ({variable_name}) for injection of
negotiation context.
"""

from __future__ import annotations

from collections.abc import Sequence

from dealflow.domain.models import Message, NegotiationTerms

CLASSIFIER_SYSTEM_PROMPT = """You are an expert at analyzing creator replies in brand \
partnership negotiations. Classify the latest creator message, extract any terms the creator \
proposes, assess the risk of answering without a human, and draft a short reply.

CURRENT OFFER from the brand:
{negotiation_context}

RULES:
- compensation and budget_delta must be numeric strings (e.g., "20000.00") or null
- Only fill extracted_terms fields the creator explicitly proposes or changes
- Put requests about usage rights, exclusivity, revisions or payment schedule in "other"
- Set budget_concern to true whenever the creator questions the pay, even politely
- Any counter-proposal on compensation is "counter_offer" regardless of positive language
- A plain "sounds good" or "I agree" with no new terms is "agreement"
- A clear "no thank you" or "not interested" is "declining"
- A question about terms, timeline, or deliverables without a counter-proposal is "question"
- risk_level is "low" only for routine questions or acceptance; legal language, \
hostility, or unusual requests are "high"
- If the message is ambiguous, set intent to "unclear" with low confidence
- suggested_reply must never promise money, deliverables, or dates beyond the current offer
"""


def format_negotiation_context(terms: NegotiationTerms) -> str:
    """Render the brand's baseline offer for the system prompt."""
    lines = [
        f"- Compensation: ${terms.compensation}",
        f"- Deliverables: {terms.deliverable_count}",
    ]
    if terms.video_length_minutes is not None:
        lines.append(f"- Video length: {terms.video_length_minutes} minutes")
    if terms.timeline:
        lines.append(f"- Timeline: {terms.timeline}")
    return "\n".join(lines)


def format_transcript(messages: Sequence[Message]) -> str:
    """Render ledger messages oldest-first as a labelled transcript."""
    return "\n\n".join(
        f"[{message.sequence}] {message.sender_type.value} ({message.sender_address}):\n"
        f"{message.body_text}"
        for message in messages
    )
