"""Block Kit message builders for Slack notifications.

Pure functions that return Block Kit block dicts for approval requests and
agreement alerts. These functions have no side effects and are easy to test.
"""

from decimal import Decimal
from typing import Any

QUOTE_LIMIT = 500


def _quote(text: str) -> str:
    trimmed = text if len(text) <= QUOTE_LIMIT else text[: QUOTE_LIMIT - 3] + "..."
    return "\n".join(f">{line}" for line in trimmed.splitlines() or [""])


def build_approval_blocks(
    approval_id: str,
    conversation_id: str,
    campaign_id: str,
    creator_id: str,
    creator_address: str,
    reasons: list[str],
    creator_quote: str,
    proposed_reply: str,
    merged: bool = False,
) -> list[dict[str, Any]]:
    """Build Block Kit blocks for an approval request.

    Conditional sections (creator quote, proposed reply) are only included
    when the corresponding text is provided.

    Args:
        approval_id: The pending approval's id.
        conversation_id: The conversation under review.
        campaign_id: Campaign identifier.
        creator_id: Creator identifier.
        creator_address: Creator's email address.
        reasons: Every escalation reason the policy reported.
        creator_quote: The creator message that caused the escalation.
        proposed_reply: The AI-drafted reply awaiting approval, if any.
        merged: True when a later message was folded into an open approval.

    Returns:
        List of Block Kit block dicts.
    """
    title = "Approval updated" if merged else "Approval needed"
    reasons_text = "\n".join(f"- {reason}" for reason in reasons) or "- (none recorded)"
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"{title}: {creator_id}"},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Creator:*\n{creator_id}"},
                {"type": "mrkdwn", "text": f"*Email:*\n{creator_address}"},
                {"type": "mrkdwn", "text": f"*Campaign:*\n{campaign_id}"},
                {"type": "mrkdwn", "text": f"*Approval:*\n`{approval_id}`"},
            ],
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"*Reasons:*\n{reasons_text}"},
        },
    ]

    if creator_quote:
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Creator wrote:*\n{_quote(creator_quote)}"},
            }
        )

    if proposed_reply:
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Proposed reply:*\n{_quote(proposed_reply)}",
                },
            }
        )

    blocks.append(
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": (
                        f"Resolve with `POST /approvals/{approval_id}/resolve` "
                        f"(conversation `{conversation_id}`)"
                    ),
                },
            ],
        }
    )

    return blocks


def build_agreement_blocks(
    creator_id: str,
    creator_address: str,
    campaign_id: str,
    compensation: Decimal,
    deliverable_count: int,
    next_steps: list[str],
) -> list[dict[str, Any]]:
    """Build Block Kit blocks for an agreement alert.

    Args:
        creator_id: Creator identifier.
        creator_address: Creator's email address.
        campaign_id: Campaign identifier.
        compensation: The agreed compensation.
        deliverable_count: Number of agreed deliverables.
        next_steps: List of next steps after agreement.

    Returns:
        List of Block Kit block dicts.
    """
    blocks: list[dict[str, Any]] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"Deal Agreed: {creator_id}"},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Creator:*\n{creator_id}"},
                {"type": "mrkdwn", "text": f"*Email:*\n{creator_address}"},
                {"type": "mrkdwn", "text": f"*Campaign:*\n{campaign_id}"},
                {"type": "mrkdwn", "text": f"*Compensation:*\n${compensation:,.2f}"},
                {"type": "mrkdwn", "text": f"*Deliverables:*\n{deliverable_count}"},
            ],
        },
    ]

    if next_steps:
        steps_text = "\n".join(f"- {step}" for step in next_steps)
        blocks.append(
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Next Steps:*\n{steps_text}"},
            }
        )

    return blocks
