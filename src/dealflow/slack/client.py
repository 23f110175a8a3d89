"""Slack notification client for posting approval requests and agreement alerts.

Wraps slack_sdk.WebClient to provide typed methods for posting Block Kit
messages to the approval channel.  A failed notification is logged and never
blocks the conversation: the approval queue is the source of truth.
"""

from __future__ import annotations

from typing import Any

import structlog
from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from dealflow.domain.models import Conversation, HumanApproval
from dealflow.slack.blocks import build_agreement_blocks, build_approval_blocks

logger = structlog.get_logger()


class ApprovalNotifier:
    """Posts structured notifications about pending approvals to Slack.

    Args:
        channel: Channel ID for approval requests and agreement alerts.
        bot_token: Slack bot token.
        client: Optional pre-built ``WebClient``; one is created if omitted.
    """

    def __init__(
        self,
        channel: str,
        bot_token: str = "",
        client: WebClient | None = None,
    ) -> None:
        self._client = client or WebClient(token=bot_token)
        self._channel = channel

    def _post(self, blocks: list[dict[str, Any]], fallback_text: str) -> str | None:
        try:
            response = self._client.chat_postMessage(
                channel=self._channel,
                blocks=blocks,
                text=fallback_text,
            )
        except SlackApiError as exc:
            logger.warning(
                "Slack notification failed",
                channel=self._channel,
                error=str(exc.response.get("error", exc)),
            )
            return None
        return str(response["ts"])

    def post_approval(
        self,
        approval: HumanApproval,
        conversation: Conversation,
        creator_quote: str = "",
        merged: bool = False,
    ) -> str | None:
        """Announce a new (or updated) pending approval.

        Returns:
            The Slack message timestamp, or None if the post failed.
        """
        blocks = build_approval_blocks(
            approval_id=approval.id,
            conversation_id=conversation.id,
            campaign_id=conversation.campaign_id,
            creator_id=conversation.creator_id,
            creator_address=conversation.creator_address,
            reasons=list(approval.reasons),
            creator_quote=creator_quote,
            proposed_reply=approval.proposed_action.reply_text,
            merged=merged,
        )
        fallback = f"Approval needed for {conversation.creator_id}: {approval.summary}"
        return self._post(blocks, fallback)

    def post_agreement(self, conversation: Conversation) -> str | None:
        """Announce that a conversation reached agreement.

        Returns:
            The Slack message timestamp, or None if the post failed.
        """
        terms = conversation.terms
        blocks = build_agreement_blocks(
            creator_id=conversation.creator_id,
            creator_address=conversation.creator_address,
            campaign_id=conversation.campaign_id,
            compensation=terms.compensation,
            deliverable_count=terms.deliverable_count,
            next_steps=["Contract drafting has been requested"],
        )
        fallback = f"Deal agreed with {conversation.creator_id} at ${terms.compensation:,.2f}"
        return self._post(blocks, fallback)


__all__ = ["ApprovalNotifier", "SlackApiError"]
