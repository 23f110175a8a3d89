"""Drive a conversation with the scripted creator replies.

Used by the ``/simulate`` routes and by local demos: each call plays the
next canned reply as if the email provider had delivered it.
"""

from __future__ import annotations

import structlog

from dealflow.domain.models import ConversationKey
from dealflow.domain.types import SenderType
from dealflow.llm.simulated import next_scripted_reply
from dealflow.orchestrator.orchestrator import NegotiationOrchestrator
from dealflow.orchestrator.results import IngestResult

logger = structlog.get_logger()


async def feed_scripted_reply(
    orchestrator: NegotiationOrchestrator, conversation_id: str
) -> IngestResult | None:
    """Ingest the simulated creator's next reply for *conversation_id*.

    Returns:
        The ingestion result, or None once the script has run out.

    Raises:
        ConversationNotFoundError: If the conversation does not exist.
    """
    conversation = orchestrator.store.get(conversation_id)
    replies_so_far = sum(
        1
        for message in orchestrator.ledger.list_since(conversation_id)
        if message.sender_type == SenderType.CREATOR
    )
    reply = next_scripted_reply(replies_so_far)
    if reply is None:
        logger.info("Simulation script finished", conversation_id=conversation_id)
        return None

    logger.info(
        "Feeding scripted creator reply",
        conversation_id=conversation_id,
        step=replies_so_far + 1,
    )
    return await orchestrator.ingest_inbound_message(
        ConversationKey(conversation_id=conversation_id),
        provider_message_id=f"sim-{conversation_id}-{replies_so_far + 1}",
        sender_address=conversation.creator_address,
        body_text=reply.body_text,
        subject=f"Re: {conversation.campaign_id}",
        attachments=reply.attachments,
    )
