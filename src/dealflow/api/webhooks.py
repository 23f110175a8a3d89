"""Webhook endpoints for the email provider and the downstream systems.

Verifies HMAC-SHA256 signatures against raw request body bytes BEFORE JSON
parsing.  Signature checks are enforced only when the matching secret is
configured, so local development and the simulation work unsigned.

The inbound email endpoint always answers 200 once the signature checks
out: the provider must not retry a message the orchestrator has rejected or
already recorded.  The body reports what happened.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError

from dealflow.api.dependencies import get_app_settings, get_orchestrator
from dealflow.config import Settings
from dealflow.domain.types import DownstreamEvent
from dealflow.email.models import InboundEmail
from dealflow.orchestrator import DownstreamResult, IngestResult, NegotiationOrchestrator

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


class DownstreamEventPayload(BaseModel):
    """Completion event posted by the Contract or Payment system."""

    conversation_id: str
    event: DownstreamEvent
    details: dict[str, Any] = Field(default_factory=dict)


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Verify HMAC-SHA256 signature of a webhook payload.

    Must be called with the raw body bytes before any JSON parsing so the
    signature matches the exact bytes the sender signed.

    Args:
        body: The raw request body bytes.
        signature: The HMAC-SHA256 hex digest from the X-Signature header.
        secret: The shared signing secret.

    Returns:
        True if the computed signature matches the provided one.
    """
    computed = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, signature)


async def _verified_body(request: Request, secret: str) -> bytes:
    """Return the raw body, raising 401 when a configured signature check fails."""
    raw_body = await request.body()
    if not secret:
        return raw_body

    signature = request.headers.get("X-Signature")
    if not signature:
        logger.warning("Missing X-Signature header in webhook request", path=request.url.path)
        raise HTTPException(status_code=401, detail="Missing signature")
    if not verify_signature(raw_body, signature, secret):
        logger.warning("Invalid webhook signature", path=request.url.path)
        raise HTTPException(status_code=401, detail="Invalid signature")
    return raw_body


@router.post("/email/inbound", response_model=IngestResult)
async def inbound_email(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> IngestResult:
    """Receive an inbound creator email from the provider.

    Raises:
        HTTPException: 401 if a configured signature is missing or invalid.
    """
    raw_body = await _verified_body(request, settings.inbound_webhook_secret)

    try:
        inbound = InboundEmail.model_validate_json(raw_body)
    except ValidationError as exc:
        logger.warning("Unparseable inbound payload", errors=exc.error_count())
        request.app.state.services["audit"].log_message_rejected(
            "(unparsed)", "invalid payload"
        )
        return IngestResult(accepted=False, reason="invalid payload")

    result = await orchestrator.ingest_email(inbound)
    logger.info(
        "Inbound email processed",
        provider_message_id=inbound.provider_message_id,
        accepted=result.accepted,
        duplicate=result.duplicate,
    )
    return result


@router.post("/downstream", response_model=DownstreamResult)
async def downstream_event(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    orchestrator: NegotiationOrchestrator = Depends(get_orchestrator),
) -> DownstreamResult:
    """Receive a contract or payment completion event.

    Raises:
        HTTPException: 401 on a bad signature, 422 on an invalid payload.
    """
    raw_body = await _verified_body(request, settings.downstream_webhook_secret)

    try:
        payload = DownstreamEventPayload.model_validate_json(raw_body)
    except ValidationError as exc:
        logger.warning("Invalid downstream payload", errors=exc.error_count())
        raise HTTPException(status_code=422, detail="Invalid downstream payload") from None

    return await orchestrator.report_downstream_event(
        payload.conversation_id, payload.event, payload.details
    )
