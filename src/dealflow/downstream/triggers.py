"""Contract and Payment Triggers: hand-offs to the downstream systems.

The orchestrator fires a trigger once per lifecycle event and conversation.
A trigger may still be called again for the same request after a crash or
a failed attempt, so every request carries an ``idempotency_key`` that
downstream systems use to deduplicate.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import threading
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from dealflow.domain.errors import DownstreamTriggerError
from dealflow.domain.models import NegotiationTerms
from dealflow.domain.types import LifecycleEvent
from dealflow.resilience.retry import resilient_api_call

logger = structlog.get_logger()


class TriggerRequest(BaseModel):
    """What a downstream system needs to start a contract or a payment."""

    model_config = ConfigDict(frozen=True)

    event: LifecycleEvent
    conversation_id: str
    campaign_id: str
    creator_id: str
    creator_address: str
    terms: NegotiationTerms
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def idempotency_key(self) -> str:
        return f"{self.conversation_id}:{self.event.value}"


class TriggerAck(BaseModel):
    """A downstream system's answer to a trigger request."""

    accepted: bool = True
    reference: str | None = None
    detail: str = ""


class DownstreamTrigger(Protocol):
    """A Contract Trigger or Payment Trigger."""

    def fire(self, request: TriggerRequest) -> TriggerAck:
        """Hand *request* to the downstream system or raise ``DownstreamTriggerError``."""
        ...


def sign_payload(secret: str, body: bytes) -> str:
    """Return the hex HMAC-SHA256 signature of *body* under *secret*."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class HttpTrigger:
    """Trigger that POSTs the request as JSON to a downstream webhook.

    Args:
        url: The downstream endpoint.
        name: Label used in logs (``"contract"`` or ``"payment"``).
        secret: When set, the body is signed into an ``X-Signature`` header.
        client: Optional ``httpx.Client``; one is created if omitted.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        name: str,
        secret: str = "",
        client: httpx.Client | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._url = url
        self._name = name
        self._secret = secret
        self._client = client or httpx.Client(timeout=timeout)

    @resilient_api_call("downstream_trigger", retry_on=_is_transient)
    def _post(self, body: bytes, headers: dict[str, str]) -> httpx.Response:
        response = self._client.post(self._url, content=body, headers=headers)
        response.raise_for_status()
        return response

    def fire(self, request: TriggerRequest) -> TriggerAck:
        body = json.dumps(request.model_dump(mode="json")).encode()
        headers = {
            "Content-Type": "application/json",
            "X-Idempotency-Key": request.idempotency_key,
        }
        if self._secret:
            headers["X-Signature"] = sign_payload(self._secret, body)

        try:
            response = self._post(body, headers)
        except httpx.HTTPError as exc:
            raise DownstreamTriggerError(
                f"{self._name} trigger failed for {request.conversation_id}: {exc}"
            ) from exc

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        ack = TriggerAck.model_validate(payload) if isinstance(payload, dict) else TriggerAck()
        logger.info(
            "Downstream trigger fired",
            trigger=self._name,
            conversation_id=request.conversation_id,
            lifecycle_event=request.event.value,
            accepted=ack.accepted,
        )
        return ack

    def close(self) -> None:
        self._client.close()


class RecordingTrigger:
    """In-memory trigger that records requests; used for simulation and tests.

    Repeated requests with the same idempotency key are recorded once.
    """

    def __init__(self, name: str, accept: bool = True) -> None:
        self._name = name
        self._accept = accept
        self._lock = threading.Lock()
        self._failures_pending = 0
        self.requests: list[TriggerRequest] = []
        self.attempts = 0

    def fail_next(self, count: int = 1) -> None:
        """Make the next *count* calls raise ``DownstreamTriggerError``."""
        with self._lock:
            self._failures_pending = count

    def fire(self, request: TriggerRequest) -> TriggerAck:
        with self._lock:
            self.attempts += 1
            if self._failures_pending > 0:
                self._failures_pending -= 1
                raise DownstreamTriggerError(f"{self._name} trigger unavailable")
            if all(r.idempotency_key != request.idempotency_key for r in self.requests):
                self.requests.append(request)
        logger.info(
            "Recorded downstream trigger",
            trigger=self._name,
            conversation_id=request.conversation_id,
            lifecycle_event=request.event.value,
        )
        return TriggerAck(
            accepted=self._accept,
            reference=f"{self._name}-{request.conversation_id}",
        )

    def calls_for(self, conversation_id: str) -> list[TriggerRequest]:
        """Return the distinct requests recorded for a conversation."""
        with self._lock:
            return [r for r in self.requests if r.conversation_id == conversation_id]
