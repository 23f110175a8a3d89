"""Email transport interface and the simulated in-memory transport.

A transport delivers an ``OutboundEmail`` and returns a ``DeliveryReceipt``
or raises ``DeliveryError``.  Transports must treat a repeated
``idempotency_key`` as the same send.
"""

from __future__ import annotations

import threading
import uuid
from datetime import UTC, datetime
from typing import Protocol

import structlog

from dealflow.domain.errors import DeliveryError
from dealflow.email.models import DeliveryReceipt, OutboundEmail

logger = structlog.get_logger()


class EmailTransport(Protocol):
    """Anything that can deliver an outbound email."""

    def send(self, outbound: OutboundEmail) -> DeliveryReceipt:
        """Deliver *outbound* or raise ``DeliveryError``."""
        ...


class SimulatedTransport:
    """Transport that records emails in memory instead of sending them.

    Used for simulated negotiations and tests.  ``fail_next`` makes the next
    *n* sends raise ``DeliveryError`` to exercise redelivery.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._receipts: dict[str, DeliveryReceipt] = {}
        self._failures_pending = 0
        self.sent: list[OutboundEmail] = []

    def fail_next(self, count: int = 1) -> None:
        """Make the next *count* sends fail."""
        with self._lock:
            self._failures_pending = count

    def send(self, outbound: OutboundEmail) -> DeliveryReceipt:
        with self._lock:
            existing = self._receipts.get(outbound.idempotency_key)
            if existing is not None:
                logger.info(
                    "Simulated send deduplicated",
                    idempotency_key=outbound.idempotency_key,
                )
                return existing
            if self._failures_pending > 0:
                self._failures_pending -= 1
                raise DeliveryError(f"Simulated delivery failure to {outbound.to}")

            receipt = DeliveryReceipt(
                provider_message_id=f"sim-{uuid.uuid4().hex}",
                thread_ref=outbound.thread_ref or f"sim-thread-{uuid.uuid4().hex[:12]}",
                sent_at=datetime.now(tz=UTC),
            )
            self._receipts[outbound.idempotency_key] = receipt
            self.sent.append(outbound)

        logger.info(
            "Simulated email sent",
            to=outbound.to,
            subject=outbound.subject,
            provider_message_id=receipt.provider_message_id,
        )
        return receipt

    def sent_to(self, address: str) -> list[OutboundEmail]:
        """Return every email delivered to *address*, in send order."""
        with self._lock:
            return [email for email in self.sent if email.to == address]
