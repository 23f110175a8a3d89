"""Tests for the simulated in-memory email transport."""

from __future__ import annotations

import pytest

from dealflow.domain.errors import DeliveryError
from dealflow.email.models import OutboundEmail
from dealflow.email.transport import SimulatedTransport


def _email(key: str = "conv-1:outreach", thread_ref: str | None = None) -> OutboundEmail:
    return OutboundEmail(
        to="sanjay@example.com",
        from_email="partnerships@brand.example",
        subject="Partnership",
        body="Hello",
        idempotency_key=key,
        thread_ref=thread_ref,
    )


class TestSimulatedTransport:
    def test_send_records_and_starts_thread(self, transport: SimulatedTransport) -> None:
        receipt = transport.send(_email())

        assert receipt.provider_message_id.startswith("sim-")
        assert receipt.thread_ref is not None
        assert receipt.thread_ref.startswith("sim-thread-")
        assert transport.sent == [_email()]

    def test_existing_thread_is_kept(self, transport: SimulatedTransport) -> None:
        receipt = transport.send(_email(thread_ref="t-1"))
        assert receipt.thread_ref == "t-1"

    def test_same_idempotency_key_sends_once(self, transport: SimulatedTransport) -> None:
        first = transport.send(_email())
        second = transport.send(_email())

        assert first == second
        assert len(transport.sent) == 1

    def test_different_keys_send_twice(self, transport: SimulatedTransport) -> None:
        transport.send(_email("conv-1:outreach"))
        transport.send(_email("conv-1:reply-3"))

        assert len(transport.sent_to("sanjay@example.com")) == 2
        assert transport.sent_to("other@example.com") == []

    def test_fail_next(self, transport: SimulatedTransport) -> None:
        transport.fail_next(2)

        for _ in range(2):
            with pytest.raises(DeliveryError, match="sanjay@example.com"):
                transport.send(_email())

        assert transport.send(_email()).provider_message_id
        assert len(transport.sent) == 1
