"""Email domain: provider payloads, outbound messages, and transports."""

from dealflow.email.models import DeliveryReceipt, InboundEmail, OutboundEmail
from dealflow.email.transport import EmailTransport, SimulatedTransport

__all__ = [
    "DeliveryReceipt",
    "EmailTransport",
    "InboundEmail",
    "OutboundEmail",
    "SimulatedTransport",
]
