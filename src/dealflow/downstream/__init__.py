"""Downstream hand-offs to contract generation and payment processing."""

from dealflow.downstream.triggers import (
    DownstreamTrigger,
    HttpTrigger,
    RecordingTrigger,
    TriggerAck,
    TriggerRequest,
    sign_payload,
)

__all__ = [
    "DownstreamTrigger",
    "HttpTrigger",
    "RecordingTrigger",
    "TriggerAck",
    "TriggerRequest",
    "sign_payload",
]
