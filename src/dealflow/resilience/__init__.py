"""Resilience infrastructure for remote calls with retry and failure logging."""

from dealflow.resilience.retry import resilient_api_call

__all__ = [
    "resilient_api_call",
]
