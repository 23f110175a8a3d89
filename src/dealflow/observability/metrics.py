"""Prometheus metrics instrumentation for the negotiation orchestrator.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus custom business metrics.
- ``ACTIVE_CONVERSATIONS``: Gauge of conversations not in a terminal stage.
- ``ESCALATIONS``: Counter of replies routed to human review, by policy reason.
- ``AUTO_REPLIES``: Counter of replies answered without a human.
- ``AGREEMENTS``: Counter of conversations reaching ``negotiation_agreed``.
- ``DUPLICATE_MESSAGES``: Counter of redelivered inbound messages ignored.

Business metrics are updated at state transitions (not by polling the database),
except the active gauge which is refreshed from the store after each write.
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

ACTIVE_CONVERSATIONS: Gauge = Gauge(
    "dealflow_active_conversations",
    "Number of conversations not in a terminal stage",
)

ESCALATIONS: Counter = Counter(
    "dealflow_escalations_total",
    "Total number of replies escalated to human review",
    ["reason"],
)

AUTO_REPLIES: Counter = Counter(
    "dealflow_auto_replies_total",
    "Total number of replies answered automatically",
)

AGREEMENTS: Counter = Counter(
    "dealflow_agreements_total",
    "Total number of conversations reaching negotiation_agreed",
)

DUPLICATE_MESSAGES: Counter = Counter(
    "dealflow_duplicate_messages_total",
    "Total number of redelivered inbound messages ignored",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
