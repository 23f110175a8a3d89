"""Shared pytest fixtures for the dealflow test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from decimal import Decimal
from typing import Any

import pytest
import structlog
from structlog.testing import CapturingLogger

from dealflow.audit.store import init_audit_table
from dealflow.domain.models import Analysis, ExtractedTerms, NegotiationTerms
from dealflow.domain.types import Intent, RiskLevel, Sentiment
from dealflow.downstream.triggers import RecordingTrigger
from dealflow.email.transport import SimulatedTransport
from dealflow.llm.simulated import ScriptedClassifier
from dealflow.orchestrator import NegotiationOrchestrator
from dealflow.policy.escalation import EscalationPolicy
from dealflow.state import (
    ApprovalQueue,
    ConversationStore,
    Database,
    MessageLedger,
    init_dealflow_tables,
    open_database,
)


@pytest.fixture
def db() -> Iterator[Database]:
    """An in-memory database with every table created."""
    database = open_database(":memory:")
    init_dealflow_tables(database)
    init_audit_table(database)
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> ConversationStore:
    return ConversationStore(db)


@pytest.fixture
def ledger(db: Database) -> MessageLedger:
    return MessageLedger(db)


@pytest.fixture
def approvals(db: Database) -> ApprovalQueue:
    return ApprovalQueue(db)


@pytest.fixture
def terms() -> NegotiationTerms:
    """The baseline offer used across tests: one 15-minute video for $1000."""
    return NegotiationTerms(
        compensation=Decimal("1000"),
        budget_ceiling=Decimal("1500"),
        deliverable_count=1,
        video_length_minutes=15,
    )


@pytest.fixture
def make_analysis() -> Callable[..., Analysis]:
    """Factory for a low-risk, confident analysis; keyword overrides change fields."""

    def _make(**overrides: Any) -> Analysis:
        fields: dict[str, Any] = {
            "sentiment": Sentiment.POSITIVE,
            "intent": Intent.QUESTION,
            "extracted_terms": ExtractedTerms(),
            "risk_level": RiskLevel.LOW,
            "confidence": 0.95,
            "summary": "Creator asks a question.",
            "suggested_reply": "Hi! Happy to answer: the timeline is three weeks.",
        }
        fields.update(overrides)
        return Analysis(**fields)

    return _make


@pytest.fixture
def classifier() -> ScriptedClassifier:
    """Classifier that knows the four simulated replies; tests may register more."""
    return ScriptedClassifier.from_script()


@pytest.fixture
def transport() -> SimulatedTransport:
    return SimulatedTransport()


@pytest.fixture
def contract_trigger() -> RecordingTrigger:
    return RecordingTrigger("contract")


@pytest.fixture
def payment_trigger() -> RecordingTrigger:
    return RecordingTrigger("payment")


@pytest.fixture
def make_orchestrator(
    db: Database,
    classifier: ScriptedClassifier,
    transport: SimulatedTransport,
    contract_trigger: RecordingTrigger,
    payment_trigger: RecordingTrigger,
) -> Callable[..., NegotiationOrchestrator]:
    """Factory building an orchestrator over the shared fixtures.

    Keyword arguments override collaborators or options.
    """

    def _make(**overrides: Any) -> NegotiationOrchestrator:
        options: dict[str, Any] = {
            "policy": EscalationPolicy(),
            "classifier": classifier,
            "transport": transport,
            "contract_trigger": contract_trigger,
            "payment_trigger": payment_trigger,
        }
        options.update(overrides)
        return NegotiationOrchestrator.from_database(db, **options)

    return _make


@pytest.fixture
def orchestrator(
    make_orchestrator: Callable[..., NegotiationOrchestrator],
) -> NegotiationOrchestrator:
    return make_orchestrator()


@pytest.fixture
def no_retry_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make tenacity retries return immediately instead of backing off."""
    monkeypatch.setattr("tenacity.nap.time.sleep", lambda _seconds: None)


@pytest.fixture
def capture_module_logs(monkeypatch: pytest.MonkeyPatch) -> Callable[[str], CapturingLogger]:
    """Swap a module's structlog logger for one that records every call.

    The replacement is a plain ``BoundLogger`` with no processors, so log
    calls are checked against the real ``(event, **kw)`` signature.
    """

    def _capture(module: str) -> CapturingLogger:
        capturing = CapturingLogger()
        monkeypatch.setattr(
            f"{module}.logger",
            structlog.wrap_logger(
                capturing,
                processors=[],
                wrapper_class=structlog.BoundLogger,
                cache_logger_on_first_use=False,
            ),
        )
        return capturing

    return _capture
