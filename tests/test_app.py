"""Tests for application entry point: structlog config, service initialization, and app creation."""

from __future__ import annotations

import asyncio
import inspect
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dealflow.app import (
    close_services,
    configure_logging,
    create_app,
    initialize_services,
    run_sweeps,
)
from dealflow.config import Settings
from dealflow.downstream.triggers import HttpTrigger, RecordingTrigger
from dealflow.llm.simulated import ScriptedClassifier
from dealflow.orchestrator import NegotiationOrchestrator


def _reset_structlog() -> None:
    """Reset structlog so cached loggers don't leak between tests."""
    structlog.reset_defaults()


def _base_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Build a Settings instance pointing the database to tmp_path.

    By default all optional credentials are empty so no external services
    are initialized.  Pass keyword overrides to customise.
    """
    defaults: dict[str, Any] = {
        "db_path": tmp_path / "dealflow.db",
        "escalation_policy_path": tmp_path / "missing-policy.yaml",
        "anthropic_api_key": "",
        "contract_trigger_url": "",
        "payment_trigger_url": "",
        "slack_bot_token": "",
        "slack_approval_channel": "",
        "sweep_interval_seconds": 0,
    }
    defaults.update(overrides)
    return Settings(_env_file=None, **defaults)  # type: ignore[call-arg]


class TestConfigureLogging:
    """Tests for structlog configuration in dev and production modes."""

    def test_development_mode_uses_console_renderer(self) -> None:
        _reset_structlog()
        configure_logging(production=False)
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.dev.ConsoleRenderer) for p in processors)

    def test_production_mode_uses_json_renderer(self) -> None:
        _reset_structlog()
        configure_logging(production=True)
        processors = structlog.get_config()["processors"]
        assert any(isinstance(p, structlog.processors.JSONRenderer) for p in processors)

    def test_sentry_processor_added_when_enabled(self) -> None:
        _reset_structlog()
        configure_logging(production=True, sentry=True)
        processors = structlog.get_config()["processors"]
        assert any(type(p).__name__ == "SentryProcessor" for p in processors)

    def test_default_has_no_sentry_processor(self) -> None:
        _reset_structlog()
        configure_logging()
        processors = structlog.get_config()["processors"]
        assert not any(type(p).__name__ == "SentryProcessor" for p in processors)

    def test_service_name_bound(self) -> None:
        _reset_structlog()
        structlog.contextvars.clear_contextvars()
        configure_logging()
        assert structlog.contextvars.get_contextvars()["service"] == "dealflow"


class TestInitializeServices:
    """Tests for service initialization with mocked external dependencies."""

    def test_creates_database_and_orchestrator(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dealflow.db"
        services = initialize_services(_base_settings(tmp_path, db_path=db_path))

        assert db_path.exists()
        assert isinstance(services["orchestrator"], NegotiationOrchestrator)
        assert services["audit"] is not None
        assert services["policy"] is not None

        close_services(services)

    def test_local_stand_ins_without_credentials(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))

        assert isinstance(services["classifier"], ScriptedClassifier)
        assert isinstance(services["contract_trigger"], RecordingTrigger)
        assert isinstance(services["payment_trigger"], RecordingTrigger)
        assert services["notifier"] is None

        close_services(services)

    def test_anthropic_classifier_with_api_key(self, tmp_path: Path) -> None:
        settings = _base_settings(tmp_path, anthropic_api_key="sk-ant-test")

        with patch("dealflow.app.get_anthropic_client") as mock_get_client:
            services = initialize_services(settings)

        mock_get_client.assert_called_once_with("sk-ant-test")
        assert type(services["classifier"]).__name__ == "AnthropicClassifier"

        close_services(services)

    def test_http_triggers_with_urls(self, tmp_path: Path) -> None:
        settings = _base_settings(
            tmp_path,
            contract_trigger_url="https://contracts.example/requests",
            payment_trigger_url="https://payments.example/requests",
        )

        services = initialize_services(settings)

        assert isinstance(services["contract_trigger"], HttpTrigger)
        assert isinstance(services["payment_trigger"], HttpTrigger)

        close_services(services)

    def test_notifier_with_slack_token_and_channel(self, tmp_path: Path) -> None:
        settings = _base_settings(
            tmp_path, slack_bot_token="xoxb-test", slack_approval_channel="C12345"
        )

        with patch("dealflow.app.ApprovalNotifier") as mock_notifier_cls:
            services = initialize_services(settings)

        mock_notifier_cls.assert_called_once_with("C12345", bot_token="xoxb-test")
        assert services["notifier"] is mock_notifier_cls.return_value

        close_services(services)

    def test_policy_file_is_loaded(self, tmp_path: Path) -> None:
        policy_path = tmp_path / "policy.yaml"
        policy_path.write_text("min_confidence: 0.9\n")

        services = initialize_services(
            _base_settings(tmp_path, escalation_policy_path=policy_path)
        )

        assert services["policy"].config.min_confidence == 0.9

        close_services(services)


class TestCloseServices:
    """close_services releases the database and HTTP clients."""

    def test_closes_database_once(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))

        close_services(services)
        close_services(services)

        assert "db" not in services

    def test_closes_http_triggers(self) -> None:
        trigger = MagicMock(spec=HttpTrigger)
        services: dict[str, Any] = {"contract_trigger": trigger}

        close_services(services)

        trigger.close.assert_called_once()


class TestCreateApp:
    """Tests for create_app FastAPI application factory."""

    def test_returns_fastapi_instance(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))

        app = create_app(services)

        assert isinstance(app, FastAPI)
        assert app.state.services is services
        assert app.state.settings is services["_settings"]

        close_services(services)

    def test_routes_registered(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))

        app = create_app(services)

        paths = set(app.openapi()["paths"])
        assert {
            "/webhooks/email/inbound",
            "/webhooks/downstream",
            "/conversations",
            "/conversations/{conversation_id}",
            "/conversations/{conversation_id}/override",
            "/approvals",
            "/approvals/{approval_id}/resolve",
            "/simulate/{conversation_id}/reply",
            "/health",
            "/ready",
        } <= paths
        assert TestClient(app).get("/metrics").status_code == 200

        close_services(services)

    def test_create_app_uses_lifespan(self, tmp_path: Path) -> None:
        services = initialize_services(_base_settings(tmp_path))

        with TestClient(create_app(services)) as client:
            assert client.get("/health").status_code == 200

        assert "db" not in services

    def test_no_deprecated_on_event(self) -> None:
        source = inspect.getsource(create_app)
        assert "on_event" not in source


class TestRunSweeps:
    """The periodic sweep keeps running when one pass fails."""

    def test_failed_sweep_does_not_stop_loop(self) -> None:
        orchestrator = MagicMock()
        calls: list[int] = []

        async def sweep() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database locked")

        orchestrator.sweep = sweep

        async def run() -> None:
            task = asyncio.create_task(run_sweeps({"orchestrator": orchestrator}, 0.001))
            while len(calls) < 3:
                await asyncio.sleep(0.001)
            task.cancel()

        asyncio.run(run())

        assert len(calls) >= 3
