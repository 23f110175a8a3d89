"""Fixtures building the real application over a temporary database."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from dealflow.app import close_services, create_app, initialize_services
from dealflow.config import Settings

TERMS = {
    "compensation": "1000",
    "budget_ceiling": "1500",
    "deliverable_count": 1,
    "video_length_minutes": 15,
}


def _settings(tmp_path: Path, index: int, **overrides: Any) -> Settings:
    """Settings with every external collaborator switched off."""
    fields: dict[str, Any] = {
        "db_path": tmp_path / f"dealflow-{index}.db",
        "escalation_policy_path": tmp_path / "no-policy.yaml",
        "anthropic_api_key": "",
        "inbound_webhook_secret": "",
        "downstream_webhook_secret": "",
        "contract_trigger_url": "",
        "payment_trigger_url": "",
        "slack_bot_token": "",
        "slack_approval_channel": "",
        "sentry_dsn": "",
        "sweep_interval_seconds": 0,
        "simulation_enabled": True,
    }
    fields.update(overrides)
    return Settings(_env_file=None, **fields)  # type: ignore[call-arg]


@pytest.fixture
def make_services(tmp_path: Path) -> Iterator[Callable[..., dict[str, Any]]]:
    """Factory for initialized services; settings overrides are keyword arguments."""
    created: list[dict[str, Any]] = []

    def _make(**overrides: Any) -> dict[str, Any]:
        services = initialize_services(_settings(tmp_path, len(created), **overrides))
        created.append(services)
        return services

    yield _make
    for services in created:
        close_services(services)


@pytest.fixture
def services(make_services: Callable[..., dict[str, Any]]) -> dict[str, Any]:
    return make_services()


@pytest.fixture
def client(services: dict[str, Any]) -> TestClient:
    return TestClient(create_app(services))


@pytest.fixture
def start(client: TestClient) -> Callable[..., str]:
    """Start a conversation over HTTP and return its id."""

    def _start(creator_id: str = "sanjay") -> str:
        response = client.post(
            "/conversations",
            json={
                "campaign_id": "spring_launch",
                "creator_id": creator_id,
                "creator_address": f"{creator_id}@example.com",
                "subject": "Sponsored video for Spring Launch",
                "body_text": "Hi! We'd love one 15-minute sponsored video for $1000.",
                "terms": TERMS,
            },
        )
        assert response.status_code == 201
        return str(response.json()["id"])

    return _start
