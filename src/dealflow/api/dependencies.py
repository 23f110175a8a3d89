"""Accessors for the services stored on ``app.state`` at startup."""

from __future__ import annotations

from fastapi import Request

from dealflow.config import Settings
from dealflow.orchestrator import NegotiationOrchestrator


def get_orchestrator(request: Request) -> NegotiationOrchestrator:
    """Return the orchestrator built by ``initialize_services``."""
    orchestrator: NegotiationOrchestrator = request.app.state.services["orchestrator"]
    return orchestrator


def get_app_settings(request: Request) -> Settings:
    """Return the settings the application was created with."""
    settings: Settings = request.app.state.settings
    return settings
