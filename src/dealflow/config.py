"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_credentials()``
startup gate that enforces credential presence in production mode.

IMPORTANT: This module has ZERO imports from the ``dealflow`` package to
prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    ``SecretStr`` fields prevent accidental leaks in logs or error output.
    Timeout durations are product decisions and therefore live here rather
    than in the orchestrator.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    webhook_port: int = 8000
    brand_email: str = "partnerships@brand.example"
    simulation_enabled: bool = True

    # -- Storage ---------------------------------------------------------------
    db_path: Path = Path("data/dealflow.db")

    # -- Escalation policy -----------------------------------------------------
    escalation_policy_path: Path = Path("config/escalation_policy.yaml")

    # -- Classifier / Anthropic ------------------------------------------------
    anthropic_api_key: SecretStr = SecretStr("")
    classifier_timeout_seconds: float = 60.0

    # -- Webhooks --------------------------------------------------------------
    inbound_webhook_secret: str = ""
    downstream_webhook_secret: str = ""

    # -- Downstream triggers ---------------------------------------------------
    contract_trigger_url: str = ""
    payment_trigger_url: str = ""

    # -- Slack (approval notifications) ----------------------------------------
    slack_bot_token: SecretStr = SecretStr("")
    slack_approval_channel: str = ""

    # -- Observability ---------------------------------------------------------
    sentry_dsn: str = ""

    # -- Lifecycle timing ------------------------------------------------------
    analyzing_timeout_seconds: float = 300.0
    abandon_after_hours: float = 14 * 24.0
    sweep_interval_seconds: float = 60.0

    # -- Concurrency -----------------------------------------------------------
    max_write_retries: int = 5


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def validate_credentials(settings: Settings) -> None:
    """Enforce credential presence at startup.

    In **production** mode (``settings.production is True``), the application
    exits with a clear error block if any required credential is missing.

    In **development** mode, each missing credential is logged as a warning
    but the application continues to start (the scripted classifier and the
    simulated transport stand in for the real collaborators).

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not settings.anthropic_api_key.get_secret_value():
        errors.append("ANTHROPIC_API_KEY is empty or not set")

    if not settings.inbound_webhook_secret:
        errors.append("INBOUND_WEBHOOK_SECRET is empty or not set")

    if not settings.downstream_webhook_secret:
        errors.append("DOWNSTREAM_WEBHOOK_SECRET is empty or not set")

    if not settings.contract_trigger_url:
        errors.append("CONTRACT_TRIGGER_URL is empty or not set")

    if not settings.payment_trigger_url:
        errors.append("PAYMENT_TRIGGER_URL is empty or not set")

    if not errors:
        logger.info("credential_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("credential_missing", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Missing required credentials for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("credential_missing_dev", detail=err)
