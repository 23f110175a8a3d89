"""Application entry point: the FastAPI service plus the periodic sweep.

Runs the webhook and operator HTTP surface (uvicorn) and the lifecycle sweep
(timeouts, redelivery, trigger retries) in a single long-running process.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error forwarding when ``SENTRY_DSN`` is set
- **Prometheus** metrics at ``/metrics``
- **Collaborators**: the Anthropic classifier when an API key is set, the
  scripted classifier otherwise; HTTP downstream triggers when their URLs are
  set, recording triggers otherwise; Slack approval notifications when a bot
  token is set
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from dealflow.api import (
    approvals_router,
    conversations_router,
    register_error_handlers,
    simulate_router,
    webhooks_router,
)
from dealflow.audit.logger import AuditLogger
from dealflow.audit.store import close_audit_db, init_audit_table
from dealflow.config import Settings, get_settings, validate_credentials
from dealflow.downstream.triggers import HttpTrigger, RecordingTrigger
from dealflow.email.transport import SimulatedTransport
from dealflow.health import register_health_routes
from dealflow.llm.classifier import AnthropicClassifier
from dealflow.llm.client import get_anthropic_client
from dealflow.llm.simulated import ScriptedClassifier
from dealflow.observability.metrics import setup_metrics
from dealflow.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from dealflow.observability.sentry import get_sentry_processor, init_sentry
from dealflow.orchestrator import NegotiationOrchestrator
from dealflow.policy.escalation import EscalationPolicy, load_policy_config
from dealflow.slack.client import ApprovalNotifier
from dealflow.state import init_dealflow_tables, open_database

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry: Forward ERROR events to Sentry if ``True``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if sentry:
        shared_processors.append(get_sentry_processor())

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up all shared services for the application.

    Opens the database, creates the orchestrator tables and the audit table,
    and builds the orchestrator with its collaborators.  Each collaborator
    falls back to its local stand-in when its credentials are missing.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings}

    # a. Database and tables
    db_path = settings.db_path
    if str(db_path) != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    db = open_database(db_path)
    init_dealflow_tables(db)
    init_audit_table(db)
    services["db"] = db

    audit = AuditLogger(db)
    services["audit"] = audit

    # b. Classifier
    api_key = settings.anthropic_api_key.get_secret_value()
    if api_key:
        classifier: Any = AnthropicClassifier(get_anthropic_client(api_key))
        logger.info("Anthropic classifier initialized")
    else:
        classifier = ScriptedClassifier.from_script()
        logger.info("ANTHROPIC_API_KEY not set, using scripted classifier")
    services["classifier"] = classifier

    # c. Email transport
    transport = SimulatedTransport()
    services["transport"] = transport

    # d. Downstream triggers
    services["contract_trigger"] = _build_trigger(
        "contract", settings.contract_trigger_url, settings.downstream_webhook_secret
    )
    services["payment_trigger"] = _build_trigger(
        "payment", settings.payment_trigger_url, settings.downstream_webhook_secret
    )

    # e. Slack approval notifications
    notifier = None
    slack_bot_token = settings.slack_bot_token.get_secret_value()
    if slack_bot_token and settings.slack_approval_channel:
        notifier = ApprovalNotifier(settings.slack_approval_channel, bot_token=slack_bot_token)
        logger.info("Slack approval notifier initialized")
    else:
        logger.info("SLACK_BOT_TOKEN not set, approval notifications disabled")
    services["notifier"] = notifier

    # f. Escalation policy and orchestrator
    policy = EscalationPolicy(load_policy_config(settings.escalation_policy_path))
    services["policy"] = policy

    services["orchestrator"] = NegotiationOrchestrator.from_database(
        db,
        policy=policy,
        classifier=classifier,
        transport=transport,
        contract_trigger=services["contract_trigger"],
        payment_trigger=services["payment_trigger"],
        audit=audit,
        notifier=notifier,
        brand_address=settings.brand_email,
        classifier_timeout_seconds=settings.classifier_timeout_seconds,
        analyzing_timeout_seconds=settings.analyzing_timeout_seconds,
        abandon_after_hours=settings.abandon_after_hours,
        max_write_retries=settings.max_write_retries,
    )
    logger.info("Services initialized", db_path=str(settings.db_path))
    return services


def _build_trigger(name: str, url: str, secret: str) -> HttpTrigger | RecordingTrigger:
    if url:
        return HttpTrigger(url, name=name, secret=secret)
    logger.info("Trigger URL not set, recording requests locally", trigger=name)
    return RecordingTrigger(name)


async def run_sweeps(services: dict[str, Any], interval_seconds: float) -> None:
    """Run the orchestrator sweep every *interval_seconds* until cancelled."""
    orchestrator: NegotiationOrchestrator = services["orchestrator"]
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await orchestrator.sweep()
        except Exception:
            logger.exception("Sweep failed")


def close_services(services: dict[str, Any]) -> None:
    """Release the HTTP clients and the database connection."""
    for name in ("contract_trigger", "payment_trigger"):
        trigger = services.get(name)
        if isinstance(trigger, HttpTrigger):
            trigger.close()
    db = services.pop("db", None)
    if db is not None:
        close_audit_db(db)
        logger.info("Database connection closed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On startup: starts the periodic sweep task when an interval is set.
    On shutdown: cancels the sweep and closes the services.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    services = app.state.services
    settings: Settings = app.state.settings
    sweep_task: asyncio.Task[None] | None = None
    if settings.sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(run_sweeps(services, settings.sweep_interval_seconds))
    logger.info("FastAPI application starting")
    yield
    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
    close_services(services)


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with lifespan, routers, metrics and health checks.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Dealflow Negotiation Orchestrator", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.add_middleware(RequestIdMiddleware)
    register_error_handlers(fastapi_app)
    fastapi_app.include_router(webhooks_router)
    fastapi_app.include_router(conversations_router)
    fastapi_app.include_router(approvals_router)
    fastapi_app.include_router(simulate_router)
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point.

    1. Configure logging and Sentry
    2. Validate credentials
    3. Initialize services and create the FastAPI app
    4. Serve with uvicorn; the app lifespan runs the sweep
    """
    settings = get_settings()
    configure_logging(production=settings.production, sentry=bool(settings.sentry_dsn))
    init_sentry(settings.sentry_dsn, "production" if settings.production else "development")
    logger.info("Application starting")

    validate_credentials(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.webhook_port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        close_services(services)


if __name__ == "__main__":
    asyncio.run(main())
