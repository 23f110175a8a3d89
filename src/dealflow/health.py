"""Liveness and readiness routes.

``GET /health`` answers as long as the process runs.  ``GET /ready`` answers
200 only when the orchestrator can do its work: the conversation and approval
tables are queryable, a classifier is wired in, and an escalation policy was
loaded.  Otherwise it answers 503 with the result of every check.
"""

from __future__ import annotations

import asyncio
import sqlite3
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dealflow.state import Database


def _pending_approvals(db: Database) -> int:
    """Count pending approvals; fails if the orchestrator tables are missing."""
    db.execute("SELECT 1 FROM conversations LIMIT 1")
    row = db.fetchone("SELECT COUNT(*) FROM human_approvals WHERE status = 'pending'")
    return row[0] if row is not None else 0


async def _check_database(services: dict[str, Any]) -> tuple[str, int | None]:
    db = services.get("db")
    if db is None:
        return "fail", None
    try:
        pending = await asyncio.to_thread(_pending_approvals, db)
    except sqlite3.Error:
        return "fail", None
    return "ok", pending


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` on *app*."""

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        services: dict[str, Any] = request.app.state.services

        database, pending = await _check_database(services)
        checks = {
            "database": database,
            "classifier": "ok" if services.get("classifier") is not None else "fail",
            "escalation_policy": "ok" if services.get("policy") is not None else "fail",
        }

        all_ok = all(v == "ok" for v in checks.values())
        body: dict[str, Any] = {"status": "ready" if all_ok else "not_ready", "checks": checks}
        if pending is not None:
            body["pending_approvals"] = pending
        return JSONResponse(content=body, status_code=200 if all_ok else 503)
