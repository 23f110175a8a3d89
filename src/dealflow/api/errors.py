"""Mapping of domain errors to HTTP responses.

Route handlers let domain errors propagate; the handlers registered here
turn them into JSON ``{"detail": ...}`` bodies with a fitting status code.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dealflow.domain.errors import (
    AlreadyResolvedError,
    ApprovalAlreadyPendingError,
    ApprovalNotFoundError,
    ConversationBusyError,
    ConversationExistsError,
    ConversationNotFoundError,
    DealflowError,
    InvalidTransitionError,
    MalformedMessageError,
)

logger = structlog.get_logger()

# Checked in order; the first matching class wins.
ERROR_STATUS_CODES: list[tuple[type[DealflowError], int]] = [
    (ConversationNotFoundError, 404),
    (ApprovalNotFoundError, 404),
    (AlreadyResolvedError, 409),
    (InvalidTransitionError, 409),
    (ConversationExistsError, 409),
    (ApprovalAlreadyPendingError, 409),
    (ConversationBusyError, 503),
    (MalformedMessageError, 422),
]


def status_for(exc: DealflowError) -> int:
    """Return the HTTP status code for a domain error (500 if unmapped)."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def describe(exc: DealflowError) -> str:
    """Return the response detail for a domain error."""
    if isinstance(exc, AlreadyResolvedError):
        detail = f"already handled by {exc.status}"
        if exc.current_stage is not None:
            detail += f", current stage is {exc.current_stage}"
        return detail
    return str(exc)


def register_error_handlers(app: FastAPI) -> None:
    """Install the domain error handlers on *app*."""

    @app.exception_handler(DealflowError)
    async def dealflow_error(request: Request, exc: DealflowError) -> JSONResponse:
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Request rejected",
            path=request.url.path,
            status_code=status_code,
            error=type(exc).__name__,
            detail=str(exc),
        )
        return JSONResponse(status_code=status_code, content={"detail": describe(exc)})

    @app.exception_handler(ValueError)
    async def value_error(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("Request rejected", path=request.url.path, status_code=422, detail=str(exc))
        return JSONResponse(status_code=422, content={"detail": str(exc)})
