"""Exception handlers translating workflow errors into HTTP responses.

Every body carries ``detail``, ``error`` (the exception class name) and
``request_id``; precondition failures add the offending ``field``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.workflow.errors import (
    AttestationConflict,
    AttestationFailed,
    EncodingError,
    InvalidStatus,
    InvalidTransition,
    LedgerError,
    NoOpTransition,
    NotFound,
    PreconditionError,
    WorkflowError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[Exception], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InvalidStatus: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NoOpTransition: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    PreconditionError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AttestationConflict: status.HTTP_409_CONFLICT,
    AttestationFailed: status.HTTP_502_BAD_GATEWAY,
    EncodingError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    if isinstance(exc, LedgerError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _body(request: Request, exc: Exception) -> dict[str, Any]:
    body: dict[str, Any] = {
        "detail": str(exc),
        "error": type(exc).__name__,
        "request_id": getattr(request.state, "request_id", "unknown"),
    }
    if isinstance(exc, PreconditionError):
        body["field"] = exc.field
    return body


async def workflow_error_handler(request: Request, exc: Exception) -> JSONResponse:
    code = status_code_for(exc)
    body = _body(request, exc)
    if code >= 500:
        logger.error("%s [%s]: %s", body["error"], body["request_id"], exc)
    else:
        logger.info("%s [%s]: %s", body["error"], body["request_id"], exc)
    return JSONResponse(status_code=code, content=body)


def install_error_handlers(app: FastAPI) -> None:
    """Register the workflow and ledger handlers plus the catch-alls on ``app``."""
    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(LedgerError, workflow_error_handler)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.warning("Validation error [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc), "error": "ValueError", "request_id": request_id},
        )

    @app.exception_handler(Exception)  # Top-level handler for anything unmapped
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception("Unhandled error [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "error": "InternalError", "request_id": request_id},
        )
