"""Tests for the error-to-HTTP mapping."""

from __future__ import annotations

import uuid

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.errors import install_error_handlers, status_code_for
from src.workflow.errors import (
    AttestationConflict,
    AttestationFailed,
    EncodingError,
    LedgerRejected,
    LedgerUnavailable,
    NotFound,
    PreconditionError,
)


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (NotFound("complaint", uuid.uuid4()), 404),
        (PreconditionError("final_cost", "missing"), 422),
        (AttestationConflict(uuid.uuid4(), "0x01"), 409),
        (AttestationFailed(LedgerUnavailable("down")), 502),
        (LedgerRejected("bad"), 502),
        (EncodingError("float"), 500),
        (RuntimeError("boom"), 500),
    ],
)
def test_status_code_for(error: Exception, expected: int) -> None:
    assert status_code_for(error) == expected


@pytest.fixture
def failing_app() -> FastAPI:
    app = FastAPI()
    install_error_handlers(app)

    @app.get("/value")
    async def value() -> None:
        raise ValueError("limit must be positive")

    @app.get("/boom")
    async def boom() -> None:
        raise RuntimeError("secret internals")

    return app


@pytest.mark.asyncio
async def test_value_error_is_422(failing_app) -> None:
    transport = ASGITransport(app=failing_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/value")

    assert response.status_code == 422
    assert response.json()["detail"] == "limit must be positive"
    assert response.json()["request_id"] == "unknown"


@pytest.mark.asyncio
async def test_unhandled_error_hides_details(failing_app) -> None:
    transport = ASGITransport(app=failing_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/boom")

    assert response.status_code == 500
    assert "secret" not in response.text
    assert response.json()["error"] == "InternalError"
