"""Health check endpoint.

Returns overall system health and individual service statuses
for PostgreSQL and the ledger gateway.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.version import API_VERSION

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/api/v1/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Check the health of the registry's backing services.

    Returns:
        JSON object with overall status and per-service health:
        {
            "status": "healthy" | "degraded" | "unhealthy",
            "services": {
                "postgres": "up" | "down",
                "ledger": "up" | "down"
            },
            "version": "0.1.0"
        }
    """
    services: dict[str, str] = {}

    try:
        db_session_factory = request.app.state.db_session_factory
        async with db_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            services["postgres"] = "up"
    except (SQLAlchemyError, ConnectionError, OSError):
        logger.warning("PostgreSQL health check failed")
        services["postgres"] = "down"

    # One gateway may serve several record kinds; check each client once
    ledger_clients = getattr(request.app.state, "ledger_clients", {}) or {}
    unique_clients = {id(client): client for client in ledger_clients.values()}.values()
    try:
        reachable = [await client.verify_connectivity() for client in unique_clients]
        services["ledger"] = "up" if reachable and all(reachable) else "down"
    except (ConnectionError, OSError):
        logger.warning("Ledger health check failed")
        services["ledger"] = "down"

    down_count = sum(1 for s in services.values() if s == "down")
    if down_count == 0:
        status = "healthy"
    elif down_count < len(services):
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "services": services,
        "version": API_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
    }
