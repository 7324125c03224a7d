"""Municipal Registry FastAPI application entry point.

Configures the FastAPI app with:
- Logging from ``LOG_LEVEL``
- CORS, security-header, request-ID and rate-limit middleware
- Lifespan events for the database pool and the ledger clients
- Complaint, intervention and health routers
- Workflow error handlers
- OpenAPI documentation at /docs (debug mode only)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.errors import install_error_handlers
from src.api.middleware.security import (
    RateLimitMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from src.api.routes import complaints, health, interventions
from src.api.version import API_VERSION
from src.core.config import Settings, get_settings
from src.core.database import create_engine
from src.integrations.ledger import create_ledger_clients

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown.

    On startup: open the PostgreSQL pool and build one ledger client per
    record kind. The API starts in degraded mode if the ledger is down;
    attested transitions then fail with 502 until it comes back.
    On shutdown: dispose of the pool.
    """
    settings = get_settings()

    # -- PostgreSQL ---
    engine, session_factory = create_engine(settings)
    app.state.db_engine = engine
    app.state.db_session_factory = session_factory
    logger.info("PostgreSQL connection pool initialized")

    # -- Ledger ---
    ledger_clients = create_ledger_clients(settings)
    app.state.ledger_clients = ledger_clients
    first_client = next(iter(ledger_clients.values()))
    if await first_client.verify_connectivity():
        logger.info("Ledger backend %r reachable", settings.ledger_backend)
    else:
        logger.warning("Ledger is not reachable; starting in degraded mode")

    yield

    await engine.dispose()
    logger.info("All connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Municipal complaints and public-works interventions with ledger-attested status changes",
        version=API_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # -- Middleware ---
    # Applied in reverse order (last added = first executed).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "Accept"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIDMiddleware)

    # -- Routes ---
    app.include_router(health.router)
    app.include_router(complaints.router)
    app.include_router(interventions.router)

    # -- Error Handlers ---
    install_error_handlers(app)

    return app


# Application instance used by uvicorn
app = create_app()
