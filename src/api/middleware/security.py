"""HTTP middleware for the registry API.

Provides:
- Request ID middleware (X-Request-ID header, one access log line per request)
- Rate limiting middleware (in-memory, per-IP)
- Security headers middleware (X-Content-Type-Options, etc.)
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from src.api.version import API_VERSION
from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Paths exempt from rate limiting and access logging
_SKIP_PATHS = frozenset({"/api/v1/health", "/docs", "/openapi.json", "/redoc"})


# ---------------------------------------------------------------------------
# Request ID Middleware
# ---------------------------------------------------------------------------


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with an ID and log its outcome.

    A client-supplied X-Request-ID is preserved, otherwise a UUID4 is
    generated. Error bodies echo the same ID.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        if request.url.path not in _SKIP_PATHS:
            logger.info(
                "%s %s -> %d in %.1fms [%s]",
                request.method,
                request.url.path,
                response.status_code,
                (time.monotonic() - start) * 1000,
                request_id,
            )
        return response


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add standard security headers and the API version to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        settings = get_settings()
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-API-Version"] = API_VERSION
        if not settings.debug:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


# ---------------------------------------------------------------------------
# Rate Limiting Middleware
# ---------------------------------------------------------------------------


@dataclass
class _RateLimitEntry:
    """Request count of one client within the current window."""

    count: int = 0
    window_start: float = 0.0


_MAX_TRACKED_CLIENTS = 50_000
_PRUNE_INTERVAL = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """In-memory per-IP rate limiter.

    Limits each client IP to ``max_requests`` within ``window_seconds``
    and answers 429 beyond that. Counters are per process.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int = 100,
        window_seconds: int = 60,
    ) -> None:
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clients: dict[str, _RateLimitEntry] = defaultdict(_RateLimitEntry)
        self._request_counter = 0

    @staticmethod
    def _client_ip(request: Request) -> str:
        # X-Forwarded-For is not trusted; it is trivially spoofed
        return request.client.host if request.client else "unknown"

    def _prune_stale(self, now: float) -> None:
        stale = [ip for ip, entry in self._clients.items() if now - entry.window_start >= self.window_seconds]
        for ip in stale:
            del self._clients[ip]

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        now = time.monotonic()
        self._request_counter += 1
        if self._request_counter >= _PRUNE_INTERVAL or len(self._clients) > _MAX_TRACKED_CLIENTS:
            self._prune_stale(now)
            self._request_counter = 0

        client_ip = self._client_ip(request)
        entry = self._clients[client_ip]
        if now - entry.window_start >= self.window_seconds:
            entry.count = 0
            entry.window_start = now
        entry.count += 1

        if entry.count > self.max_requests:
            retry_after = max(int(self.window_seconds - (now - entry.window_start)), 1)
            logger.warning("Rate limit exceeded for %s on %s", client_ip, request.url.path)
            return Response(
                content=json.dumps({"detail": "Rate limit exceeded", "error": "RateLimited"}),
                status_code=429,
                media_type="application/json",
                headers={"Retry-After": str(retry_after)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(max(0, self.max_requests - entry.count))
        return response
