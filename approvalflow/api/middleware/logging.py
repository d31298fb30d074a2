"""Request logging middleware for FastAPI.

Logs every API request with:
- Method and path
- Response status
- Duration
- Acting identity (X-Actor-Id) and client IP
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from approvalflow.common.logger import REQUEST_LOGGER

logger = logging.getLogger(REQUEST_LOGGER)

# Paths that should not be logged (health checks, docs)
EXCLUDED_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        # Short request ID for correlating log lines
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.log(
            level_for_status(response.status_code),
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms}ms) actor={request.headers.get('x-actor-id', '-')} ip={get_client_ip(request)}",
        )
        response.headers["X-Request-ID"] = request_id
        return response
