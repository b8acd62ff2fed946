"""Logging Redaction Middleware.

Session cookies, CSRF tokens and Authorization headers must never appear
in plain text in logs.

Behavior:
- Builds a redacted copy of the request headers before handlers run
- Stores it in request.state.redacted_headers for loggers to use
- The original headers stay intact for the session guard

Usage:
    app.add_middleware(LoggingRedactionMiddleware)
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from collabora_api.utils.sanitize import REDACTED

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",  # carries the session id
        "x-csrf-token",
        "x-api-key",
    }
)


def _redact(request: Request) -> dict[str, str]:
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in request.headers.items()
    }


class LoggingRedactionMiddleware(BaseHTTPMiddleware):
    """Store a log-safe copy of request headers on request.state."""

    def __init__(self, app):
        super().__init__(app)
        logger.info(
            "LoggingRedactionMiddleware initialized",
            extra={
                "event": "middleware.logging_redaction.init",
                "redacted_headers": sorted(SENSITIVE_HEADERS),
            },
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.redacted_headers = _redact(request)
        request.state.logging_redaction_applied = True
        return await call_next(request)


def get_safe_headers(request: Request) -> dict:
    """Headers safe for logging, with sensitive values redacted.

    Example:
        logger.info("Request headers", extra={"headers": get_safe_headers(request)})
    """
    if hasattr(request.state, "redacted_headers"):
        return request.state.redacted_headers
    return _redact(request)
