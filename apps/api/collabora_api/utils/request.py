"""Helpers for reading request payloads and client metadata."""

import json
import logging
from typing import Any, Optional

from fastapi import Request

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
CSRF_FIELD = "csrf_token"

STATE_MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


async def read_payload(request: Request) -> dict[str, Any]:
    """Read the request body as a dict.

    Accepts JSON bodies and url-encoded / multipart forms. An empty or
    unparseable body yields an empty dict; a JSON body that is not an object
    is ignored the same way.
    """
    if request.method not in STATE_MUTATING_METHODS:
        return {}

    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith(
        "multipart/form-data"
    ):
        form = await request.form()
        return {key: value for key, value in form.items() if isinstance(value, str)}

    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.debug("Request body is not valid JSON", extra={"event": "request.body.invalid_json"})
        return {}
    return data if isinstance(data, dict) else {}


async def extract_csrf_token(request: Request) -> Optional[str]:
    """Find the CSRF token: header, then query string, then body field."""
    token = request.headers.get(CSRF_HEADER)
    if token:
        return token

    token = request.query_params.get(CSRF_FIELD)
    if token:
        return token

    payload = await read_payload(request)
    value = payload.get(CSRF_FIELD)
    return value if isinstance(value, str) and value else None


def is_https(request: Request) -> bool:
    """True if the request arrived over HTTPS (directly or via a proxy)."""
    forwarded = request.headers.get("x-forwarded-proto", "")
    if forwarded:
        return forwarded.split(",")[0].strip().lower() == "https"
    return request.url.scheme == "https"


def client_ip(request: Request) -> str:
    """Best-effort client IP address."""
    forwarded_for = request.headers.get("x-forwarded-for", "")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "0.0.0.0"


def user_agent(request: Request) -> str:
    return request.headers.get("user-agent", "Unknown")[:512]
