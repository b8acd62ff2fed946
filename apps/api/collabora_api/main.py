"""Collabora API - FastAPI Application Entry Point."""

import logging
import os
import time
import uuid
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from collabora_api import __version__
from collabora_api.auth.session_store import SessionStore, build_session_store
from collabora_api.config.env import (
    LoginPolicy,
    SessionSettings,
    auto_create_tables,
    get_cors_origins,
    get_login_policy,
    get_session_settings,
    is_debug_enabled,
)
from collabora_api.context import request_id_var, tenant_id_var, user_id_var
from collabora_api.db.bootstrap import init_db
from collabora_api.db.session import engine
from collabora_api.errors import CollaboraError, ErrorCode, status_for
from collabora_api.middleware import LoggingRedactionMiddleware, SecurityHeadersMiddleware, get_safe_headers
from collabora_api.routers import auth, health, me, tenants
from collabora_api.utils import configure_json_logging, sanitize_str

logger = logging.getLogger(__name__)

# Set COLLABORA_JSON_LOGS=false to disable (defaults to true)
if os.getenv("COLLABORA_JSON_LOGS", "true").lower() != "false":
    configure_json_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))


def error_response(
    code: ErrorCode,
    message: str,
    fields: Optional[list[str]] = None,
    debug: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    """Build the failure envelope: {"success": false, "error": {...}}."""
    error: dict[str, Any] = {"code": code.value, "message": message, "fields": list(fields or [])}
    if debug is not None:
        error["debug"] = debug
    return JSONResponse(
        status_code=status_for(code),
        content={"success": False, "error": error},
        headers=headers,
    )


def with_session_cookies(request: Request, response: JSONResponse) -> JSONResponse:
    """Copy pending session Set-Cookie headers onto an error response.

    A session rotated or expired before the failure still hands its new
    cookie to the client.
    """
    pending = getattr(request.state, "session_response", None)
    if pending is not None:
        for name, value in pending.raw_headers:
            if name == b"set-cookie":
                response.raw_headers.append((name, value))
    return response


_HTTP_STATUS_CODES = {
    400: ErrorCode.VALIDATION_FAILED,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
}

_HTTP_MESSAGES = {
    404: "Resource not found",
    405: "Method not allowed",
}


async def collabora_error_handler(request: Request, exc: CollaboraError) -> JSONResponse:
    """Expected application errors: status comes from the code table."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Request failed",
        extra={
            "event": "http.request.error",
            "code": exc.code.value,
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )
    return with_session_cookies(request, error_response(exc.code, exc.message, exc.fields))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing-level errors (unknown path, wrong method) in the same envelope."""
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.SERVER_ERROR)
    message = _HTTP_MESSAGES.get(exc.status_code) or (
        exc.detail if isinstance(exc.detail, str) else "Request failed"
    )
    return with_session_cookies(request, error_response(code, message, headers=getattr(exc, "headers", None)))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request validation errors -> 400 validation_failed."""
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", []) if part not in ("body", "query", "path")]
        if loc:
            fields.append(".".join(loc))
    return with_session_cookies(
        request, error_response(ErrorCode.VALIDATION_FAILED, "Request validation failed", fields)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Uncaught exceptions -> 500 server_error, details only in debug mode."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={"event": "http.request.unhandled", "path": request.url.path, "headers": get_safe_headers(request)},
    )
    debug = None
    if is_debug_enabled():
        debug = {"type": type(exc).__name__, "message": sanitize_str(str(exc))}
    response = error_response(
        ErrorCode.SERVER_ERROR, "An unexpected error occurred. Please try again later.", debug=debug
    )
    return with_session_cookies(request, response)


def create_app(
    *,
    session_store: Optional[SessionStore] = None,
    session_settings: Optional[SessionSettings] = None,
    login_policy: Optional[LoginPolicy] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        session_store: Session backend (default: chosen by SESSION_BACKEND)
        session_settings: Cookie/lifetime settings (default: from environment)
        login_policy: Brute-force settings (default: from environment)

    Returns:
        Configured FastAPI application instance
    """
    new_app = FastAPI(
        title="Collabora API",
        description="Multi-tenant session, tenant switching and permission guard.",
        version=__version__,
        docs_url="/api-docs",
        redoc_url="/redoc",
    )

    new_app.state.session_store = session_store or build_session_store()
    new_app.state.session_settings = session_settings or get_session_settings()
    new_app.state.login_policy = login_policy or get_login_policy()

    # Credentials mode cannot use wildcard origins
    new_app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-CSRF-Token", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    new_app.add_middleware(SecurityHeadersMiddleware)
    new_app.add_middleware(LoggingRedactionMiddleware)

    @new_app.middleware("http")
    async def http_completion_logging_middleware(request: Request, call_next):
        """Emit "http.request.completed" for every request, even on exceptions.

        Clears per-request contextvars at start and end so identifiers never
        leak into the next request served by the same task.
        """
        tenant_id_var.set("")
        user_id_var.set("")

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "http.request.completed",
                extra={
                    "event": "http.request.completed",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            tenant_id_var.set("")
            user_id_var.set("")

    # Registered last so it is the outermost middleware
    @new_app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Accept or generate X-Request-ID and echo it on the response."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    new_app.add_exception_handler(CollaboraError, collabora_error_handler)
    new_app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    new_app.add_exception_handler(RequestValidationError, validation_exception_handler)
    new_app.add_exception_handler(Exception, general_exception_handler)

    new_app.include_router(health.router, tags=["health"])
    new_app.include_router(auth.router)
    new_app.include_router(tenants.router)
    new_app.include_router(me.router)

    @new_app.on_event("startup")
    async def startup_event():
        """Create tables (and the bootstrap admin) when enabled."""
        if auto_create_tables():
            init_db(engine)

    return new_app


app = create_app()
