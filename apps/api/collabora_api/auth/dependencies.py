"""FastAPI dependencies exposing the AuthGuard to route handlers.

Usage:
    @router.get("/things")
    async def list_things(guard: AuthGuard = Depends(require_permission("files.view"))):
        tenant = guard.get_current_tenant()
"""

from typing import Callable

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session

from collabora_api.auth.guard import AuthGuard
from collabora_api.auth.session import SessionContext
from collabora_api.context import tenant_id_var, user_id_var
from collabora_api.db.session import get_db
from collabora_api.utils.request import (
    STATE_MUTATING_METHODS,
    client_ip,
    extract_csrf_token,
    is_https,
    user_agent,
)


def get_auth_guard(request: Request, response: Response, db: Session = Depends(get_db)) -> AuthGuard:
    """Build the request's AuthGuard from the session cookie.

    Set-Cookie headers written by the session land on ``response`` and are
    merged into whatever the handler returns. The response is also kept on
    ``request.state`` so the error handlers can carry those headers too.
    """
    settings = request.app.state.session_settings
    request.state.session_response = response
    session = SessionContext(
        store=request.app.state.session_store,
        settings=settings,
        cookie_session_id=request.cookies.get(settings.cookie_name),
        response=response,
        secure_request=is_https(request),
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )
    return AuthGuard(session, db, login_policy=request.app.state.login_policy)


def bind_log_context(guard: AuthGuard) -> None:
    """Expose user and tenant ids to the JSON log formatter."""
    data = guard.session.data
    if data is None or not data.is_authenticated:
        return
    user_id_var.set(str(data.user_id))
    if data.current_tenant_id is not None:
        tenant_id_var.set(str(data.current_tenant_id))


def require_auth(guard: AuthGuard = Depends(get_auth_guard)) -> AuthGuard:
    """Reject anonymous requests with 401 unauthorized."""
    guard.require_auth()
    bind_log_context(guard)
    return guard


async def require_csrf(request: Request, guard: AuthGuard = Depends(get_auth_guard)) -> AuthGuard:
    """Reject state-mutating requests without a valid CSRF token (403)."""
    if request.method in STATE_MUTATING_METHODS:
        guard.require_csrf_token(await extract_csrf_token(request))
    return guard


def require_permission(permission: str) -> Callable[..., AuthGuard]:
    """Dependency factory: require an authenticated user holding ``permission``."""

    def dependency(guard: AuthGuard = Depends(require_auth)) -> AuthGuard:
        guard.require_permission(permission)
        return guard

    return dependency
