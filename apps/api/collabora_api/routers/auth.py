"""Session authentication endpoint.

One path, many actions: /api/auth?action=<name>. The action may also be
sent as "action" in the request body.

| action        | method     | auth | CSRF                        |
|---------------|------------|------|-----------------------------|
| login         | POST       | no   | no (no session token yet)   |
| logout        | POST, GET  | no   | POST, when logged in        |
| check         | GET        | no   | no                          |
| switch_tenant | POST       | yes  | yes                         |
| csrf_token    | GET        | no   | no                          |
| me            | GET        | yes  | no                          |
"""

import logging
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ValidationError

from collabora_api.auth.dependencies import bind_log_context, get_auth_guard
from collabora_api.auth.guard import AuthGuard
from collabora_api.errors import (
    AccountInactive,
    InvalidAction,
    InvalidSessionState,
    InvalidTenant,
    MethodNotAllowed,
    ValidationFailed,
)
from collabora_api.routers.me import me_response
from collabora_api.routers.tenants import switch_tenant_response
from collabora_api.schemas import (
    CheckResponse,
    CsrfTokenResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    tenant_out,
    user_out,
)
from collabora_api.utils.request import extract_csrf_token, read_payload

router = APIRouter(prefix="/api", tags=["auth"])
logger = logging.getLogger(__name__)

ActionHandler = Callable[[Request, AuthGuard, dict[str, Any]], Awaitable[BaseModel]]


async def login(request: Request, guard: AuthGuard, payload: dict[str, Any]) -> LoginResponse:
    try:
        body = LoginRequest.model_validate(payload)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise ValidationFailed(fields=fields)

    result = guard.login(body.identifier, body.password, body.tenant_code)
    bind_log_context(guard)
    current = result.tenant.id
    return LoginResponse(
        user=user_out(result.user),
        tenant=tenant_out(result.tenant, current),
        tenants=[tenant_out(tenant, current) for tenant in result.tenants],
        csrf_token=result.csrf_token,
    )


async def logout(request: Request, guard: AuthGuard, payload: dict[str, Any]) -> LogoutResponse:
    if request.method == "POST" and guard.is_authenticated():
        guard.require_csrf_token(await extract_csrf_token(request))
    guard.logout()
    return LogoutResponse()


async def check(request: Request, guard: AuthGuard, payload: dict[str, Any]) -> CheckResponse:
    if not guard.is_authenticated():
        return CheckResponse(authenticated=False)

    try:
        user = guard.get_current_user()
    except (InvalidSessionState, AccountInactive) as e:
        logger.warning(
            "Discarding session with unusable user",
            extra={"event": "auth.check.session_discarded", "reason": e.code.value},
        )
        guard.logout()
        return CheckResponse(authenticated=False)

    bind_log_context(guard)
    try:
        tenant = guard.get_current_tenant()
    except (InvalidSessionState, InvalidTenant):
        return CheckResponse(authenticated=True, user=user_out(user))
    return CheckResponse(authenticated=True, user=user_out(user), tenant=tenant_out(tenant, tenant.id))


async def csrf_token(request: Request, guard: AuthGuard, payload: dict[str, Any]) -> CsrfTokenResponse:
    return CsrfTokenResponse(csrf_token=guard.get_csrf_token())


async def switch_tenant(request: Request, guard: AuthGuard, payload: dict[str, Any]):
    guard.require_auth()
    bind_log_context(guard)
    guard.require_csrf_token(await extract_csrf_token(request))
    return switch_tenant_response(guard, payload)


async def me(request: Request, guard: AuthGuard, payload: dict[str, Any]):
    guard.require_auth()
    bind_log_context(guard)
    return me_response(guard)


ACTIONS: dict[str, tuple[frozenset[str], ActionHandler]] = {
    "login": (frozenset({"POST"}), login),
    "logout": (frozenset({"POST", "GET"}), logout),
    "check": (frozenset({"GET"}), check),
    "switch_tenant": (frozenset({"POST"}), switch_tenant),
    "csrf_token": (frozenset({"GET"}), csrf_token),
    "me": (frozenset({"GET"}), me),
}


@router.api_route("/auth", methods=["GET", "POST"], response_model=None)
async def auth_action(request: Request, guard: AuthGuard = Depends(get_auth_guard)):
    """Dispatch ?action=... to its handler after checking the HTTP method."""
    payload = await read_payload(request)
    action = request.query_params.get("action") or payload.get("action")

    if not isinstance(action, str) or action not in ACTIONS:
        raise InvalidAction(fields=["action"])

    methods, handler = ACTIONS[action]
    if request.method not in methods:
        raise MethodNotAllowed(f"Action '{action}' does not accept {request.method}")

    return await handler(request, guard, payload)
