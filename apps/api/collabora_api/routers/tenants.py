"""Tenant endpoints: switch the session's tenant and list accessible tenants."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from collabora_api.auth.dependencies import require_auth, require_csrf
from collabora_api.auth.guard import AuthGuard
from collabora_api.auth.permissions import can_switch_tenant
from collabora_api.errors import MissingFields, ValidationFailed
from collabora_api.schemas import (
    SwitchTenantRequest,
    SwitchTenantResponse,
    UserTenantsResponse,
    tenant_out,
)
from collabora_api.utils.request import read_payload

router = APIRouter(prefix="/api", tags=["tenants"])
logger = logging.getLogger(__name__)


def parse_tenant_id(payload: dict[str, Any]) -> int:
    """Extract tenant_id from a request payload.

    Raises:
        MissingFields: tenant_id absent or empty
        ValidationFailed: tenant_id is not an integer in the key range
    """
    raw = payload.get("tenant_id")
    if raw is None or raw == "":
        raise MissingFields(fields=["tenant_id"])
    if isinstance(raw, bool):
        raise ValidationFailed("tenant_id must be an integer", fields=["tenant_id"])
    try:
        body = SwitchTenantRequest.model_validate({"tenant_id": raw})
    except ValidationError:
        raise ValidationFailed("tenant_id must be a positive integer", fields=["tenant_id"])
    return body.tenant_id


def switch_tenant_response(guard: AuthGuard, payload: dict[str, Any]) -> SwitchTenantResponse:
    tenant_id = parse_tenant_id(payload)
    result = guard.switch_tenant(tenant_id)
    return SwitchTenantResponse(
        tenant=tenant_out(result.tenant, result.tenant.id),
        previous_tenant_id=result.previous_tenant_id,
    )


@router.post("/switch-tenant", response_model=SwitchTenantResponse)
async def switch_tenant(
    request: Request,
    guard: AuthGuard = Depends(require_auth),
    _csrf: AuthGuard = Depends(require_csrf),
) -> SwitchTenantResponse:
    """Switch the current tenant. Body: {"tenant_id": int}. CSRF required."""
    payload = await read_payload(request)
    return switch_tenant_response(guard, payload)


@router.get("/user-tenants", response_model=UserTenantsResponse)
async def user_tenants(guard: AuthGuard = Depends(require_auth)) -> UserTenantsResponse:
    """List tenants visible to the current user, including inactive ones."""
    user = guard.get_current_user()
    current_tenant_id = guard.session.data.current_tenant_id
    tenants = guard.get_available_tenants()
    return UserTenantsResponse(
        tenants=[tenant_out(tenant, current_tenant_id) for tenant in tenants],
        current_tenant_id=current_tenant_id,
        can_switch=can_switch_tenant(user.role),
    )
