"""Current user endpoint."""

from fastapi import APIRouter, Depends

from collabora_api.auth.dependencies import require_auth
from collabora_api.auth.guard import AuthGuard
from collabora_api.schemas import MeResponse, tenant_out, user_out

router = APIRouter(prefix="/api", tags=["me"])


def me_response(guard: AuthGuard) -> MeResponse:
    user = guard.get_current_user()
    tenant = guard.get_current_tenant()
    return MeResponse(
        user=user_out(user),
        tenant=tenant_out(tenant, tenant.id),
        previous_tenant_id=guard.session.data.previous_tenant_id,
        permissions=sorted(guard.effective_permissions()),
    )


@router.get("/me", response_model=MeResponse)
async def me(guard: AuthGuard = Depends(require_auth)) -> MeResponse:
    """Return the logged-in user, the current tenant and effective permissions."""
    return me_response(guard)
