"""Pydantic schemas for API requests/responses."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from collabora_api.db.models import Tenant, User

# ============================================================================
# Shared
# ============================================================================


class UserOut(BaseModel):
    """Public view of a user. Never carries the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    role: str
    status: str
    tenant_id: Optional[int] = None


class TenantOut(BaseModel):
    """Public view of a tenant."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    code: Optional[str] = None
    name: str
    domain: Optional[str] = None
    status: str
    subscription_tier: str = "standard"
    is_current: bool = False


def user_out(user: User) -> UserOut:
    return UserOut.model_validate(user)


def tenant_out(tenant: Tenant, current_tenant_id: Optional[int] = None) -> TenantOut:
    out = TenantOut.model_validate(tenant)
    out.is_current = current_tenant_id is not None and tenant.id == current_tenant_id
    return out


# ============================================================================
# Requests
# ============================================================================


class LoginRequest(BaseModel):
    """Body for action=login. Either username or email identifies the user."""

    username: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=1024)
    tenant_code: Optional[str] = Field(default=None, max_length=20)

    @property
    def identifier(self) -> Optional[str]:
        return self.username or self.email


class SwitchTenantRequest(BaseModel):
    """Body for action=switch_tenant and POST /api/switch-tenant."""

    # tenant ids are positive BIGINT primary keys
    tenant_id: Optional[int] = Field(default=None, ge=1, le=2**63 - 1)


# ============================================================================
# Responses
# ============================================================================


class LoginResponse(BaseModel):
    success: bool = True
    message: str = "Login successful"
    user: UserOut
    tenant: TenantOut
    tenants: list[TenantOut]
    csrf_token: str


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out"


class CheckResponse(BaseModel):
    success: bool = True
    authenticated: bool
    user: Optional[UserOut] = None
    tenant: Optional[TenantOut] = None


class CsrfTokenResponse(BaseModel):
    success: bool = True
    csrf_token: str


class SwitchTenantResponse(BaseModel):
    success: bool = True
    message: str = "Tenant switched"
    tenant: TenantOut
    previous_tenant_id: Optional[int] = None


class MeResponse(BaseModel):
    success: bool = True
    user: UserOut
    tenant: TenantOut
    previous_tenant_id: Optional[int] = None
    permissions: list[str]


class UserTenantsResponse(BaseModel):
    success: bool = True
    tenants: list[TenantOut]
    current_tenant_id: Optional[int] = None
    can_switch: bool = False


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    services: dict[str, str]


class ErrorInfo(BaseModel):
    code: str
    message: str
    fields: list[str] = Field(default_factory=list)
    debug: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Failure envelope shared by every endpoint."""

    success: bool = False
    error: ErrorInfo
