"""Session/tenant authorization guard.

AuthGuard is the single authority for "who is calling, in which tenant,
and may they do this":

- login / logout with session id regeneration (fixation defense)
- tenant resolution at login and tenant switching afterwards
- static role permission checks with per-association additions
- per-session CSRF tokens compared in constant time

Session lifecycle:
    Anonymous -> Authenticated(T0) -> Authenticated(T1) -> ... -> Destroyed

Every check in login() and switch_tenant() runs before the session is
written, so a rejected request never leaves a partially updated session.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from collabora_api.audit.activity import (
    LOGIN_FAILED,
    LOGIN_SUCCESS,
    LOGOUT,
    TENANT_SWITCH,
    ActivityRepository,
)
from collabora_api.auth.csrf import generate_token, is_expired, tokens_match
from collabora_api.auth.passwords import burn_verification, verify_password
from collabora_api.auth.permissions import Role, can_switch_tenant, grants, parse_role, permissions_for
from collabora_api.auth.session import SessionContext
from collabora_api.auth.session_store import SessionData
from collabora_api.config.env import LoginPolicy, get_login_policy
from collabora_api.db.models import Tenant, User
from collabora_api.db.repo_tenants import TenantRepository
from collabora_api.db.repo_users import UserRepository
from collabora_api.errors import (
    AccessDenied,
    AccountInactive,
    AccountLocked,
    InvalidCredentials,
    InvalidCsrfToken,
    InvalidSessionState,
    InvalidTenant,
    MissingFields,
    PermissionDenied,
    RoleRestriction,
    Unauthorized,
)

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    user: User
    tenant: Tenant
    session_id: str
    csrf_token: str
    tenants: list[Tenant] = field(default_factory=list)


@dataclass
class SwitchResult:
    tenant: Tenant
    previous_tenant_id: Optional[int]


class AuthGuard:
    """Authentication and tenant authorization for one request."""

    def __init__(
        self,
        session: SessionContext,
        db: Session,
        login_policy: Optional[LoginPolicy] = None,
    ):
        self.session = session
        self.db = db
        self.login_policy = login_policy or get_login_policy()
        self.users = UserRepository(db)
        self.tenants = TenantRepository(db)
        self.activity = ActivityRepository(db)
        self._user: Optional[User] = None

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.session.clock(), tz=timezone.utc)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def init_session(self) -> SessionData:
        """Start (or resume) the request's session. Idempotent."""
        return self.session.start()

    def is_authenticated(self) -> bool:
        return self.init_session().is_authenticated

    def require_auth(self) -> SessionData:
        data = self.init_session()
        if not data.is_authenticated:
            raise Unauthorized()
        return data

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------

    def login(self, identifier: Optional[str], password: Optional[str], tenant_code: Optional[str] = None) -> LoginResult:
        """Authenticate a user and bind the session to a tenant.

        Args:
            identifier: Email (case-insensitive) or username
            password: Plaintext password
            tenant_code: Optional tenant to log into; must be one the user may access

        Returns:
            LoginResult with the new session id and CSRF token

        Raises:
            MissingFields: identifier or password empty
            InvalidCredentials: unknown user, wrong password, or tenant_code not accessible
            AccountInactive: user or chosen tenant not active, or no tenant available
            AccountLocked: too many failed attempts
        """
        identifier = (identifier or "").strip()
        password = password or ""
        missing = [name for name, value in (("username", identifier), ("password", password)) if not value]
        if missing:
            raise MissingFields(fields=missing)

        self.init_session()
        now = self._now()

        user = self.users.get_by_identifier(identifier)
        if user is None:
            burn_verification(password)
            self._login_failed(None, "unknown_identifier")
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            locked = self.users.record_failed_login(
                user,
                self.login_policy.max_attempts,
                self.login_policy.lockout_duration,
                now,
            )
            self._login_failed(user, "account_locked_now" if locked else "bad_password")
            raise InvalidCredentials()

        if user.status != "active":
            self._login_failed(user, "account_inactive")
            raise AccountInactive()

        if self.users.is_locked(user, now):
            self._login_failed(user, "account_locked")
            raise AccountLocked()

        tenant = self._resolve_login_tenant(user, tenant_code)
        if not tenant.is_active:
            self._login_failed(user, "tenant_inactive")
            raise AccountInactive("The selected tenant is not active")

        # All checks passed: only now is the session written
        data = self.session.data
        self.session.regenerate_id()
        ts = self.session.clock()
        data.user_id = user.id
        data.role = user.role
        data.current_tenant_id = tenant.id
        data.previous_tenant_id = None
        data.created_at = ts
        data.login_time = ts
        data.last_activity = ts
        data.last_regenerated_at = ts
        data.ip_address = self.session.ip_address
        data.user_agent = self.session.user_agent
        csrf_token = self.generate_csrf_token()

        self.users.record_successful_login(user, self.session.ip_address or "", now)
        association = self.tenants.get_association(user.id, tenant.id)
        if association is not None:
            self.tenants.touch_association(association)
        self.db.commit()
        self._user = user

        self.activity.record(
            LOGIN_SUCCESS,
            user_id=user.id,
            tenant_id=tenant.id,
            ip_address=self.session.ip_address,
            user_agent=self.session.user_agent,
            session_id=data.session_id,
        )
        logger.info(
            "User logged in",
            extra={
                "event": "auth.login.success",
                "user_id": user.id,
                "tenant_id": tenant.id,
                "role": user.role,
            },
        )

        return LoginResult(
            user=user,
            tenant=tenant,
            session_id=data.session_id,
            csrf_token=csrf_token,
            tenants=self._available_tenants_for(user),
        )

    def _login_failed(self, user: Optional[User], reason: str) -> None:
        logger.warning(
            "Login failed",
            extra={
                "event": "auth.login.failed",
                "reason": reason,
                "user_id": user.id if user else None,
            },
        )
        self.activity.record(
            LOGIN_FAILED,
            user_id=user.id if user else None,
            ip_address=self.session.ip_address,
            user_agent=self.session.user_agent,
            metadata={"reason": reason},
        )

    def _resolve_login_tenant(self, user: User, tenant_code: Optional[str]) -> Tenant:
        tenant_code = (tenant_code or "").strip()
        if tenant_code:
            tenant = self.tenants.get_by_code(tenant_code)
            if tenant is None or not self._may_access(user, tenant):
                # Same answer as a bad password: tenant membership is not disclosed
                self._login_failed(user, "tenant_not_accessible")
                raise InvalidCredentials()
            return tenant

        tenant = self._default_tenant(user)
        if tenant is None:
            self._login_failed(user, "no_tenant")
            raise AccountInactive("No active tenant is available for this account")
        return tenant

    def _default_tenant(self, user: User) -> Optional[Tenant]:
        role = parse_role(user.role)
        if role is Role.STANDARD_USER:
            if user.tenant_id is None:
                return None
            return self.tenants.get_by_id(user.tenant_id)

        associated = self.tenants.list_for_user(user.id, active_only=True)
        if associated:
            return associated[0][0]
        if role is Role.ADMIN:
            active = self.tenants.list_tenants(active_only=True)
            return active[0] if active else None
        return None

    def _may_access(self, user: User, tenant: Tenant) -> bool:
        role = parse_role(user.role)
        if role is Role.ADMIN:
            return True
        if role is Role.STANDARD_USER:
            return user.tenant_id is not None and user.tenant_id == tenant.id
        if user.tenant_id is not None and user.tenant_id == tenant.id:
            return True
        return self.tenants.get_association(user.id, tenant.id) is not None

    def logout(self) -> None:
        """Destroy the session. Safe to call when not logged in."""
        data = self.init_session()
        if data.is_authenticated:
            self.activity.record(
                LOGOUT,
                user_id=data.user_id,
                tenant_id=data.current_tenant_id,
                ip_address=self.session.ip_address,
                user_agent=self.session.user_agent,
                session_id=data.session_id,
            )
            logger.info("User logged out", extra={"event": "auth.logout", "user_id": data.user_id})
        self.session.destroy()
        self._user = None

    # ------------------------------------------------------------------
    # Current user / tenant
    # ------------------------------------------------------------------

    def get_current_user(self) -> User:
        """The logged-in user.

        Raises:
            Unauthorized: no authenticated session
            InvalidSessionState: the session's user no longer exists
            AccountInactive: the user was deactivated after logging in
        """
        data = self.require_auth()
        if self._user is not None and self._user.id == data.user_id:
            return self._user

        user = self.users.get_by_id(data.user_id)
        if user is None:
            raise InvalidSessionState("Session refers to a user that no longer exists")
        if user.status != "active":
            raise AccountInactive()
        self._user = user
        return user

    def get_current_tenant(self) -> Tenant:
        """The tenant the session is bound to.

        Raises:
            Unauthorized: no authenticated session
            InvalidSessionState: no tenant in the session, or the row is gone
            InvalidTenant: the tenant was suspended, archived or deleted since it was selected
        """
        data = self.require_auth()
        if data.current_tenant_id is None:
            raise InvalidSessionState("Session has no current tenant")
        tenant = self.tenants.get_by_id(data.current_tenant_id, include_deleted=True)
        if tenant is None:
            raise InvalidSessionState("Session refers to a tenant that no longer exists")
        if not tenant.is_active:
            raise InvalidTenant("Current tenant is no longer active")
        return tenant

    def get_available_tenants(self) -> list[Tenant]:
        """Tenants the current user may see, including inactive ones."""
        return self._available_tenants_for(self.get_current_user())

    def _available_tenants_for(self, user: User) -> list[Tenant]:
        role = parse_role(user.role)
        if role is Role.ADMIN:
            return self.tenants.list_tenants()
        if role is Role.STANDARD_USER:
            # associations never widen a standard user beyond the bound tenant
            bound = self.tenants.get_by_id(user.tenant_id) if user.tenant_id is not None else None
            return [bound] if bound is not None else []

        tenants = [tenant for tenant, _ in self.tenants.list_for_user(user.id)]
        if user.tenant_id is not None and all(t.id != user.tenant_id for t in tenants):
            bound = self.tenants.get_by_id(user.tenant_id)
            if bound is not None:
                tenants.insert(0, bound)
        return tenants

    # ------------------------------------------------------------------
    # Tenant switch
    # ------------------------------------------------------------------

    def switch_tenant(self, tenant_id: int) -> SwitchResult:
        """Move the session to another tenant.

        Checks run in a fixed order: role, then tenant existence/status,
        then membership (special users only; admins need none).

        Raises:
            Unauthorized: not logged in
            RoleRestriction: standard users never switch
            InvalidTenant: tenant missing, deleted or not active
            AccessDenied: special user without an association to the tenant
        """
        data = self.require_auth()
        user = self.get_current_user()

        if not can_switch_tenant(user.role):
            logger.warning(
                "Tenant switch refused for role",
                extra={"event": "auth.tenant.switch_denied", "reason": "role", "user_id": user.id},
            )
            raise RoleRestriction()

        tenant = self.tenants.get_by_id(tenant_id)
        if tenant is None or not tenant.is_active:
            logger.warning(
                "Tenant switch to invalid tenant",
                extra={"event": "auth.tenant.switch_denied", "reason": "invalid_tenant", "user_id": user.id},
            )
            raise InvalidTenant()

        association = self.tenants.get_association(user.id, tenant.id)
        if parse_role(user.role) is Role.SPECIAL_USER and association is None:
            logger.warning(
                "Tenant switch without association",
                extra={"event": "auth.tenant.switch_denied", "reason": "no_association", "user_id": user.id},
            )
            raise AccessDenied()

        previous_tenant_id = data.current_tenant_id
        data.previous_tenant_id = previous_tenant_id
        data.current_tenant_id = tenant.id
        data.last_activity = self.session.clock()
        self.session.save()

        if association is not None:
            self.tenants.touch_association(association)
            self.db.commit()

        self.activity.record(
            TENANT_SWITCH,
            user_id=user.id,
            tenant_id=tenant.id,
            ip_address=self.session.ip_address,
            user_agent=self.session.user_agent,
            session_id=data.session_id,
            metadata={"from_tenant_id": previous_tenant_id, "to_tenant_id": tenant.id},
        )
        logger.info(
            "Tenant switched",
            extra={
                "event": "auth.tenant.switch",
                "user_id": user.id,
                "from_tenant_id": previous_tenant_id,
                "to_tenant_id": tenant.id,
            },
        )
        return SwitchResult(tenant=tenant, previous_tenant_id=previous_tenant_id)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def effective_permissions(self) -> frozenset[str]:
        """Role permissions plus additions from the current tenant's association."""
        user = self.get_current_user()
        overrides = None
        tenant_id = self.session.data.current_tenant_id if self.session.data else None
        if tenant_id is not None:
            association = self.tenants.get_association(user.id, tenant_id)
            if association is not None:
                overrides = association.permissions
        return permissions_for(user.role, overrides)

    def has_permission(self, permission: str) -> bool:
        if not self.is_authenticated():
            return False
        return grants(self.effective_permissions(), permission)

    def require_permission(self, permission: str) -> None:
        self.require_auth()
        if not grants(self.effective_permissions(), permission):
            logger.warning(
                "Permission denied",
                extra={
                    "event": "auth.permission.denied",
                    "permission": permission,
                    "user_id": self.session.data.user_id,
                },
            )
            raise PermissionDenied()

    # ------------------------------------------------------------------
    # CSRF
    # ------------------------------------------------------------------

    def generate_csrf_token(self) -> str:
        """Issue a new token for this session (replacing any previous one)."""
        data = self.init_session()
        data.csrf_token = generate_token()
        data.csrf_token_created_at = self.session.clock()
        self.session.save()
        return data.csrf_token

    def get_csrf_token(self) -> str:
        """The session's current token, or a new one if absent or expired."""
        data = self.init_session()
        if data.csrf_token and not self._csrf_expired(data):
            return data.csrf_token
        return self.generate_csrf_token()

    def _csrf_expired(self, data: SessionData) -> bool:
        return is_expired(
            data.csrf_token_created_at,
            self.session.settings.csrf_token_ttl,
            self.session.clock(),
        )

    def validate_csrf_token(self, token: Optional[str]) -> bool:
        data = self.init_session()
        if not data.csrf_token or self._csrf_expired(data):
            return False
        return tokens_match(data.csrf_token, token)

    def require_csrf_token(self, token: Optional[str]) -> None:
        if not self.validate_csrf_token(token):
            logger.warning(
                "CSRF token rejected",
                extra={"event": "auth.csrf.rejected", "token_present": bool(token)},
            )
            raise InvalidCsrfToken()
