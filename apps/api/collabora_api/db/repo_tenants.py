"""Repository for tenants and user/tenant associations."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from collabora_api.db.models import Tenant, UserTenantAssociation


class TenantRepository:
    """Tenant-scoped lookups consumed by the authorization guard.

    Soft-deleted tenants (deleted_at set) are invisible to every lookup.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, tenant: Tenant) -> Tenant:
        self.db.add(tenant)
        self.db.commit()
        self.db.refresh(tenant)
        return tenant

    def get_by_id(self, tenant_id: int, include_deleted: bool = False) -> Optional[Tenant]:
        stmt = select(Tenant).where(Tenant.id == tenant_id)
        if not include_deleted:
            stmt = stmt.where(Tenant.deleted_at.is_(None))
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_code(self, code: str) -> Optional[Tenant]:
        stmt = select(Tenant).where(Tenant.code == code, Tenant.deleted_at.is_(None))
        return self.db.execute(stmt).scalar_one_or_none()

    def list_tenants(self, active_only: bool = False) -> list[Tenant]:
        """All non-deleted tenants ordered by name."""
        stmt = select(Tenant).where(Tenant.deleted_at.is_(None))
        if active_only:
            stmt = stmt.where(Tenant.status == "active")
        stmt = stmt.order_by(Tenant.name, Tenant.id)
        return list(self.db.execute(stmt).scalars())

    def list_for_user(
        self, user_id: int, active_only: bool = False
    ) -> list[tuple[Tenant, UserTenantAssociation]]:
        """Non-deleted tenants associated with a user, primary association first."""
        stmt = (
            select(Tenant, UserTenantAssociation)
            .join(UserTenantAssociation, UserTenantAssociation.tenant_id == Tenant.id)
            .where(UserTenantAssociation.user_id == user_id, Tenant.deleted_at.is_(None))
        )
        if active_only:
            stmt = stmt.where(Tenant.status == "active")
        stmt = stmt.order_by(UserTenantAssociation.is_primary.desc(), Tenant.name, Tenant.id)
        return [(tenant, association) for tenant, association in self.db.execute(stmt).all()]

    def get_association(self, user_id: int, tenant_id: int) -> Optional[UserTenantAssociation]:
        stmt = select(UserTenantAssociation).where(
            UserTenantAssociation.user_id == user_id,
            UserTenantAssociation.tenant_id == tenant_id,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_association(
        self,
        user_id: int,
        tenant_id: int,
        role_in_tenant: str = "user",
        is_primary: bool = False,
        permissions: Optional[list[str]] = None,
    ) -> UserTenantAssociation:
        association = UserTenantAssociation(
            user_id=user_id,
            tenant_id=tenant_id,
            role_in_tenant=role_in_tenant,
            is_primary=is_primary,
            permissions=permissions,
        )
        self.db.add(association)
        self.db.commit()
        self.db.refresh(association)
        return association

    def touch_association(self, association: UserTenantAssociation) -> None:
        """Record that the user entered this tenant (caller commits)."""
        association.last_accessed_at = datetime.now(timezone.utc)
