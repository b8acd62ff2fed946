"""SQLAlchemy ORM Models for Collabora."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    TEXT,
    TIMESTAMP,
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns
ID_TYPE = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Tenant(Base):
    """Tenant model - an isolated customer namespace. Soft-deleted via deleted_at."""

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    # active | suspended | archived

    storage_quota_gb: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    storage_used_gb: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subscription_tier: Mapped[str] = mapped_column(String(50), nullable=False, default="standard")
    settings: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (Index("idx_tenants_status", "status"),)

    @property
    def is_active(self) -> bool:
        return self.status == "active" and self.deleted_at is None


class User(Base):
    """User model. role drives tenant-switch capability and permission set."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)
    password_hash: Mapped[str] = mapped_column(TEXT, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    role: Mapped[str] = mapped_column(String(20), nullable=False, default="standard_user")
    # admin | special_user | standard_user

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    # active | inactive | locked

    # Bound tenant (standard_user)
    tenant_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("tenants.id"), nullable=True
    )

    # Brute-force protection
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    last_login_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_login_ip: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_users_role", "role"),
        Index("idx_users_status", "status"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserTenantAssociation(Base):
    """Many-to-many join between users and tenants.

    permissions holds extra permission strings granted inside that tenant.
    """

    __tablename__ = "user_tenant_associations"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("users.id"), nullable=False)
    tenant_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("tenants.id"), nullable=False)
    role_in_tenant: Mapped[str] = mapped_column(String(50), nullable=False, default="user")
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    permissions: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "tenant_id", name="uq_user_tenant_associations_user_tenant"),
        Index("idx_user_tenant_associations_tenant_id", "tenant_id"),
    )


class ActivityLog(Base):
    """Authentication activity trail (login, logout, tenant switch)."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(ID_TYPE, nullable=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(ID_TYPE, nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(TEXT, nullable=True)
    # Stored as a sha256 prefix, never the raw session id
    session_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_activity_logs_user_id", "user_id"),
        Index("idx_activity_logs_tenant_id", "tenant_id"),
        Index("idx_activity_logs_action", "action"),
        Index("idx_activity_logs_created_at", "created_at"),
    )
