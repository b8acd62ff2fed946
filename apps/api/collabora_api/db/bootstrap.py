"""Schema creation and first-run seeding.

init_db() creates missing tables and, when BOOTSTRAP_ADMIN_EMAIL and
BOOTSTRAP_ADMIN_PASSWORD are set and no admin exists yet, seeds a default
tenant and an admin account bound to it.
"""

import logging
from typing import Optional

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from collabora_api.auth.passwords import hash_password
from collabora_api.auth.permissions import Role
from collabora_api.config.env import get_bootstrap_admin
from collabora_api.db.engine import build_sessionmaker
from collabora_api.db.models import Base, Tenant, User, UserTenantAssociation

logger = logging.getLogger(__name__)

DEFAULT_TENANT_CODE = "DEFAULT"


def seed_admin(db: Session, email: str, password: str) -> Optional[User]:
    """Create the default tenant and an admin user unless an admin exists.

    Returns:
        The created admin, or None if one already existed
    """
    existing = db.execute(select(User).where(User.role == Role.ADMIN.value)).scalars().first()
    if existing is not None:
        return None

    tenant = db.execute(select(Tenant).where(Tenant.code == DEFAULT_TENANT_CODE)).scalar_one_or_none()
    if tenant is None:
        tenant = Tenant(code=DEFAULT_TENANT_CODE, name="Default", status="active")
        db.add(tenant)
        db.flush()

    admin = User(
        email=email,
        username="admin",
        password_hash=hash_password(password),
        first_name="Admin",
        role=Role.ADMIN.value,
        status="active",
        tenant_id=tenant.id,
    )
    db.add(admin)
    db.flush()
    db.add(UserTenantAssociation(user_id=admin.id, tenant_id=tenant.id, role_in_tenant="admin", is_primary=True))
    db.commit()

    logger.info(
        "Bootstrap admin created",
        extra={"event": "db.bootstrap.admin_created", "user_id": admin.id, "tenant_id": tenant.id},
    )
    return admin


def init_db(engine: Engine) -> None:
    """Create tables and seed the bootstrap admin if configured."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured", extra={"event": "db.bootstrap.tables_created"})

    credentials = get_bootstrap_admin()
    if credentials is None:
        return

    session_factory = build_sessionmaker(engine)
    with session_factory() as db:
        seed_admin(db, *credentials)
