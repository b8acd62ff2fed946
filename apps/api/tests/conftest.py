"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
# Inject sys.path for reliable pytest imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api

import os

# Must be set before collabora_api.db.session builds its module-level engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("COLLABORA_AUTO_CREATE_TABLES", "0")
os.environ.setdefault("COLLABORA_BCRYPT_ROUNDS", "4")
os.environ.setdefault("SESSION_BACKEND", "memory")

from dataclasses import dataclass
from datetime import datetime, timezone

import pytest
from fastapi import Response
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from collabora_api.auth.guard import AuthGuard
from collabora_api.auth.passwords import hash_password
from collabora_api.auth.session import SessionContext
from collabora_api.auth.session_store import InMemorySessionStore
from collabora_api.config.env import LoginPolicy, SessionSettings
from collabora_api.db.engine import build_engine, build_sessionmaker
from collabora_api.db.models import Base, Tenant, User
from collabora_api.db.repo_tenants import TenantRepository
from collabora_api.db.repo_users import UserRepository
from collabora_api.db.session import get_db
from collabora_api.main import create_app

ADMIN_PASSWORD = "AdminPass1!"
SPECIAL_PASSWORD = "SpecialPass1!"
STANDARD_PASSWORD = "StandardPass1!"
INACTIVE_PASSWORD = "InactivePass1!"

PASSWORDS = {
    "admin": ADMIN_PASSWORD,
    "special": SPECIAL_PASSWORD,
    "standard": STANDARD_PASSWORD,
    "inactive": INACTIVE_PASSWORD,
}

TEST_LOGIN_POLICY = LoginPolicy(max_attempts=3, lockout_duration=900)


class FakeClock:
    """Deterministic time source (seconds since epoch)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class Seed:
    acme: Tenant  # active
    globex: Tenant  # suspended
    initech: Tenant  # active
    umbrella: Tenant  # soft-deleted
    admin: User
    special: User
    standard: User
    inactive: User


@pytest.fixture(scope="function")
def db_session() -> Session:
    """Fresh in-memory SQLite database for each test."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)
    session = build_sessionmaker(engine)()
    try:
        yield session
        session.rollback()
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def seed(db_session: Session) -> Seed:
    """Tenants, users and associations shared by guard and API tests.

    - admin: no associations, bound to Acme
    - special: associated with Acme (primary, extra permissions) and Globex
    - standard: bound to Acme
    - inactive: standard user with status=inactive
    """
    tenants = TenantRepository(db_session)
    acme = tenants.create(Tenant(code="ACME", name="Acme", status="active"))
    globex = tenants.create(Tenant(code="GLOBEX", name="Globex", status="suspended"))
    initech = tenants.create(Tenant(code="INITECH", name="Initech", status="active"))
    umbrella = tenants.create(
        Tenant(code="UMBRELLA", name="Umbrella", status="active", deleted_at=datetime.now(timezone.utc))
    )

    users = UserRepository(db_session)
    admin = users.create(
        User(
            email="admin@example.com",
            username="admin",
            password_hash=hash_password(ADMIN_PASSWORD, rounds=4),
            first_name="Ada",
            last_name="Admin",
            role="admin",
            tenant_id=acme.id,
        )
    )
    special = users.create(
        User(
            email="special@example.com",
            username="special",
            password_hash=hash_password(SPECIAL_PASSWORD, rounds=4),
            role="special_user",
        )
    )
    standard = users.create(
        User(
            email="standard@example.com",
            username="standard",
            password_hash=hash_password(STANDARD_PASSWORD, rounds=4),
            role="standard_user",
            tenant_id=acme.id,
        )
    )
    inactive = users.create(
        User(
            email="inactive@example.com",
            username="inactive",
            password_hash=hash_password(INACTIVE_PASSWORD, rounds=4),
            role="standard_user",
            status="inactive",
            tenant_id=acme.id,
        )
    )

    tenants.add_association(
        special.id, acme.id, is_primary=True, permissions=["reports.export", "*"]
    )
    tenants.add_association(special.id, globex.id)

    return Seed(
        acme=acme,
        globex=globex,
        initech=initech,
        umbrella=umbrella,
        admin=admin,
        special=special,
        standard=standard,
        inactive=inactive,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_settings() -> SessionSettings:
    return SessionSettings(lifetime=86400, idle_timeout=7200, regenerate_interval=3600, csrf_token_ttl=3600)


@pytest.fixture
def session_store(clock: FakeClock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def make_guard(db_session: Session, session_store, session_settings, clock):
    """Factory building the AuthGuard of one simulated request.

    Pass the previous guard's session id as ``cookie`` to continue a session.
    """

    def _make(cookie=None, response=None, secure_request=False) -> AuthGuard:
        session = SessionContext(
            store=session_store,
            settings=session_settings,
            cookie_session_id=cookie,
            response=response if response is not None else Response(),
            secure_request=secure_request,
            ip_address="203.0.113.7",
            user_agent="pytest",
            clock=clock,
        )
        return AuthGuard(session, db_session, login_policy=TEST_LOGIN_POLICY)

    return _make


@pytest.fixture
def app():
    return create_app(
        session_store=InMemorySessionStore(),
        session_settings=SessionSettings(),
        login_policy=TEST_LOGIN_POLICY,
    )


@pytest.fixture
def test_client(app, db_session: Session, seed: Seed):
    """TestClient with db_session dependency override."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close - conftest will handle it

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def passwords() -> dict[str, str]:
    return dict(PASSWORDS)


@pytest.fixture
def login_as(test_client: TestClient):
    """Log in through the API; returns the response (cookies stay on the client)."""

    def _login(username: str, password=None, **extra):
        body = {"username": username, "password": password or PASSWORDS[username], **extra}
        return test_client.post("/api/auth?action=login", json=body)

    return _login
