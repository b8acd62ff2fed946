"""AuthGuard.login: credentials, account state, lockout and tenant resolution."""

import re
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from collabora_api.auth.passwords import hash_password
from collabora_api.db.models import ActivityLog, User
from collabora_api.db.repo_tenants import TenantRepository
from collabora_api.db.repo_users import UserRepository
from collabora_api.errors import (
    AccountInactive,
    AccountLocked,
    InvalidCredentials,
    MissingFields,
)


def _activity(db_session, action: str) -> list[ActivityLog]:
    return list(db_session.execute(select(ActivityLog).where(ActivityLog.action == action)).scalars())


class TestCredentials:
    @pytest.mark.parametrize(
        "identifier,password,missing",
        [
            ("", "", ["username", "password"]),
            ("admin", "", ["password"]),
            ("   ", "secret", ["username"]),
            (None, None, ["username", "password"]),
        ],
    )
    def test_missing_fields(self, make_guard, seed, identifier, password, missing) -> None:
        with pytest.raises(MissingFields) as exc_info:
            make_guard().login(identifier, password)
        assert exc_info.value.fields == missing

    def test_unknown_user_and_wrong_password_are_indistinguishable(self, make_guard, seed) -> None:
        with pytest.raises(InvalidCredentials) as unknown:
            make_guard().login("nobody@example.com", "whatever")
        with pytest.raises(InvalidCredentials) as wrong:
            make_guard().login("admin", "not-the-password")

        assert unknown.value.code == wrong.value.code
        assert unknown.value.message == wrong.value.message
        assert unknown.value.status_code == wrong.value.status_code == 401

    def test_login_by_email_is_case_insensitive(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("ADMIN@Example.com", passwords["admin"])
        assert result.user.id == seed.admin.id

    def test_login_by_username(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("standard", passwords["standard"])
        assert result.user.id == seed.standard.id

    def test_email_match_wins_over_username_match(self, db_session) -> None:
        users = UserRepository(db_session)
        by_username = users.create(
            User(email="first@example.com", username="shared@example.com", password_hash="x", role="standard_user")
        )
        by_email = users.create(
            User(email="Shared@Example.com", username="second", password_hash="x", role="standard_user")
        )

        assert by_username.id < by_email.id
        assert users.get_by_identifier("shared@example.com").id == by_email.id
        assert users.get_by_identifier("second").id == by_email.id

    def test_soft_deleted_user_cannot_log_in(self, make_guard, seed, db_session, passwords) -> None:
        seed.standard.deleted_at = datetime.now(timezone.utc)
        db_session.commit()

        with pytest.raises(InvalidCredentials):
            make_guard().login("standard", passwords["standard"])


class TestAccountState:
    def test_inactive_user_with_correct_password(self, make_guard, seed, passwords) -> None:
        with pytest.raises(AccountInactive):
            make_guard().login("inactive", passwords["inactive"])

    def test_inactive_user_with_wrong_password_gets_invalid_credentials(self, make_guard, seed) -> None:
        with pytest.raises(InvalidCredentials):
            make_guard().login("inactive", "wrong")

    def test_lockout_after_max_attempts(self, make_guard, seed, passwords, clock) -> None:
        # TEST_LOGIN_POLICY: 3 attempts, 900 s lockout
        for _ in range(3):
            with pytest.raises(InvalidCredentials):
                make_guard().login("standard", "wrong")

        with pytest.raises(AccountLocked) as exc_info:
            make_guard().login("standard", passwords["standard"])
        assert exc_info.value.status_code == 403

        clock.advance(901)
        result = make_guard().login("standard", passwords["standard"])
        assert result.user.id == seed.standard.id
        assert result.user.locked_until is None

    def test_successful_login_resets_failure_counter(self, make_guard, seed, passwords) -> None:
        for _ in range(2):
            with pytest.raises(InvalidCredentials):
                make_guard().login("standard", "wrong")
        assert seed.standard.failed_login_attempts == 2

        make_guard().login("standard", passwords["standard"])
        assert seed.standard.failed_login_attempts == 0

    def test_successful_login_records_last_login(self, make_guard, seed, passwords, db_session) -> None:
        make_guard().login("admin", passwords["admin"])

        user = UserRepository(db_session).get_by_id(seed.admin.id)
        assert user.last_login_at is not None
        assert user.last_login_ip == "203.0.113.7"


class TestTenantResolution:
    def test_admin_defaults_to_first_active_tenant_by_name(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("admin", passwords["admin"])
        assert result.tenant.id == seed.acme.id

    def test_special_user_defaults_to_primary_association(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("special", passwords["special"])
        assert result.tenant.id == seed.acme.id

    def test_standard_user_gets_bound_tenant(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("standard", passwords["standard"])
        assert result.tenant.id == seed.acme.id

    def test_standard_user_with_suspended_tenant(self, make_guard, seed, db_session) -> None:
        UserRepository(db_session).create(
            User(
                email="globex-user@example.com",
                username="globex-user",
                password_hash=hash_password("GlobexPass1!", rounds=4),
                role="standard_user",
                tenant_id=seed.globex.id,
            )
        )
        with pytest.raises(AccountInactive):
            make_guard().login("globex-user", "GlobexPass1!")

    def test_special_user_without_tenants(self, make_guard, seed, db_session) -> None:
        UserRepository(db_session).create(
            User(
                email="lonely@example.com",
                username="lonely",
                password_hash=hash_password("LonelyPass1!", rounds=4),
                role="special_user",
            )
        )
        with pytest.raises(AccountInactive):
            make_guard().login("lonely", "LonelyPass1!")

    def test_tenant_code_selects_tenant_for_admin(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("admin", passwords["admin"], tenant_code="INITECH")
        assert result.tenant.id == seed.initech.id

    @pytest.mark.parametrize("tenant_code", ["INITECH", "UMBRELLA", "NOPE"])
    def test_tenant_code_not_accessible_is_invalid_credentials(
        self, make_guard, seed, passwords, tenant_code
    ) -> None:
        with pytest.raises(InvalidCredentials):
            make_guard().login("special", passwords["special"], tenant_code=tenant_code)

    def test_standard_user_tenant_code_ignores_associations(
        self, make_guard, seed, passwords, db_session
    ) -> None:
        TenantRepository(db_session).add_association(seed.standard.id, seed.initech.id)

        with pytest.raises(InvalidCredentials):
            make_guard().login("standard", passwords["standard"], tenant_code="INITECH")
        result = make_guard().login("standard", passwords["standard"], tenant_code="ACME")
        assert result.tenant.id == seed.acme.id

    def test_tenant_code_for_suspended_tenant(self, make_guard, seed, passwords) -> None:
        with pytest.raises(AccountInactive):
            make_guard().login("special", passwords["special"], tenant_code="GLOBEX")

    def test_admin_tenant_list_includes_inactive_but_not_deleted(self, make_guard, seed, passwords) -> None:
        result = make_guard().login("admin", passwords["admin"])
        ids = [tenant.id for tenant in result.tenants]
        assert ids == [seed.acme.id, seed.globex.id, seed.initech.id]


class TestSessionBinding:
    def test_session_id_changes_on_login(self, make_guard, seed, passwords, session_store) -> None:
        guard = make_guard()
        guard.init_session()
        pre_login_id = guard.session.session_id

        result = guard.login("admin", passwords["admin"])

        assert result.session_id != pre_login_id
        assert session_store.load(pre_login_id) is None
        stored = session_store.load(result.session_id)
        assert stored.user_id == seed.admin.id
        assert stored.current_tenant_id == seed.acme.id
        assert stored.role == "admin"

    def test_login_issues_csrf_token(self, make_guard, seed, passwords) -> None:
        guard = make_guard()
        result = guard.login("admin", passwords["admin"])

        assert re.fullmatch(r"[0-9a-f]{64}", result.csrf_token)
        assert guard.validate_csrf_token(result.csrf_token)

    def test_failed_login_leaves_session_anonymous(self, make_guard, seed) -> None:
        guard = make_guard()
        with pytest.raises(InvalidCredentials):
            guard.login("admin", "wrong")
        assert not guard.is_authenticated()

    def test_login_writes_activity(self, make_guard, seed, passwords, db_session) -> None:
        with pytest.raises(InvalidCredentials):
            make_guard().login("admin", "wrong")
        make_guard().login("admin", passwords["admin"])

        success = _activity(db_session, "login.success")
        failed = _activity(db_session, "login.failed")
        assert len(success) == 1
        assert success[0].user_id == seed.admin.id
        assert success[0].tenant_id == seed.acme.id
        assert success[0].session_ref is not None
        assert len(failed) == 1
        assert failed[0].event_meta == {"reason": "bad_password"}
