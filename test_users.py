"""
Tests for user management rules.
"""

import sqlite3

import pytest

from shoporbit.auth import (
    ConflictError,
    ForbiddenError,
    InvalidRefreshTokenError,
    NotFoundError,
    ValidationError,
)
from shoporbit.auth.passwords import verify_password
from shoporbit.auth.users import UserDirectory


class TestCreate:
    """Test account creation."""

    def test_create_user(self, services, roles_by_key):
        user = services.users.create_user(
            "  New.Person@Shop.Test ", "newpass12", "New Person", roles_by_key["sales_agent"].role_id
        )

        assert user.email == "new.person@shop.test"
        assert user.status.value == "active"
        assert user.role_key == "sales_agent"
        assert verify_password("newpass12", user.password_hash)

    def test_duplicate_email_case_insensitive(self, services, sales_agent, roles_by_key):
        with pytest.raises(ConflictError):
            services.users.create_user(
                "AGENT@shop.test", "anotherpass", "Copy", roles_by_key["sales_agent"].role_id
            )

    @pytest.mark.parametrize("email", ["", "no-at-sign", "a@b", "two@@shop.test"])
    def test_invalid_email(self, services, roles_by_key, email):
        with pytest.raises(ValidationError):
            services.users.create_user(email, "password1", "Name", roles_by_key["sales_agent"].role_id)

    def test_short_password(self, services, roles_by_key):
        with pytest.raises(ValidationError):
            services.users.create_user("short@shop.test", "abc", "Name", roles_by_key["sales_agent"].role_id)

    def test_unknown_role(self, services):
        with pytest.raises(ValidationError):
            services.users.create_user("x@shop.test", "password1", "Name", "no-such-role")

    def test_to_dict_hides_hash(self, sales_agent):
        data = sales_agent.to_dict()

        assert data["email"] == "agent@shop.test"
        assert data["name"] == "Sam Agent"
        assert data["role"]["key"] == "sales_agent"
        assert not any("password" in key.lower() for key in data)


class TestList:
    """Test listing and filtering."""

    def test_pagination(self, services, roles_by_key):
        for i in range(5):
            services.users.create_user(
                f"user{i}@shop.test", "password1", f"User {i}", roles_by_key["sales_agent"].role_id
            )

        users, pagination = services.users.list_users(page=2, limit=4)

        assert len(users) == 2
        assert pagination == {"total": 6, "page": 2, "limit": 4, "totalPages": 2}

    def test_filters(self, services, admin, sales_agent, roles_by_key):
        users, _ = services.users.list_users(role_id=roles_by_key["sales_agent"].role_id)
        assert [u.user_id for u in users] == [sales_agent.user_id]

        users, _ = services.users.list_users(search="Sam")
        assert [u.user_id for u in users] == [sales_agent.user_id]

        services.users.update_user(sales_agent.user_id, {"status": "inactive"}, acting_user_id=admin.user_id)
        users, pagination = services.users.list_users(status="inactive")
        assert [u.user_id for u in users] == [sales_agent.user_id]
        assert pagination["total"] == 1

    def test_limit_bounds(self, services):
        with pytest.raises(ValidationError):
            services.users.list_users(limit=101)
        with pytest.raises(ValidationError):
            services.users.list_users(page=0)

    def test_empty_result(self, services):
        users, pagination = services.users.list_users(search="nobody-matches")
        assert users == []
        assert pagination["totalPages"] == 0

    def test_search_wildcards_match_literally(self, services, sales_agent, roles_by_key):
        role_id = roles_by_key["sales_agent"].role_id
        underscored = services.users.create_user("under@shop.test", "password1", "Under_Score", role_id)
        percent = services.users.create_user("quota@shop.test", "password1", "Quota 100%", role_id)

        users, _ = services.users.list_users(search="_")
        assert [u.user_id for u in users] == [underscored.user_id]

        users, _ = services.users.list_users(search="%")
        assert [u.user_id for u in users] == [percent.user_id]

        users, _ = services.users.list_users(search="r_S")
        assert [u.user_id for u in users] == [underscored.user_id]


class TestUpdate:
    """Test updates and self-protection."""

    def test_update_fields(self, services, admin, sales_agent):
        user = services.users.update_user(
            sales_agent.user_id,
            {"full_name": "Samantha Agent", "email": "Samantha@Shop.Test"},
            acting_user_id=admin.user_id,
        )

        assert user.full_name == "Samantha Agent"
        assert user.email == "samantha@shop.test"

    def test_empty_patch(self, services, admin, sales_agent):
        with pytest.raises(ValidationError):
            services.users.update_user(sales_agent.user_id, {}, acting_user_id=admin.user_id)

    def test_email_conflict(self, services, admin, sales_agent):
        with pytest.raises(ConflictError):
            services.users.update_user(sales_agent.user_id, {"email": "ADMIN@shop.test"}, acting_user_id=admin.user_id)

    def test_cannot_change_own_role_or_status(self, services, second_admin, roles_by_key):
        with pytest.raises(ForbiddenError):
            services.users.update_user(
                second_admin.user_id,
                {"role_id": roles_by_key["sales_agent"].role_id},
                acting_user_id=second_admin.user_id,
            )
        with pytest.raises(ForbiddenError):
            services.users.update_user(second_admin.user_id, {"status": "inactive"}, acting_user_id=second_admin.user_id)

    def test_can_change_own_name(self, services, admin):
        user = services.users.update_user(admin.user_id, {"full_name": "Root"}, acting_user_id=admin.user_id)
        assert user.full_name == "Root"

    def test_invalid_status(self, services, admin, sales_agent):
        with pytest.raises(ValidationError):
            services.users.update_user(sales_agent.user_id, {"status": "banned"}, acting_user_id=admin.user_id)

    def test_missing_user(self, services, admin):
        with pytest.raises(NotFoundError):
            services.users.update_user("missing", {"full_name": "X"}, acting_user_id=admin.user_id)

    @pytest.mark.parametrize("patch", [{"password": "sneaky-pass"}, {"full_name": "Sam", "is_admin": True}])
    def test_unknown_fields_rejected(self, services, admin, sales_agent, patch):
        with pytest.raises(ValidationError) as exc:
            services.users.update_user(sales_agent.user_id, patch, acting_user_id=admin.user_id)
        assert exc.value.message == "No valid fields to update"

        user = services.users.get_user(sales_agent.user_id)
        assert user.full_name == sales_agent.full_name
        assert verify_password("agentpass1", user.password_hash)


class TestLastAdmin:
    """Test that at least one active admin always remains."""

    def test_demoting_last_admin_refused(self, services, admin, second_admin, roles_by_key):
        # With two admins, one may be demoted
        services.users.update_user(
            second_admin.user_id,
            {"role_id": roles_by_key["sales_agent"].role_id},
            acting_user_id=admin.user_id,
        )

        # Now admin is the only one; a third party may not demote or suspend it
        helper = services.users.create_user(
            "helper@shop.test", "helperpass", "Helper", roles_by_key["sales_agent"].role_id
        )
        with pytest.raises(ForbiddenError) as exc:
            services.users.update_user(admin.user_id, {"status": "suspended"}, acting_user_id=helper.user_id)
        assert exc.value.message == "Cannot remove the last active admin"

    def test_delete_last_admin_refused(self, services, admin, sales_agent):
        with pytest.raises(ForbiddenError) as exc:
            services.users.delete_user(admin.user_id, acting_user_id=sales_agent.user_id)
        assert exc.value.message == "Cannot delete the last admin user"

    def test_delete_admin_when_another_exists(self, services, admin, second_admin):
        services.users.delete_user(second_admin.user_id, acting_user_id=admin.user_id)

        with pytest.raises(NotFoundError):
            services.users.get_user(second_admin.user_id)

    def test_inactive_admin_does_not_count(self, services, admin, second_admin):
        services.users.update_user(second_admin.user_id, {"status": "inactive"}, acting_user_id=admin.user_id)

        with pytest.raises(ForbiddenError):
            services.users.delete_user(admin.user_id, acting_user_id=second_admin.user_id)


class TestDelete:
    """Test deletion."""

    def test_cannot_delete_self(self, services, admin, second_admin):
        """Self-deletion is refused even when other admins exist."""
        with pytest.raises(ForbiddenError) as exc:
            services.users.delete_user(admin.user_id, acting_user_id=admin.user_id)
        assert exc.value.message == "Cannot delete yourself"

    def test_delete_missing(self, services, admin):
        with pytest.raises(NotFoundError):
            services.users.delete_user("missing", acting_user_id=admin.user_id)


class TestChangePassword:
    """Test password changes."""

    def test_change_password(self, services, sales_agent):
        services.users.change_password(sales_agent.user_id, "brandnewpass")

        user = services.users.get_user(sales_agent.user_id)
        assert verify_password("brandnewpass", user.password_hash)
        assert not verify_password("agentpass1", user.password_hash)

    def test_policy_applies(self, services, sales_agent):
        with pytest.raises(ValidationError):
            services.users.change_password(sales_agent.user_id, "short")

    def test_sessions_kept_by_default(self, services, sales_agent):
        pair = services.tokens.issue_token_pair(sales_agent)
        services.users.change_password(sales_agent.user_id, "brandnewpass")

        assert services.tokens.rotate_refresh_token(pair.refresh_token).user.user_id == sales_agent.user_id

    def test_sessions_revoked_when_configured(self, services, sales_agent):
        directory = UserDirectory(
            services.db,
            token_store=services.store,
            bcrypt_rounds=4,
            revoke_sessions_on_password_change=True,
        )
        pair = services.tokens.issue_token_pair(sales_agent)

        directory.change_password(sales_agent.user_id, "brandnewpass")

        with pytest.raises(InvalidRefreshTokenError):
            services.tokens.rotate_refresh_token(pair.refresh_token)

    def test_failed_revocation_keeps_old_password(self, services, sales_agent, monkeypatch):
        """The password update and session revocation commit together or not at all."""
        directory = UserDirectory(
            services.db,
            token_store=services.store,
            bcrypt_rounds=4,
            revoke_sessions_on_password_change=True,
        )
        pair = services.tokens.issue_token_pair(sales_agent)

        def broken_revoke(conn, user_id):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(services.store, "revoke_all_in_transaction", broken_revoke)
        with pytest.raises(sqlite3.OperationalError):
            directory.change_password(sales_agent.user_id, "brandnewpass")
        monkeypatch.undo()

        user = services.users.get_user(sales_agent.user_id)
        assert verify_password("agentpass1", user.password_hash)
        assert services.tokens.rotate_refresh_token(pair.refresh_token).user.user_id == sales_agent.user_id

    def test_revocation_requires_store(self, services):
        with pytest.raises(ValueError):
            UserDirectory(services.db, revoke_sessions_on_password_change=True)
