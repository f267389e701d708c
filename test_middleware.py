"""
Tests for the two-stage request gate and the login flow.
"""

import pytest

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD
from shoporbit.auth import (
    AuthManager,
    AuthenticationError,
    AuthorizationError,
    ForbiddenError,
    InactiveAccountError,
    InvalidCredentialsError,
    PermissionKey,
    TokenExpiredError,
    authenticate,
    authorize,
    authorize_any,
    optional_authenticate,
    require_admin,
)
from shoporbit.auth.middleware import extract_bearer_token


class TestExtractBearer:
    """Test Authorization header parsing."""

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc", "bearer abc"])
    def test_rejected_headers(self, header):
        assert extract_bearer_token(header) is None

    def test_bearer_token(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"


class TestGate:
    """Test authenticate then authorize."""

    def test_missing_header(self, services):
        result = authenticate(services.tokens, None)

        assert not result.ok
        assert isinstance(result.error, AuthenticationError)
        assert result.error.status_code == 401

    def test_invalid_token(self, services):
        result = authenticate(services.tokens, "Bearer not-a-token")
        assert isinstance(result.error, AuthenticationError)

    def test_expired_token(self, services, admin, clock):
        pair = services.tokens.issue_token_pair(admin)
        clock.advance(hours=1)

        result = authenticate(services.tokens, f"Bearer {pair.access_token}")
        assert isinstance(result.error, TokenExpiredError)

    def test_authorized(self, services, admin):
        pair = services.tokens.issue_token_pair(admin)

        context = authenticate(services.tokens, f"Bearer {pair.access_token}").unwrap()
        result = authorize(context, PermissionKey.DELETE_USERS)

        assert result.ok
        assert result.context.user_id == admin.user_id
        assert result.context.role_key == "admin"

    def test_missing_permission(self, services, sales_agent):
        pair = services.tokens.issue_token_pair(sales_agent)
        context = authenticate(services.tokens, f"Bearer {pair.access_token}").unwrap()

        result = authorize(context, PermissionKey.VIEW_USERS)

        assert isinstance(result.error, AuthorizationError)
        assert result.error.status_code == 403
        assert result.error.detail == {"required": "view_users"}
        with pytest.raises(AuthorizationError):
            result.unwrap()

    def test_authorize_requires_context(self):
        result = authorize(None, PermissionKey.VIEW_USERS)
        assert isinstance(result.error, AuthenticationError)

    def test_permission_snapshot_is_stale_until_refresh(self, services, admin, sales_agent, roles_by_key):
        """A role change takes effect on the next refresh, not on live access tokens."""
        pair = services.tokens.issue_token_pair(sales_agent)
        services.users.update_user(
            sales_agent.user_id, {"role_id": roles_by_key["admin"].role_id}, acting_user_id=admin.user_id
        )

        context = authenticate(services.tokens, f"Bearer {pair.access_token}").unwrap()
        assert not authorize(context, PermissionKey.VIEW_USERS).ok

        rotated = services.tokens.rotate_refresh_token(pair.refresh_token)
        context = authenticate(services.tokens, f"Bearer {rotated.access_token}").unwrap()
        assert authorize(context, PermissionKey.VIEW_USERS).ok


class TestGateVariants:
    """Test the any-of, admin-only and optional stages."""

    def _context(self, services, user):
        pair = services.tokens.issue_token_pair(user)
        return authenticate(services.tokens, f"Bearer {pair.access_token}").unwrap()

    def test_any_of_one_granted(self, services, sales_agent):
        context = self._context(services, sales_agent)
        granted = next(iter(context.permissions))

        result = authorize_any(context, [PermissionKey.DELETE_USERS, granted])

        assert result.ok
        assert result.context == context

    def test_any_of_none_granted(self, services, sales_agent):
        context = self._context(services, sales_agent)

        result = authorize_any(context, [PermissionKey.VIEW_USERS, PermissionKey.DELETE_ROLES])

        assert isinstance(result.error, AuthorizationError)
        assert result.error.status_code == 403
        assert result.error.detail == {"required": "view_users,delete_roles"}

    def test_any_of_requires_context_and_keys(self, services, admin):
        assert isinstance(authorize_any(None, [PermissionKey.VIEW_USERS]).error, AuthenticationError)
        with pytest.raises(ValueError):
            authorize_any(self._context(services, admin), [])

    def test_require_admin(self, services, admin, sales_agent):
        assert require_admin(self._context(services, admin)).ok

        result = require_admin(self._context(services, sales_agent))
        assert isinstance(result.error, ForbiddenError)
        assert result.error.status_code == 403
        assert result.error.message == "Administrator access required"

        assert isinstance(require_admin(None).error, AuthenticationError)

    def test_optional_authenticate(self, services, admin, clock):
        pair = services.tokens.issue_token_pair(admin)

        context = optional_authenticate(services.tokens, f"Bearer {pair.access_token}")
        assert context.user_id == admin.user_id

        assert optional_authenticate(services.tokens, None) is None
        assert optional_authenticate(services.tokens, "Bearer garbage") is None
        clock.advance(hours=1)
        assert optional_authenticate(services.tokens, f"Bearer {pair.access_token}") is None


class TestLogin:
    """Test the login flow."""

    def test_seeded_admin_login(self, services):
        pair = services.auth.login(ADMIN_EMAIL, ADMIN_PASSWORD)

        snapshot = pair.user_snapshot()
        assert snapshot["role"]["key"] == "admin"
        assert "view_users" in snapshot["permissions"]
        assert snapshot["lastLoginAt"] is not None

    def test_email_case_insensitive(self, services):
        assert services.auth.login("ADMIN@Shop.Test", ADMIN_PASSWORD).user.email == ADMIN_EMAIL

    def test_wrong_password_and_unknown_email_look_alike(self, services):
        with pytest.raises(InvalidCredentialsError) as wrong:
            services.auth.login(ADMIN_EMAIL, "wrong-password")
        with pytest.raises(InvalidCredentialsError) as unknown:
            services.auth.login("nobody@shop.test", "wrong-password")

        assert wrong.value.message == unknown.value.message == "Invalid credentials"

    def test_unknown_email_hash_matches_configured_cost(self, services, admin):
        """The stand-in hash checked for unknown emails costs as much as a real one."""
        assert services.auth.dummy_hash[:7] == admin.password_hash[:7] == "$2b$04$"

        manager = AuthManager(services.db, services.tokens, services.users, services.resolver, bcrypt_rounds=5)
        assert manager.dummy_hash.startswith("$2b$05$")
        assert manager.dummy_hash is manager.dummy_hash

    def test_inactive_account(self, services, admin, sales_agent):
        services.users.update_user(sales_agent.user_id, {"status": "suspended"}, acting_user_id=admin.user_id)

        with pytest.raises(InactiveAccountError):
            services.auth.login("agent@shop.test", "agentpass1")

    def test_inactive_account_wrong_password(self, services, admin, sales_agent):
        """Status is only revealed after the password checks out."""
        services.users.update_user(sales_agent.user_id, {"status": "inactive"}, acting_user_id=admin.user_id)

        with pytest.raises(InvalidCredentialsError):
            services.auth.login("agent@shop.test", "not-the-password")

    def test_current_user_for_deleted_account(self, services, admin, sales_agent):
        services.users.delete_user(sales_agent.user_id, acting_user_id=admin.user_id)

        with pytest.raises(AuthenticationError):
            services.auth.current_user(sales_agent.user_id)
