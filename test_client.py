"""
Tests for the client-side authentication helper.
"""

import stat

import pytest

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD
from shoporbit.client import AuthClient, ClientAuthError


@pytest.fixture
def token_file(tmp_path):
    return tmp_path / "tokens" / "shoporbit.json"


@pytest.fixture
def auth_client(client, token_file):
    return AuthClient(str(client.make_url("")), token_file=token_file, session=client.session)


class TestTokenStorage:
    """Test token persistence."""

    def test_save_and_load(self, token_file):
        writer = AuthClient("http://localhost:3001", token_file=token_file)
        writer.save_tokens("access-1", "refresh-1")

        assert stat.S_IMODE(token_file.stat().st_mode) == 0o600

        reader = AuthClient("http://localhost:3001", token_file=token_file)
        assert reader.access_token == "access-1"
        assert reader.refresh_token == "refresh-1"

    def test_clear(self, token_file):
        helper = AuthClient("http://localhost:3001", token_file=token_file)
        helper.save_tokens("access-1", "refresh-1")

        helper.clear_tokens()

        assert not token_file.exists()
        assert helper.access_token is None

    def test_corrupt_file(self, token_file):
        token_file.parent.mkdir(parents=True)
        token_file.write_text("{broken")

        assert AuthClient("http://localhost:3001", token_file=token_file).load_tokens() is False


class TestClientFlow:
    """Test the client against a running application."""

    async def test_login_and_request(self, auth_client, token_file):
        user = await auth_client.login(ADMIN_EMAIL, ADMIN_PASSWORD)

        assert user["role"]["key"] == "admin"
        assert token_file.exists()

        status, body = await auth_client.request("GET", "/auth/me")
        assert status == 200
        assert body["data"]["email"] == ADMIN_EMAIL

    async def test_login_rejected(self, auth_client):
        with pytest.raises(ClientAuthError) as exc:
            await auth_client.login(ADMIN_EMAIL, "wrong-password")
        assert exc.value.status == 401

    async def test_refresh_on_expired_access_token(self, auth_client, clock):
        await auth_client.login(ADMIN_EMAIL, ADMIN_PASSWORD)
        first_refresh = auth_client.refresh_token
        clock.advance(minutes=61)

        status, _ = await auth_client.request("GET", "/auth/me")

        assert status == 200
        assert auth_client.refresh_token != first_refresh

    async def test_failed_refresh_clears_tokens(self, auth_client, clock, token_file):
        await auth_client.login(ADMIN_EMAIL, ADMIN_PASSWORD)
        clock.advance(days=8)

        status, _ = await auth_client.request("GET", "/auth/me")

        assert status == 401
        assert not token_file.exists()
        assert auth_client.access_token is None

    async def test_logout(self, auth_client, services, token_file):
        await auth_client.login(ADMIN_EMAIL, ADMIN_PASSWORD)
        refresh_token = auth_client.refresh_token

        await auth_client.logout()

        assert not token_file.exists()
        assert services.store.revoke(refresh_token) is False
