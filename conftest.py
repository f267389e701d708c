"""Root conftest.py for pytest.

Shared fixtures: a temporary SQLite database, a controllable clock, low
bcrypt cost, and an aiohttp test client around the full application.
"""

from datetime import datetime, timedelta, timezone

import pytest

from shoporbit.api import create_app
from shoporbit.auth import ADMIN_ROLE_KEY, build_auth_services
from shoporbit.config import ServerConfig


ADMIN_EMAIL = "admin@shop.test"
ADMIN_PASSWORD = "admin123"
START_TIME = datetime(2026, 1, 15, 9, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def config(tmp_path):
    return ServerConfig(
        database_path=tmp_path / "auth.db",
        jwt_secret="test-secret-key-with-enough-entropy-0123456789",
        bcrypt_rounds=4,
        seed_admin_email=ADMIN_EMAIL,
        seed_admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def services(config, clock):
    return build_auth_services(config, clock=clock)


@pytest.fixture
def roles_by_key(services):
    return {role.key: role for role in services.roles.list_roles()}


@pytest.fixture
def admin(services):
    return services.db.get_user_by_email(ADMIN_EMAIL)


@pytest.fixture
def sales_agent(services, roles_by_key):
    return services.users.create_user(
        "agent@shop.test", "agentpass1", "Sam Agent", roles_by_key["sales_agent"].role_id
    )


@pytest.fixture
def second_admin(services, roles_by_key):
    return services.users.create_user(
        "admin2@shop.test", "adminpass2", "Second Admin", roles_by_key[ADMIN_ROLE_KEY].role_id
    )


@pytest.fixture
async def client(aiohttp_client, services):
    return await aiohttp_client(create_app(services))


async def login(client, email: str, password: str) -> dict:
    """Log in through the API and return the response data."""
    resp = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert resp.status == 200
    body = await resp.json()
    return body["data"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
