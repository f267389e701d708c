"""
Client-side authentication helper.

Handles token storage, login, and transparent access token refresh against
the Shop Orbit API.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import aiohttp
from loguru import logger


API_PREFIX = "/api/v1"


class ClientAuthError(Exception):
    """Raised when the server rejects login or a refresh attempt."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.message = message
        self.status = status


class AuthClient:
    """
    HTTP client that keeps a token pair and refreshes it on expiry.

    A request that comes back 401 triggers exactly one refresh; if the
    refresh fails, stored tokens are cleared and the 401 is returned.
    """

    def __init__(
        self,
        base_url: str,
        token_file: Optional[Path] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize client.

        Args:
            base_url: Server root URL, e.g. http://localhost:3001
            token_file: Path to file storing tokens (default: ~/.shoporbit_token)
            session: Existing ClientSession to use (not closed by this client)
        """
        if token_file is None:
            token_file = Path.home() / ".shoporbit_token"

        self.base_url = base_url.rstrip("/")
        self.token_file = Path(token_file)
        self._session = session
        self._owns_session = session is None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None

    async def __aenter__(self) -> "AuthClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ========================================================================
    # Token storage
    # ========================================================================

    @property
    def access_token(self) -> Optional[str]:
        if self._access_token is None:
            self.load_tokens()
        return self._access_token

    @property
    def refresh_token(self) -> Optional[str]:
        if self._refresh_token is None:
            self.load_tokens()
        return self._refresh_token

    def load_tokens(self) -> bool:
        """
        Load tokens from file.

        Returns:
            True if an access token was found
        """
        if not self.token_file.exists():
            return False

        try:
            with open(self.token_file, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load tokens: {e}")
            return False

        self._access_token = data.get("access_token")
        self._refresh_token = data.get("refresh_token")
        return self._access_token is not None

    def save_tokens(self, access_token: str, refresh_token: str) -> None:
        """Persist the token pair with owner-only permissions."""
        self.token_file.parent.mkdir(parents=True, exist_ok=True)

        with open(self.token_file, "w") as f:
            json.dump({"access_token": access_token, "refresh_token": refresh_token}, f, indent=2)
        self.token_file.chmod(0o600)  # rw-------

        self._access_token = access_token
        self._refresh_token = refresh_token
        logger.debug(f"Tokens saved to {self.token_file}")

    def clear_tokens(self) -> None:
        """Remove stored tokens."""
        self._access_token = None
        self._refresh_token = None
        if self.token_file.exists():
            self.token_file.unlink()
            logger.info("Tokens cleared")

    # ========================================================================
    # Auth flow
    # ========================================================================

    def _url(self, path: str) -> str:
        return f"{self.base_url}{API_PREFIX}{path}"

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Log in and store the returned tokens.

        Returns:
            User snapshot from the server

        Raises:
            ClientAuthError: Login rejected
        """
        async with self.session.post(self._url("/auth/login"), json={"email": email, "password": password}) as resp:
            body = await resp.json()

        if resp.status != 200 or not body.get("success"):
            raise ClientAuthError(body.get("error", "Login failed"), resp.status)

        data = body["data"]
        self.save_tokens(data["token"], data["refreshToken"])
        logger.success(f"Logged in as {data['user']['email']}")
        return data["user"]

    async def refresh(self) -> bool:
        """
        Rotate the stored refresh token.

        Returns:
            True on success; on failure tokens are cleared and False returned
        """
        refresh_token = self.refresh_token
        if not refresh_token:
            return False

        async with self.session.post(self._url("/auth/refresh"), json={"refreshToken": refresh_token}) as resp:
            body = await resp.json()

        if resp.status != 200 or not body.get("success"):
            logger.warning(f"Token refresh failed: {body.get('error')}")
            self.clear_tokens()
            return False

        self.save_tokens(body["data"]["token"], body["data"]["refreshToken"])
        logger.debug("Access token refreshed")
        return True

    async def _send(self, method: str, path: str, json_body: Any = None) -> Tuple[int, Dict[str, Any]]:
        headers = {}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        async with self.session.request(method, self._url(path), json=json_body, headers=headers) as resp:
            return resp.status, await resp.json()

    async def request(self, method: str, path: str, json_body: Any = None) -> Tuple[int, Dict[str, Any]]:
        """
        Send an authenticated request, refreshing once on 401.

        Args:
            method: HTTP method
            path: Path below /api/v1, e.g. "/users"
            json_body: Optional JSON body

        Returns:
            (status, response body)
        """
        status, body = await self._send(method, path, json_body)
        if status != 401 or not self.refresh_token:
            return status, body

        if not await self.refresh():
            return status, body
        return await self._send(method, path, json_body)

    async def logout(self) -> None:
        """Revoke the refresh token on the server and forget local tokens."""
        if self.refresh_token and self.access_token:
            status, body = await self._send("POST", "/auth/logout", {"refreshToken": self.refresh_token})
            if status == 401 and await self.refresh():
                status, body = await self._send("POST", "/auth/logout", {"refreshToken": self.refresh_token})
            if status != 200:
                logger.warning(f"Logout request failed: {body.get('error')}")
        self.clear_tokens()
