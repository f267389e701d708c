"""
Authentication manager.

Combines credential verification, the user directory and the token service
into the login / refresh / logout / current-user flow.
"""

from typing import Any, Dict, Optional

from loguru import logger

from .database import AuthDatabase
from .errors import AuthenticationError, InactiveAccountError, InvalidCredentialsError
from .passwords import DEFAULT_ROUNDS, hash_password, verify_password
from .permissions import PermissionResolver
from .token_service import TokenPair, TokenService
from .users import UserDirectory


# Checked when the email is unknown so both failure paths cost one bcrypt check
DUMMY_PASSWORD = "timing-equalizer"


class AuthManager:
    """
    User authentication flow.

    Provides:
    - Login with email and password
    - Token refresh and logout
    - Current user lookup
    """

    def __init__(
        self,
        db: AuthDatabase,
        tokens: TokenService,
        users: UserDirectory,
        resolver: PermissionResolver,
        bcrypt_rounds: int = DEFAULT_ROUNDS
    ):
        """
        Initialize manager.

        Args:
            db: Auth database
            tokens: Token service
            users: User directory
            resolver: Permission resolver
            bcrypt_rounds: Cost of stored password hashes, matched by the dummy hash
        """
        self.db = db
        self.tokens = tokens
        self.users = users
        self.resolver = resolver
        self.bcrypt_rounds = bcrypt_rounds
        self._dummy_hash: Optional[str] = None

    @property
    def dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = hash_password(DUMMY_PASSWORD, self.bcrypt_rounds)
        return self._dummy_hash

    def login(self, email: str, password: str) -> TokenPair:
        """
        Authenticate user and issue tokens.

        Args:
            email: Email address (case-insensitive)
            password: Plain text password

        Returns:
            TokenPair with the user snapshot

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            InactiveAccountError: Account is inactive or suspended
        """
        user = self.db.get_user_by_email(email or "")
        if user is None:
            verify_password(password or "", self.dummy_hash)
            logger.warning(f"Login failed: unknown email '{email}'")
            raise InvalidCredentialsError()

        if not verify_password(password or "", user.password_hash):
            logger.warning(f"Login failed: invalid password for '{user.email}'")
            raise InvalidCredentialsError()

        if not user.is_active:
            logger.warning(f"Login failed: account '{user.email}' is {user.status.value}")
            raise InactiveAccountError()

        self.users.record_login(user.user_id)
        pair = self.tokens.issue_token_pair(self.users.get_user(user.user_id))

        logger.info(f"User logged in: {user.email}")
        return pair

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token into a new pair."""
        return self.tokens.rotate_refresh_token(refresh_token)

    def logout(self, refresh_token: str, user_id: str) -> None:
        """
        Revoke the given refresh token.

        Args:
            refresh_token: Refresh token to revoke
            user_id: Authenticated caller, for the audit log
        """
        self.tokens.revoke(refresh_token)
        logger.info(f"User logged out: {user_id}")

    def current_user(self, user_id: str) -> Dict[str, Any]:
        """
        Fresh snapshot of the caller including role and permissions.

        Args:
            user_id: User ID from the access token

        Returns:
            User dict with a "permissions" list

        Raises:
            AuthenticationError: The account no longer exists
        """
        user = self.db.get_user_by_id(user_id)
        if user is None:
            raise AuthenticationError("User no longer exists")

        data = user.to_dict()
        data["permissions"] = self.resolver.permissions_for_role(user.role_id)
        return data
