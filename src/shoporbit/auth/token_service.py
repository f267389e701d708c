"""
Token issuance, verification, rotation and revocation.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List

from loguru import logger

from .database import AuthDatabase
from .errors import InactiveAccountError, InvalidRefreshTokenError, RefreshTokenNotFoundError
from .jwt_handler import JWTHandler, TokenPayload
from .models import RefreshToken, User
from .permissions import PermissionResolver
from .token_store import RefreshTokenStore


@dataclass
class TokenPair:
    """
    Result of issuing or rotating tokens.

    Attributes:
        access_token: Signed JWT
        refresh_token: Opaque refresh identifier
        user: User the tokens were issued to
        permissions: Permission keys embedded in the access token
    """
    access_token: str
    refresh_token: str
    user: User
    permissions: List[str] = field(default_factory=list)

    def user_snapshot(self) -> Dict[str, Any]:
        data = self.user.to_dict()
        data["permissions"] = list(self.permissions)
        return data


class TokenService:
    """
    Issues and rotates access/refresh token pairs.

    Combines the JWT handler, the refresh token store, and the permission
    resolver.
    """

    def __init__(
        self,
        db: AuthDatabase,
        jwt_handler: JWTHandler,
        store: RefreshTokenStore,
        resolver: PermissionResolver
    ):
        self.db = db
        self.jwt = jwt_handler
        self.store = store
        self.resolver = resolver

    def issue_token_pair(self, user: User) -> TokenPair:
        """
        Mint an access token and a persisted refresh token.

        Args:
            user: Authenticated user

        Returns:
            TokenPair with the permission snapshot used in the access token
        """
        permissions = self.resolver.permissions_for_role(user.role_id)
        access_token = self.jwt.create_access_token(
            user_id=user.user_id,
            email=user.email,
            role_key=user.role_key,
            permissions=permissions
        )
        refresh_token = self.store.create(user.user_id)

        return TokenPair(access_token, refresh_token, user, permissions)

    def verify_access_token(self, token: str) -> TokenPayload:
        """
        Verify an access token.

        Args:
            token: JWT string

        Returns:
            Decoded claims

        Raises:
            InvalidTokenError: Malformed token or bad signature
            TokenExpiredError: Token past its expiry
        """
        return self.jwt.verify_token(token)

    def _owner_is_active(self, conn: sqlite3.Connection, record: RefreshToken) -> bool:
        user = self.db.get_user_by_id(record.user_id, conn)
        return user is not None and user.is_active

    def rotate_refresh_token(self, identifier: str) -> TokenPair:
        """
        Exchange a live refresh token for a new pair.

        The old identifier is revoked and its replacement persisted in the
        same transaction. A second rotation with the same identifier fails.

        Args:
            identifier: Refresh token presented by the client

        Returns:
            New TokenPair

        Raises:
            InvalidRefreshTokenError: Unknown, revoked or expired identifier
            InactiveAccountError: Owner is no longer active
        """
        try:
            record, new_identifier = self.store.consume_and_replace(
                identifier,
                accept=self._owner_is_active
            )
        except RefreshTokenNotFoundError as e:
            raise InvalidRefreshTokenError() from e

        if new_identifier is None:
            logger.warning(f"Refresh refused for inactive user {record.user_id}")
            raise InactiveAccountError()

        user = self.db.get_user_by_id(record.user_id)
        if user is None:
            # Deleted between the rotation commit and this read; the cascade removed the new token
            raise InvalidRefreshTokenError()

        permissions = self.resolver.permissions_for_role(user.role_id)
        access_token = self.jwt.create_access_token(
            user_id=user.user_id,
            email=user.email,
            role_key=user.role_key,
            permissions=permissions
        )

        logger.debug(f"Refresh token rotated for user {user.user_id}")
        return TokenPair(access_token, new_identifier, user, permissions)

    def revoke(self, identifier: str) -> None:
        """
        Revoke a refresh token. Unknown or already revoked identifiers are ignored.

        Args:
            identifier: Refresh token to revoke
        """
        if self.store.revoke(identifier):
            logger.debug("Refresh token revoked")

    def revoke_all_for_user(self, user_id: str) -> int:
        return self.store.revoke_all_for_user(user_id)

    def purge_expired(self) -> int:
        return self.store.purge_expired()
