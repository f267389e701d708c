"""
Persisted refresh token store.

Refresh tokens are opaque random identifiers. Only their SHA-256 digest is
stored, next to the owning user, an expiry, and a revocation timestamp.
"""

import hashlib
import secrets
import sqlite3
import uuid
from datetime import timedelta
from typing import Callable, Optional, Tuple

from loguru import logger

from .database import AuthDatabase, row_to_refresh_token, to_db_time
from .errors import RefreshTokenNotFoundError
from .models import RefreshToken


REFRESH_TOKEN_EXPIRE_DAYS = 7

AcceptFn = Callable[[sqlite3.Connection, RefreshToken], bool]


def hash_identifier(identifier: str) -> str:
    return hashlib.sha256(identifier.encode("utf-8")).hexdigest()


class RefreshTokenStore:
    """
    Durable table of outstanding refresh tokens.

    ``consume`` is a single conditional UPDATE run under ``BEGIN IMMEDIATE``:
    when several callers present the same identifier, exactly one sees a
    changed row and the rest get RefreshTokenNotFoundError.
    """

    def __init__(self, db: AuthDatabase, ttl: timedelta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)):
        """
        Initialize store.

        Args:
            db: Auth database
            ttl: Lifetime of newly created refresh tokens
        """
        self.db = db
        self.ttl = ttl

    def _insert(self, conn: sqlite3.Connection, user_id: str) -> str:
        identifier = secrets.token_urlsafe(48)
        now = self.db.now()
        conn.execute("""
            INSERT INTO refresh_tokens (id, user_id, token_hash, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?)
        """, (
            str(uuid.uuid4()),
            user_id,
            hash_identifier(identifier),
            to_db_time(now + self.ttl),
            to_db_time(now)
        ))
        return identifier

    def _consume(self, conn: sqlite3.Connection, identifier: str) -> RefreshToken:
        token_hash = hash_identifier(identifier)
        now = to_db_time(self.db.now())

        cursor = conn.execute("""
            UPDATE refresh_tokens
            SET revoked_at = ?
            WHERE token_hash = ? AND revoked_at IS NULL AND expires_at > ?
        """, (now, token_hash, now))

        row = conn.execute(
            "SELECT * FROM refresh_tokens WHERE token_hash = ?", (token_hash,)
        ).fetchone()

        if cursor.rowcount != 1:
            if row is None:
                logger.warning("Refresh attempted with unknown token")
            elif row["revoked_at"] is not None:
                logger.warning(f"Reuse of revoked refresh token for user {row['user_id']}")
            else:
                logger.info(f"Refresh attempted with expired token for user {row['user_id']}")
            raise RefreshTokenNotFoundError()

        return row_to_refresh_token(row)

    def create(self, user_id: str) -> str:
        """
        Create a refresh token for a user.

        Args:
            user_id: Owning user

        Returns:
            Opaque identifier to hand to the client
        """
        with self.db.transaction() as conn:
            identifier = self._insert(conn, user_id)
        logger.debug(f"Refresh token created for user {user_id}")
        return identifier

    def consume(self, identifier: str) -> RefreshToken:
        """
        Mark a live refresh token revoked and return its record.

        Args:
            identifier: Opaque identifier presented by the client

        Returns:
            The consumed record (now revoked)

        Raises:
            RefreshTokenNotFoundError: If absent, already revoked, or expired
        """
        with self.db.transaction() as conn:
            return self._consume(conn, identifier)

    def consume_and_replace(
        self,
        identifier: str,
        accept: Optional[AcceptFn] = None
    ) -> Tuple[RefreshToken, Optional[str]]:
        """
        Consume a refresh token and create its replacement in one transaction.

        Args:
            identifier: Opaque identifier presented by the client
            accept: Called inside the transaction with the consumed record;
                returning False keeps the old token revoked and skips the
                replacement

        Returns:
            (consumed record, new identifier or None if not accepted)

        Raises:
            RefreshTokenNotFoundError: If absent, already revoked, or expired
        """
        with self.db.transaction() as conn:
            record = self._consume(conn, identifier)
            if accept is not None and not accept(conn, record):
                return record, None
            return record, self._insert(conn, record.user_id)

    def revoke(self, identifier: str) -> bool:
        """
        Revoke a refresh token. Idempotent.

        Args:
            identifier: Opaque identifier

        Returns:
            True if a live token was revoked, False if unknown or already revoked
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("""
                UPDATE refresh_tokens SET revoked_at = ?
                WHERE token_hash = ? AND revoked_at IS NULL
            """, (to_db_time(self.db.now()), hash_identifier(identifier)))
            return cursor.rowcount > 0

    def revoke_all_in_transaction(self, conn: sqlite3.Connection, user_id: str) -> int:
        """Revoke a user's live tokens inside the caller's transaction."""
        cursor = conn.execute("""
            UPDATE refresh_tokens SET revoked_at = ?
            WHERE user_id = ? AND revoked_at IS NULL
        """, (to_db_time(self.db.now()), user_id))
        return cursor.rowcount

    def revoke_all_for_user(self, user_id: str) -> int:
        """
        Revoke every live refresh token of a user.

        Args:
            user_id: Owning user

        Returns:
            Number of tokens revoked
        """
        with self.db.transaction() as conn:
            revoked = self.revoke_all_in_transaction(conn, user_id)

        if revoked:
            logger.info(f"Revoked {revoked} refresh tokens for user {user_id}")
        return revoked

    def purge_expired(self) -> int:
        """
        Delete tokens past their expiry, revoked or not.

        Revoked tokens are kept until expiry so reuse can still be told
        apart from an unknown identifier.

        Returns:
            Number of rows deleted
        """
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM refresh_tokens WHERE expires_at <= ?",
                (to_db_time(self.db.now()),)
            )
            deleted = cursor.rowcount

        if deleted > 0:
            logger.info(f"Purged {deleted} expired refresh tokens")
        return deleted
