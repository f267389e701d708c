"""
User directory.

CRUD over accounts with the self-protection and last-admin rules.
"""

import math
import re
import sqlite3
import uuid
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from .database import USER_SELECT, AuthDatabase, row_to_user, to_db_time
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import User, UserStatus
from .passwords import DEFAULT_ROUNDS, MIN_PASSWORD_LENGTH, hash_password, validate_password
from .permissions import ADMIN_ROLE_KEY
from .token_store import RefreshTokenStore


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_PAGE_SIZE = 100
UPDATABLE_FIELDS = frozenset({"full_name", "email", "role_id", "status"})


def normalize_email(email: str) -> str:
    """
    Lower-case and validate an email address.

    Raises:
        ValidationError: If the address is not syntactically valid
    """
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Valid email is required")
    return email


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so the text matches literally under ESCAPE '\\'."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def parse_status(status: Any) -> UserStatus:
    try:
        return UserStatus(status)
    except ValueError:
        raise ValidationError("Invalid status") from None


class UserDirectory:
    """
    User account management.

    Passwords are hashed before they reach storage and are never logged.
    """

    def __init__(
        self,
        db: AuthDatabase,
        token_store: Optional[RefreshTokenStore] = None,
        bcrypt_rounds: int = DEFAULT_ROUNDS,
        min_password_length: int = MIN_PASSWORD_LENGTH,
        revoke_sessions_on_password_change: bool = False
    ):
        """
        Initialize directory.

        Args:
            db: Auth database
            token_store: Needed when revoke_sessions_on_password_change is set
            bcrypt_rounds: bcrypt cost factor
            min_password_length: Minimum password length
            revoke_sessions_on_password_change: Revoke live refresh tokens on password change
        """
        if revoke_sessions_on_password_change and token_store is None:
            raise ValueError("revoke_sessions_on_password_change requires a token store")

        self.db = db
        self.token_store = token_store
        self.bcrypt_rounds = bcrypt_rounds
        self.min_password_length = min_password_length
        self.revoke_sessions_on_password_change = revoke_sessions_on_password_change

    # ========================================================================
    # Reads
    # ========================================================================

    def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        search: str = "",
        status: Optional[str] = None,
        role_id: Optional[str] = None
    ) -> Tuple[List[User], Dict[str, int]]:
        """
        List users, newest first.

        Args:
            page: 1-based page number
            limit: Page size (1..100)
            search: Substring matched against name and email
            status: Filter by status
            role_id: Filter by role

        Returns:
            (users, pagination) where pagination has total/page/limit/totalPages
        """
        if page < 1:
            raise ValidationError("Page must be a positive integer")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

        conditions = []
        params: List[Any] = []
        if search:
            conditions.append("(u.full_name LIKE ? ESCAPE '\\' OR u.email LIKE ? ESCAPE '\\')")
            pattern = f"%{escape_like(search)}%"
            params += [pattern, pattern]
        if status:
            conditions.append("u.status = ?")
            params.append(parse_status(status).value)
        if role_id:
            conditions.append("u.role_id = ?")
            params.append(role_id)

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""

        with self.db.connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM users u{where}", params).fetchone()[0]
            rows = conn.execute(
                USER_SELECT + where + " ORDER BY u.created_at DESC LIMIT ? OFFSET ?",
                params + [limit, (page - 1) * limit]
            ).fetchall()

        pagination = {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": math.ceil(total / limit),
        }
        return [row_to_user(row) for row in rows], pagination

    def get_user(self, user_id: str) -> User:
        """
        Get user by ID.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.db.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ========================================================================
    # Mutations
    # ========================================================================

    def _require_user(self, conn: sqlite3.Connection, user_id: str) -> User:
        user = self.db.get_user_by_id(user_id, conn)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def _role_key(self, conn: sqlite3.Connection, role_id: str) -> str:
        row = conn.execute("SELECT role_key FROM roles WHERE id = ?", (role_id,)).fetchone()
        if row is None:
            raise ValidationError("Invalid role ID")
        return row["role_key"]

    def _email_taken(self, conn: sqlite3.Connection, email: str, exclude_id: str = "") -> bool:
        row = conn.execute(
            "SELECT 1 FROM users WHERE email = ? COLLATE NOCASE AND id != ?", (email, exclude_id)
        ).fetchone()
        return row is not None

    def create_user(self, email: str, password: str, full_name: str, role_id: str) -> User:
        """
        Create an active user.

        Args:
            email: Unique email (case-insensitive)
            password: Plain text password (hashed before storage)
            full_name: Display name
            role_id: Existing role

        Returns:
            Created user

        Raises:
            ValidationError: Bad email, password, name, or unknown role
            ConflictError: Email already exists
        """
        email = normalize_email(email)
        full_name = (full_name or "").strip()
        if not full_name:
            raise ValidationError("Full name is required")
        if not role_id:
            raise ValidationError("Role is required")
        validate_password(password, self.min_password_length)

        password_hash = hash_password(password, self.bcrypt_rounds)
        user_id = str(uuid.uuid4())

        with self.db.transaction() as conn:
            if self._email_taken(conn, email):
                raise ConflictError("Email already exists")
            self._role_key(conn, role_id)

            now = to_db_time(self.db.now())
            conn.execute("""
                INSERT INTO users (id, email, password_hash, full_name, role_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (user_id, email, password_hash, full_name, role_id, UserStatus.ACTIVE.value, now, now))

            user = self._require_user(conn, user_id)

        logger.info(f"User created: {email} ({user_id}) with role {user.role_key}")
        return user

    def update_user(self, user_id: str, patch: Dict[str, Any], acting_user_id: str) -> User:
        """
        Update a user's name, email, role, or status.

        Args:
            user_id: Target user
            patch: Any of "full_name", "email", "role_id", "status"
            acting_user_id: User performing the change

        Returns:
            Updated user

        Raises:
            NotFoundError: Target does not exist
            ForbiddenError: Changing own role/status, or no active admin would remain
            ValidationError: Empty patch or unknown fields, bad values, or unknown role
            ConflictError: New email already exists
        """
        unknown = sorted(set(patch) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError("No valid fields to update", {"unknown": unknown})

        changes = {k: v for k, v in patch.items() if v is not None}
        if not changes:
            raise ValidationError("No valid fields to update")

        with self.db.transaction() as conn:
            user = self._require_user(conn, user_id)

            if user_id == acting_user_id and ("role_id" in changes or "status" in changes):
                raise ForbiddenError("Cannot modify your own role or status")

            updates = []
            params: List[Any] = []

            if "full_name" in changes:
                full_name = str(changes["full_name"]).strip()
                if not full_name:
                    raise ValidationError("Full name cannot be empty")
                updates.append("full_name = ?")
                params.append(full_name)

            if "email" in changes:
                email = normalize_email(changes["email"])
                if self._email_taken(conn, email, exclude_id=user_id):
                    raise ConflictError("Email already exists")
                updates.append("email = ?")
                params.append(email)

            new_role_key = user.role_key
            if "role_id" in changes:
                new_role_key = self._role_key(conn, changes["role_id"])
                updates.append("role_id = ?")
                params.append(changes["role_id"])

            new_status = user.status
            if "status" in changes:
                new_status = parse_status(changes["status"])
                updates.append("status = ?")
                params.append(new_status.value)

            loses_admin = (
                user.role_key == ADMIN_ROLE_KEY
                and user.is_active
                and (new_role_key != ADMIN_ROLE_KEY or new_status != UserStatus.ACTIVE)
            )
            if loses_admin and self.db.count_active_admins(conn, ADMIN_ROLE_KEY, exclude_user_id=user_id) == 0:
                logger.warning(f"Refused update of {user_id}: it would leave no active admin")
                raise ForbiddenError("Cannot remove the last active admin")

            updates.append("updated_at = ?")
            params += [to_db_time(self.db.now()), user_id]
            conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", params)

            user = self._require_user(conn, user_id)

        logger.info(f"User updated: {user.email} ({user_id}) by {acting_user_id}")
        return user

    def delete_user(self, user_id: str, acting_user_id: str) -> None:
        """
        Delete a user and, by cascade, their refresh tokens.

        Raises:
            ForbiddenError: Self-deletion, or deleting the last active admin
            NotFoundError: Target does not exist
        """
        if user_id == acting_user_id:
            logger.warning(f"User {acting_user_id} attempted to delete themselves")
            raise ForbiddenError("Cannot delete yourself")

        with self.db.transaction() as conn:
            user = self._require_user(conn, user_id)

            if (
                user.role_key == ADMIN_ROLE_KEY
                and user.is_active
                and self.db.count_active_admins(conn, ADMIN_ROLE_KEY, exclude_user_id=user_id) == 0
            ):
                logger.warning(f"Refused deletion of {user_id}: last active admin")
                raise ForbiddenError("Cannot delete the last admin user")

            conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

        logger.info(f"User deleted: {user.email} ({user_id}) by {acting_user_id}")

    def change_password(self, user_id: str, new_password: str) -> None:
        """
        Set a new password.

        Live refresh tokens survive unless revoke_sessions_on_password_change is set,
        in which case they are revoked in the same transaction as the update.

        Raises:
            ValidationError: Password violates length rules
            NotFoundError: User does not exist
        """
        validate_password(new_password, self.min_password_length)
        password_hash = hash_password(new_password, self.bcrypt_rounds)

        with self.db.transaction() as conn:
            self._require_user(conn, user_id)
            conn.execute(
                "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
                (password_hash, to_db_time(self.db.now()), user_id)
            )
            revoked = 0
            if self.revoke_sessions_on_password_change:
                revoked = self.token_store.revoke_all_in_transaction(conn, user_id)

        logger.info(f"Password changed for user {user_id}")
        if revoked:
            logger.info(f"Revoked {revoked} refresh tokens for user {user_id}")

    def record_login(self, user_id: str) -> None:
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE users SET last_login_at = ? WHERE id = ?",
                (to_db_time(self.db.now()), user_id)
            )
