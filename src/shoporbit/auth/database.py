"""
SQLite storage for users, roles, permissions, and refresh tokens.

Thread-safe: every write runs inside a ``BEGIN IMMEDIATE`` transaction while
holding an RLock, so a mutation is either fully applied or rolled back.
"""

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union

from loguru import logger

from .models import Permission, RefreshToken, Role, User, UserStatus
from .permissions import SYSTEM_ROLES, PermissionKey, permission_description


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """Serialize a datetime so that stored values sort chronologically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


SCHEMA = """
CREATE TABLE IF NOT EXISTS roles (
    id TEXT PRIMARY KEY,
    role_name TEXT UNIQUE NOT NULL,
    role_key TEXT UNIQUE NOT NULL,
    description TEXT,
    is_system_role INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT UNIQUE NOT NULL COLLATE NOCASE,
    password_hash TEXT NOT NULL,
    full_name TEXT NOT NULL,
    role_id TEXT NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('active', 'inactive', 'suspended')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT,
    FOREIGN KEY (role_id) REFERENCES roles(id) ON DELETE RESTRICT
);

CREATE TABLE IF NOT EXISTS permissions (
    id TEXT PRIMARY KEY,
    permission_key TEXT UNIQUE NOT NULL,
    resource TEXT NOT NULL,
    action TEXT NOT NULL CHECK (action IN ('view', 'create', 'edit', 'delete')),
    description TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS role_permissions (
    role_id TEXT NOT NULL,
    permission_id TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (role_id, permission_id),
    FOREIGN KEY (role_id) REFERENCES roles(id) ON DELETE CASCADE,
    FOREIGN KEY (permission_id) REFERENCES permissions(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS refresh_tokens (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    token_hash TEXT UNIQUE NOT NULL,
    expires_at TEXT NOT NULL,
    created_at TEXT NOT NULL,
    revoked_at TEXT,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_users_role_id ON users(role_id);
CREATE INDEX IF NOT EXISTS idx_users_status ON users(status);
CREATE INDEX IF NOT EXISTS idx_permissions_resource ON permissions(resource);
CREATE INDEX IF NOT EXISTS idx_role_permissions_permission_id ON role_permissions(permission_id);
CREATE INDEX IF NOT EXISTS idx_refresh_tokens_user_id ON refresh_tokens(user_id);
CREATE INDEX IF NOT EXISTS idx_refresh_tokens_expires_at ON refresh_tokens(expires_at);
"""

USER_SELECT = """
    SELECT u.id, u.email, u.password_hash, u.full_name, u.status, u.role_id,
           r.role_key, r.role_name, u.created_at, u.updated_at, u.last_login_at
    FROM users u
    JOIN roles r ON u.role_id = r.id
"""


def row_to_user(row: sqlite3.Row) -> User:
    return User(
        user_id=row["id"],
        email=row["email"],
        password_hash=row["password_hash"],
        full_name=row["full_name"],
        status=UserStatus(row["status"]),
        role_id=row["role_id"],
        role_key=row["role_key"],
        role_name=row["role_name"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        last_login_at=from_db_time(row["last_login_at"]),
    )


def row_to_role(row: sqlite3.Row) -> Role:
    keys = row.keys()
    return Role(
        role_id=row["id"],
        name=row["role_name"],
        key=row["role_key"],
        description=row["description"],
        is_system=bool(row["is_system_role"]),
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        permission_count=row["permission_count"] if "permission_count" in keys else 0,
        user_count=row["user_count"] if "user_count" in keys else 0,
    )


def row_to_permission(row: sqlite3.Row) -> Permission:
    return Permission(
        permission_id=row["id"],
        key=row["permission_key"],
        resource=row["resource"],
        action=row["action"],
        description=row["description"],
    )


def row_to_refresh_token(row: sqlite3.Row) -> RefreshToken:
    return RefreshToken(
        token_id=row["id"],
        user_id=row["user_id"],
        token_hash=row["token_hash"],
        expires_at=from_db_time(row["expires_at"]),
        created_at=from_db_time(row["created_at"]),
        revoked_at=from_db_time(row["revoked_at"]),
    )


class AuthDatabase:
    """
    Thread-safe auth database.

    Owns the schema, connection handling, seeding, and the read queries shared
    between the token service, role registry and user directory.
    """

    def __init__(self, db_path: Union[str, Path], clock: Clock = utc_now, busy_timeout: float = 10.0):
        """
        Initialize database.

        Args:
            db_path: Path to SQLite database file
            clock: Returns the current UTC time
            busy_timeout: Seconds to wait for another writer's lock
        """
        self.db_path = Path(db_path)
        self.clock = clock
        self.busy_timeout = busy_timeout
        self._lock = threading.RLock()
        self._init_db()

    def now(self) -> datetime:
        return self.clock()

    # ========================================================================
    # Connections
    # ========================================================================

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield an autocommit connection for reads."""
        conn = self._open()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection inside a write transaction.

        Commits on normal exit, rolls back if the block raises.
        """
        with self._lock:
            conn = self._open()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()

    def _init_db(self):
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock, self.connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)

        logger.info(f"Auth database initialized: {self.db_path}")

    # ========================================================================
    # Seeding
    # ========================================================================

    def seed(self, admin_email: str, admin_password_hash: str, admin_name: str = "System Administrator") -> bool:
        """
        Seed permissions, system roles, and the initial admin user.

        Skipped when any role already exists.

        Args:
            admin_email: Email for the initial admin
            admin_password_hash: bcrypt hash of the initial admin password
            admin_name: Display name for the initial admin

        Returns:
            True if data was seeded
        """
        with self.transaction() as conn:
            existing = conn.execute("SELECT COUNT(*) FROM roles").fetchone()[0]
            if existing > 0:
                logger.debug("Roles already exist, skipping seed")
                return False

            now = to_db_time(self.now())

            permission_ids = {}
            for key in PermissionKey:
                permission_id = str(uuid.uuid4())
                permission_ids[key] = permission_id
                conn.execute("""
                    INSERT INTO permissions (id, permission_key, resource, action, description, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (
                    permission_id,
                    key.value,
                    key.resource.value,
                    key.action.value,
                    permission_description(key),
                    now
                ))

            role_ids = {}
            for seed in SYSTEM_ROLES:
                role_id = str(uuid.uuid4())
                role_ids[seed.key] = role_id
                conn.execute("""
                    INSERT INTO roles (id, role_name, role_key, description, is_system_role, created_at, updated_at)
                    VALUES (?, ?, ?, ?, 1, ?, ?)
                """, (role_id, seed.name, seed.key, seed.description, now, now))

                conn.executemany(
                    "INSERT INTO role_permissions (role_id, permission_id, created_at) VALUES (?, ?, ?)",
                    [(role_id, permission_ids[key], now) for key in seed.permissions]
                )

            conn.execute("""
                INSERT INTO users (id, email, password_hash, full_name, role_id, status, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 'active', ?, ?)
            """, (
                str(uuid.uuid4()),
                admin_email.strip().lower(),
                admin_password_hash,
                admin_name,
                role_ids[SYSTEM_ROLES[0].key],
                now,
                now
            ))

        logger.info(
            f"Seeded {len(permission_ids)} permissions, {len(role_ids)} system roles "
            f"and admin user {admin_email}"
        )
        logger.warning("Change the default admin password after first login")
        return True

    # ========================================================================
    # Shared reads
    # ========================================================================

    def has_roles(self) -> bool:
        with self.connect() as conn:
            return conn.execute("SELECT 1 FROM roles LIMIT 1").fetchone() is not None

    def get_user_by_id(self, user_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[User]:
        """
        Get user by ID.

        Args:
            user_id: User ID
            conn: Reuse an open connection (e.g. inside a transaction)

        Returns:
            User object if found, None otherwise
        """
        if conn is not None:
            row = conn.execute(USER_SELECT + " WHERE u.id = ?", (user_id,)).fetchone()
            return row_to_user(row) if row else None

        with self.connect() as own:
            return self.get_user_by_id(user_id, own)

    def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email (case-insensitive).

        Args:
            email: Email address

        Returns:
            User object if found, None otherwise
        """
        with self.connect() as conn:
            row = conn.execute(
                USER_SELECT + " WHERE u.email = ? COLLATE NOCASE",
                (email.strip(),)
            ).fetchone()
        return row_to_user(row) if row else None

    def get_role_permission_keys(self, role_id: str) -> List[str]:
        """
        Get permission keys granted to a role.

        Args:
            role_id: Role ID

        Returns:
            Distinct keys ordered by resource, then action
        """
        with self.connect() as conn:
            rows = conn.execute("""
                SELECT DISTINCT p.permission_key, p.resource, p.action
                FROM permissions p
                JOIN role_permissions rp ON p.id = rp.permission_id
                WHERE rp.role_id = ?
                ORDER BY p.resource, p.action
            """, (role_id,)).fetchall()
        return [row["permission_key"] for row in rows]

    def list_permissions(self) -> List[Permission]:
        """Get all permissions ordered by resource, then action."""
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM permissions ORDER BY resource, action"
            ).fetchall()
        return [row_to_permission(row) for row in rows]

    def get_role_permissions(self, role_id: str, conn: sqlite3.Connection) -> List[Permission]:
        rows = conn.execute("""
            SELECT p.*
            FROM permissions p
            JOIN role_permissions rp ON p.id = rp.permission_id
            WHERE rp.role_id = ?
            ORDER BY p.resource, p.action
        """, (role_id,)).fetchall()
        return [row_to_permission(row) for row in rows]

    def count_active_admins(self, conn: sqlite3.Connection, admin_role_key: str, exclude_user_id: Optional[str] = None) -> int:
        """
        Count active users holding the administrative role.

        Args:
            conn: Open connection
            admin_role_key: Role key of the administrative role
            exclude_user_id: User to leave out of the count

        Returns:
            Number of active admins
        """
        query = """
            SELECT COUNT(*)
            FROM users u
            JOIN roles r ON u.role_id = r.id
            WHERE r.role_key = ? AND u.status = 'active'
        """
        params: list = [admin_role_key]
        if exclude_user_id is not None:
            query += " AND u.id != ?"
            params.append(exclude_user_id)
        return conn.execute(query, params).fetchone()[0]
