"""
Role and permission registry.

CRUD over custom roles and their permission assignments. System roles are
read-only.
"""

import re
import sqlite3
import uuid
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

from .database import AuthDatabase, row_to_role, to_db_time
from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import Role


_WHITESPACE = re.compile(r"\s+")

ROLE_LIST_QUERY = """
    SELECT r.*,
           COUNT(DISTINCT rp.permission_id) AS permission_count,
           COUNT(DISTINCT u.id) AS user_count
    FROM roles r
    LEFT JOIN role_permissions rp ON r.id = rp.role_id
    LEFT JOIN users u ON r.id = u.role_id
    GROUP BY r.id
    ORDER BY r.is_system_role DESC, r.role_name ASC
"""


def role_key_from_name(name: str) -> str:
    """Derive a role key: "Warehouse Lead" -> "warehouse_lead"."""
    return _WHITESPACE.sub("_", name.strip().lower())


class RoleRegistry:
    """
    Manages custom roles.

    Every mutation runs in one transaction, including the checks that guard it.
    """

    def __init__(self, db: AuthDatabase):
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    def list_roles(self) -> List[Role]:
        """
        Get all roles with permission and user counts.

        Returns:
            System roles first, then by name
        """
        with self.db.connect() as conn:
            rows = conn.execute(ROLE_LIST_QUERY).fetchall()
        return [row_to_role(row) for row in rows]

    def _get_role(self, conn: sqlite3.Connection, role_id: str) -> Role:
        row = conn.execute("SELECT * FROM roles WHERE id = ?", (role_id,)).fetchone()
        if row is None:
            raise NotFoundError("Role not found")
        role = row_to_role(row)
        role.permissions = self.db.get_role_permissions(role_id, conn)
        role.permission_count = len(role.permissions)
        return role

    def get_role(self, role_id: str) -> Role:
        """
        Get role by ID with its permissions.

        Raises:
            NotFoundError: If the role does not exist
        """
        with self.db.connect() as conn:
            return self._get_role(conn, role_id)

    def list_permissions(self) -> List[Dict[str, Any]]:
        """
        Get all permissions grouped by resource.

        Returns:
            [{"resource": ..., "permissions": [...]}, ...] ordered by resource
        """
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for permission in self.db.list_permissions():
            grouped.setdefault(permission.resource, []).append(permission.to_dict())

        return [
            {"resource": resource, "permissions": permissions}
            for resource, permissions in grouped.items()
        ]

    # ========================================================================
    # Mutations
    # ========================================================================

    def _check_name_available(self, conn: sqlite3.Connection, name: str, key: str, exclude_id: Optional[str] = None):
        row = conn.execute(
            "SELECT role_name, role_key FROM roles WHERE (role_name = ? COLLATE NOCASE OR role_key = ?) AND id != ?",
            (name, key, exclude_id or "")
        ).fetchone()
        if row is not None:
            if row["role_name"].lower() == name.lower():
                raise ConflictError("Role name already exists")
            raise ConflictError("Role key already exists")

    def _assign_permissions(self, conn: sqlite3.Connection, role_id: str, permission_ids: Iterable[str]):
        """Replace a role's permission set."""
        ids = list(dict.fromkeys(permission_ids))
        if not ids:
            raise ValidationError("At least one permission is required")

        placeholders = ",".join("?" * len(ids))
        found = {
            row["id"] for row in conn.execute(
                f"SELECT id FROM permissions WHERE id IN ({placeholders})", ids
            )
        }
        invalid = [pid for pid in ids if pid not in found]
        if invalid:
            raise ValidationError("Invalid permission ID", {"invalid": invalid})

        now = to_db_time(self.db.now())
        conn.execute("DELETE FROM role_permissions WHERE role_id = ?", (role_id,))
        conn.executemany(
            "INSERT INTO role_permissions (role_id, permission_id, created_at) VALUES (?, ?, ?)",
            [(role_id, pid, now) for pid in ids]
        )

    def create_role(self, name: str, permission_ids: List[str], description: Optional[str] = None) -> Role:
        """
        Create a custom role.

        Args:
            name: Unique role name
            permission_ids: At least one valid permission ID
            description: Optional description

        Returns:
            Created role with permissions

        Raises:
            ValidationError: Blank name, no permissions, or unknown permission IDs
            ConflictError: Name or derived key already taken
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name is required")
        if not permission_ids:
            raise ValidationError("At least one permission is required")

        key = role_key_from_name(name)
        role_id = str(uuid.uuid4())

        with self.db.transaction() as conn:
            self._check_name_available(conn, name, key)

            now = to_db_time(self.db.now())
            conn.execute("""
                INSERT INTO roles (id, role_name, role_key, description, is_system_role, created_at, updated_at)
                VALUES (?, ?, ?, ?, 0, ?, ?)
            """, (role_id, name, key, description, now, now))

            self._assign_permissions(conn, role_id, permission_ids)
            role = self._get_role(conn, role_id)

        logger.info(f"Role created: {name} ({role_id}) with {len(role.permissions)} permissions")
        return role

    def update_role(self, role_id: str, patch: Dict[str, Any]) -> Role:
        """
        Update a custom role.

        Args:
            role_id: Role ID
            patch: Any of "name", "description", "permission_ids"

        Returns:
            Updated role

        Raises:
            NotFoundError: Role does not exist
            ForbiddenError: Role is a system role
            ValidationError: Blank name or empty/invalid permission list
            ConflictError: New name already taken
        """
        with self.db.transaction() as conn:
            role = self._get_role(conn, role_id)
            if role.is_system:
                logger.warning(f"Refused modification of system role {role.key}")
                raise ForbiddenError("Cannot modify system roles")

            updates = []
            params: List[Any] = []

            if patch.get("name") is not None:
                name = patch["name"].strip()
                if not name:
                    raise ValidationError("Role name cannot be empty")
                key = role_key_from_name(name)
                self._check_name_available(conn, name, key, exclude_id=role_id)
                updates += ["role_name = ?", "role_key = ?"]
                params += [name, key]

            if "description" in patch:
                updates.append("description = ?")
                params.append(patch["description"])

            if patch.get("permission_ids") is not None:
                self._assign_permissions(conn, role_id, patch["permission_ids"])

            updates.append("updated_at = ?")
            params += [to_db_time(self.db.now()), role_id]
            conn.execute(f"UPDATE roles SET {', '.join(updates)} WHERE id = ?", params)

            role = self._get_role(conn, role_id)

        logger.info(f"Role updated: {role.name} ({role_id})")
        return role

    def delete_role(self, role_id: str) -> None:
        """
        Delete a custom role with no assigned users.

        Raises:
            NotFoundError: Role does not exist
            ForbiddenError: Role is a system role
            ConflictError: Users are still assigned to the role
        """
        with self.db.transaction() as conn:
            role = self._get_role(conn, role_id)
            if role.is_system:
                logger.warning(f"Refused deletion of system role {role.key}")
                raise ForbiddenError("Cannot delete system roles")

            user_count = conn.execute(
                "SELECT COUNT(*) FROM users WHERE role_id = ?", (role_id,)
            ).fetchone()[0]
            if user_count > 0:
                raise ConflictError(
                    "Cannot delete role with assigned users",
                    {"userCount": user_count}
                )

            conn.execute("DELETE FROM roles WHERE id = ?", (role_id,))

        logger.info(f"Role deleted: {role.name} ({role_id})")
