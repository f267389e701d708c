"""
Auth data models.

Data classes for users, roles, permissions, and refresh tokens.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class UserStatus(str, Enum):
    """Account status. Only ACTIVE accounts may authenticate."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Permission:
    """
    Seeded permission.

    Attributes:
        permission_id: Unique permission identifier
        key: Stable permission key (e.g., "view_users")
        resource: Logical grouping (e.g., "users")
        action: One of view/create/edit/delete
        description: Human-readable description
    """
    permission_id: str
    key: str
    resource: str
    action: str
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.permission_id,
            "key": self.key,
            "resource": self.resource,
            "action": self.action,
            "description": self.description,
        }


@dataclass
class Role:
    """
    User role for RBAC.

    Attributes:
        role_id: Unique role identifier
        name: Display name (e.g., "Sales Agent")
        key: Machine identifier (e.g., "sales_agent")
        description: Human-readable description
        is_system: System roles are immutable
        created_at: Creation timestamp
        updated_at: Last modification timestamp
        permissions: Granted permissions (populated on detail reads)
        permission_count: Number of granted permissions (populated on list reads)
        user_count: Number of users holding the role (populated on list reads)
    """
    role_id: str
    name: str
    key: str
    description: Optional[str]
    is_system: bool
    created_at: datetime
    updated_at: datetime
    permissions: List[Permission] = field(default_factory=list)
    permission_count: int = 0
    user_count: int = 0

    def to_dict(self, include_permissions: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.role_id,
            "name": self.name,
            "key": self.key,
            "description": self.description,
            "isSystemRole": self.is_system,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_permissions:
            data["permissions"] = [p.to_dict() for p in self.permissions]
        else:
            data["permissionCount"] = self.permission_count
            data["userCount"] = self.user_count
        return data


@dataclass
class User:
    """
    User account joined with its role.

    Attributes:
        user_id: Unique user identifier (UUID)
        email: Lower-cased email address
        password_hash: bcrypt hash, never serialized
        full_name: Display name
        status: Account status
        role_id: Assigned role
        role_key: Key of the assigned role
        role_name: Name of the assigned role
        created_at: Account creation timestamp
        updated_at: Last modification timestamp
        last_login_at: Last successful login
    """
    user_id: str
    email: str
    password_hash: str
    full_name: str
    status: UserStatus
    role_id: str
    role_key: str
    role_name: str
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.user_id,
            "email": self.email,
            "name": self.full_name,
            "status": self.status.value,
            "role": {
                "id": self.role_id,
                "name": self.role_name,
                "key": self.role_key,
            },
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "lastLoginAt": _iso(self.last_login_at),
        }


@dataclass
class RefreshToken:
    """
    Persisted refresh token record.

    The opaque identifier handed to clients is never stored; only its hash.

    Attributes:
        token_id: Row identifier
        user_id: Owning user
        token_hash: SHA-256 hex digest of the identifier
        expires_at: Expiry timestamp
        created_at: Creation timestamp
        revoked_at: Revocation timestamp, None while live
    """
    token_id: str
    user_id: str
    token_hash: str
    expires_at: datetime
    created_at: datetime
    revoked_at: Optional[datetime] = None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None
