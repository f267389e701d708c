"""
Permission catalog and role permission resolution.

This module provides:
- The closed set of permission keys the system understands
- Seed definitions for permissions and system roles
- PermissionResolver, which derives a role's permission keys from storage
- Startup validation of the seeded permission table against the catalog
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Set, Tuple

from loguru import logger

if TYPE_CHECKING:
    from .database import AuthDatabase


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


class Resource(str, Enum):
    DASHBOARD = "dashboard"
    CRM = "crm"
    INQUIRIES = "inquiries"
    ORDERS = "orders"
    INVENTORY = "inventory"
    INVOICES = "invoices"
    REPORTS = "reports"
    USERS = "users"
    ROLES = "roles"


class PermissionKey(str, Enum):
    """
    Every permission key known to the system.

    Keys are "<action>_<resource>"; the seeded permissions table must match
    this enumeration exactly.
    """
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_CRM = "view_crm"
    VIEW_INQUIRIES = "view_inquiries"
    VIEW_ORDERS = "view_orders"
    VIEW_INVENTORY = "view_inventory"
    VIEW_INVOICES = "view_invoices"
    VIEW_REPORTS = "view_reports"

    # User management
    VIEW_USERS = "view_users"
    CREATE_USERS = "create_users"
    EDIT_USERS = "edit_users"
    DELETE_USERS = "delete_users"

    # Role management
    VIEW_ROLES = "view_roles"
    CREATE_ROLES = "create_roles"
    EDIT_ROLES = "edit_roles"
    DELETE_ROLES = "delete_roles"

    @property
    def action(self) -> Action:
        return Action(self.value.split("_", 1)[0])

    @property
    def resource(self) -> Resource:
        return Resource(self.value.split("_", 1)[1])


RESOURCE_DESCRIPTIONS: Dict[Resource, str] = {
    Resource.DASHBOARD: "Main dashboard overview",
    Resource.CRM: "Customer relationship management",
    Resource.INQUIRIES: "Product inquiries management",
    Resource.ORDERS: "Order processing and tracking",
    Resource.INVENTORY: "Product inventory management",
    Resource.INVOICES: "Invoice generation and management",
    Resource.REPORTS: "Business reporting and analytics",
    Resource.USERS: "User management",
    Resource.ROLES: "Role and permission management",
}

MANAGEMENT_DESCRIPTIONS: Dict[PermissionKey, str] = {
    PermissionKey.CREATE_USERS: "Create new users",
    PermissionKey.EDIT_USERS: "Edit user details",
    PermissionKey.DELETE_USERS: "Delete users",
    PermissionKey.CREATE_ROLES: "Create custom roles",
    PermissionKey.EDIT_ROLES: "Edit role permissions",
    PermissionKey.DELETE_ROLES: "Delete custom roles",
}


def permission_description(key: PermissionKey) -> str:
    if key in MANAGEMENT_DESCRIPTIONS:
        return MANAGEMENT_DESCRIPTIONS[key]
    return f"View {RESOURCE_DESCRIPTIONS[key.resource]}"


@dataclass(frozen=True)
class SystemRoleSeed:
    name: str
    key: str
    description: str
    permissions: Tuple[PermissionKey, ...]


ADMIN_ROLE_KEY = "admin"

SALES_AGENT_RESOURCES = (
    Resource.DASHBOARD,
    Resource.CRM,
    Resource.INQUIRIES,
    Resource.ORDERS,
    Resource.INVENTORY,
)

SYSTEM_ROLES: Tuple[SystemRoleSeed, ...] = (
    SystemRoleSeed(
        name="Admin",
        key=ADMIN_ROLE_KEY,
        description="Full system access with user and role management",
        permissions=tuple(PermissionKey),
    ),
    SystemRoleSeed(
        name="Sales Agent",
        key="sales_agent",
        description="Limited access to operational pages only",
        permissions=tuple(
            key for key in PermissionKey
            if key.action == Action.VIEW and key.resource in SALES_AGENT_RESOURCES
        ),
    ),
)


def has_permission(granted: Iterable[str], required: str) -> bool:
    """
    Check whether a permission key is among the granted keys.

    Args:
        granted: Permission keys held by the caller
        required: Permission key needed

    Returns:
        True if granted
    """
    key = required.value if isinstance(required, PermissionKey) else required
    return key in set(granted)


class PermissionCatalogError(RuntimeError):
    """Seeded permissions disagree with the PermissionKey enumeration."""


class PermissionResolver:
    """
    Resolves the permission keys granted to a role.

    Results are read from storage on every call so edits to a role's
    permissions reach the next issued token without a cache to invalidate.
    """

    def __init__(self, db: "AuthDatabase"):
        self.db = db

    def permissions_for_role(self, role_id: str) -> List[str]:
        """
        Get the permission keys for a role.

        Args:
            role_id: Role ID

        Returns:
            Distinct keys ordered by resource, then action
        """
        keys = self.db.get_role_permission_keys(role_id)
        known = {k.value for k in PermissionKey}

        resolved: List[str] = []
        seen: Set[str] = set()
        for key in keys:
            if key in seen:
                continue
            if key not in known:
                # Unreachable once the catalog passed validation at boot
                logger.error(f"Role {role_id} references unknown permission key: {key}")
                continue
            seen.add(key)
            resolved.append(key)
        return resolved


def validate_permission_catalog(db: "AuthDatabase") -> None:
    """
    Verify that the permissions table matches PermissionKey exactly.

    Args:
        db: Auth database

    Raises:
        PermissionCatalogError: If keys are missing from the table or unknown
    """
    stored = {p.key for p in db.list_permissions()}
    expected = {k.value for k in PermissionKey}

    missing = sorted(expected - stored)
    unknown = sorted(stored - expected)
    if missing or unknown:
        raise PermissionCatalogError(
            f"Permission catalog mismatch (missing: {missing or 'none'}, "
            f"unknown: {unknown or 'none'})"
        )

    logger.debug(f"Permission catalog validated: {len(stored)} permissions")
