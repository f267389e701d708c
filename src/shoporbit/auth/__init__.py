"""
Authentication module for Shop Orbit.

Provides JWT-based authentication with rotating refresh tokens and RBAC.
"""

from .models import User, Role, Permission, RefreshToken, UserStatus
from .database import AuthDatabase
from .jwt_handler import JWTHandler, TokenPayload
from .token_store import RefreshTokenStore
from .token_service import TokenPair, TokenService
from .roles import RoleRegistry
from .users import UserDirectory
from .auth_manager import AuthManager
from .bootstrap import AuthServices, build_auth_services
from .middleware import (
    AuthContext,
    GateResult,
    authenticate,
    authorize,
    authorize_any,
    optional_authenticate,
    require_admin,
)
from .permissions import (
    ADMIN_ROLE_KEY,
    PermissionKey,
    PermissionResolver,
    PermissionCatalogError,
    has_permission,
    validate_permission_catalog,
)
from .errors import (
    AuthError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ForbiddenError,
    InactiveAccountError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidTokenError,
    NotFoundError,
    TokenExpiredError,
    ValidationError,
)

__all__ = [
    # Models and storage
    "User",
    "Role",
    "Permission",
    "RefreshToken",
    "UserStatus",
    "AuthDatabase",
    # Tokens
    "JWTHandler",
    "TokenPayload",
    "RefreshTokenStore",
    "TokenPair",
    "TokenService",
    # Registries
    "RoleRegistry",
    "UserDirectory",
    "AuthManager",
    "AuthServices",
    "build_auth_services",
    # Request gate
    "AuthContext",
    "GateResult",
    "authenticate",
    "authorize",
    "authorize_any",
    "optional_authenticate",
    "require_admin",
    # RBAC
    "ADMIN_ROLE_KEY",
    "PermissionKey",
    "PermissionResolver",
    "PermissionCatalogError",
    "has_permission",
    "validate_permission_catalog",
    # Errors
    "AuthError",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "ForbiddenError",
    "InactiveAccountError",
    "InvalidCredentialsError",
    "InvalidRefreshTokenError",
    "InvalidTokenError",
    "NotFoundError",
    "TokenExpiredError",
    "ValidationError",
]
