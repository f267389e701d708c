"""
Wiring of the auth components from configuration.
"""

from dataclasses import dataclass
from datetime import timedelta

from loguru import logger

from ..config import ServerConfig
from .auth_manager import AuthManager
from .database import AuthDatabase, Clock, utc_now
from .jwt_handler import JWTHandler
from .passwords import hash_password
from .permissions import PermissionResolver, validate_permission_catalog
from .roles import RoleRegistry
from .token_service import TokenService
from .token_store import RefreshTokenStore
from .users import UserDirectory


@dataclass
class AuthServices:
    """All auth components sharing one database."""
    config: ServerConfig
    db: AuthDatabase
    resolver: PermissionResolver
    store: RefreshTokenStore
    tokens: TokenService
    roles: RoleRegistry
    users: UserDirectory
    auth: AuthManager


def build_auth_services(config: ServerConfig, clock: Clock = utc_now, seed: bool = True) -> AuthServices:
    """
    Create the database and every auth component.

    Seeds default data on an empty database, then validates the permission
    catalog; a mismatch aborts startup.

    Args:
        config: Server configuration
        clock: Returns the current UTC time
        seed: Seed permissions, system roles and the initial admin if empty

    Returns:
        AuthServices

    Raises:
        PermissionCatalogError: Stored permissions disagree with PermissionKey
    """
    db = AuthDatabase(config.database_path, clock=clock)

    if seed and not db.has_roles():
        db.seed(
            admin_email=config.seed_admin_email,
            admin_password_hash=hash_password(config.seed_admin_password, config.bcrypt_rounds),
        )
    validate_permission_catalog(db)

    resolver = PermissionResolver(db)
    store = RefreshTokenStore(db, ttl=timedelta(days=config.refresh_token_expire_days))
    jwt_handler = JWTHandler(
        config.resolved_secret(),
        algorithm=config.jwt_algorithm,
        access_ttl=timedelta(minutes=config.access_token_expire_minutes),
        clock=clock,
    )
    tokens = TokenService(db, jwt_handler, store, resolver)
    users = UserDirectory(
        db,
        token_store=store,
        bcrypt_rounds=config.bcrypt_rounds,
        min_password_length=config.min_password_length,
        revoke_sessions_on_password_change=config.revoke_sessions_on_password_change,
    )

    logger.debug("Auth services initialized")
    return AuthServices(
        config=config,
        db=db,
        resolver=resolver,
        store=store,
        tokens=tokens,
        roles=RoleRegistry(db),
        users=users,
        auth=AuthManager(db, tokens, users, resolver, bcrypt_rounds=config.bcrypt_rounds),
    )
