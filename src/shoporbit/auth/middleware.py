"""
Per-request authorization gate.

Two stages, run in order:

    Unauthenticated --authenticate--> Authenticated --authorize--> Authorized

Each stage returns a GateResult holding either the caller's AuthContext or
the error that stopped the request. Authentication failures are
AuthenticationError (401); missing permissions are AuthorizationError (403)
and a non-administrator hitting an admin-only stage gets ForbiddenError (403).
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Union

from loguru import logger

from .errors import AuthenticationError, AuthError, AuthorizationError, ForbiddenError
from .jwt_handler import TokenPayload
from .permissions import ADMIN_ROLE_KEY, PermissionKey, has_permission
from .token_service import TokenService


BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    """
    Identity attached to an authenticated request.

    Permissions are the snapshot carried by the access token.
    """
    user_id: str
    email: str
    role_key: str
    permissions: FrozenSet[str]

    @classmethod
    def from_payload(cls, payload: TokenPayload) -> "AuthContext":
        return cls(
            user_id=payload.user_id,
            email=payload.email,
            role_key=payload.role_key,
            permissions=frozenset(payload.permissions),
        )


@dataclass(frozen=True)
class GateResult:
    """Outcome of one gate stage."""
    context: Optional[AuthContext] = None
    error: Optional[AuthError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> AuthContext:
        """Return the context or raise the stage's error."""
        if self.error is not None:
            raise self.error
        return self.context


def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    if not authorization_header or not authorization_header.startswith(BEARER_PREFIX):
        return None
    token = authorization_header[len(BEARER_PREFIX):].strip()
    return token or None


def authenticate(tokens: TokenService, authorization_header: Optional[str]) -> GateResult:
    """
    Stage 1: establish identity from a bearer token.

    Args:
        tokens: Token service used to verify the access token
        authorization_header: Raw Authorization header value

    Returns:
        GateResult with an AuthContext, or an AuthenticationError
    """
    token = extract_bearer_token(authorization_header)
    if token is None:
        return GateResult(error=AuthenticationError("No authentication token provided"))

    try:
        payload = tokens.verify_access_token(token)
    except AuthenticationError as e:
        return GateResult(error=e)

    return GateResult(context=AuthContext.from_payload(payload))


def authorize(context: Optional[AuthContext], permission: Union[PermissionKey, str]) -> GateResult:
    """
    Stage 2: check the token's permission snapshot.

    Args:
        context: Result of a successful authenticate stage
        permission: Required permission key

    Returns:
        GateResult with the same context, or an AuthorizationError
    """
    if context is None:
        return GateResult(error=AuthenticationError("Authentication required"))

    required = permission.value if isinstance(permission, PermissionKey) else str(permission)
    if not has_permission(context.permissions, required):
        logger.warning(f"User {context.email} denied: missing permission {required}")
        return GateResult(context=context, error=AuthorizationError(context.user_id, required))

    return GateResult(context=context)


def authorize_any(
    context: Optional[AuthContext],
    permissions: Iterable[Union[PermissionKey, str]],
) -> GateResult:
    """
    Stage 2 variant: pass when the snapshot holds at least one of the keys.

    The AuthorizationError lists every accepted key, comma separated.
    """
    if context is None:
        return GateResult(error=AuthenticationError("Authentication required"))

    accepted = [p.value if isinstance(p, PermissionKey) else str(p) for p in permissions]
    if not accepted:
        raise ValueError("authorize_any needs at least one permission")

    if not any(has_permission(context.permissions, key) for key in accepted):
        logger.warning(f"User {context.email} denied: needs one of {', '.join(accepted)}")
        return GateResult(context=context, error=AuthorizationError(context.user_id, ",".join(accepted)))

    return GateResult(context=context)


def require_admin(context: Optional[AuthContext]) -> GateResult:
    """Stage 2 variant: pass only for the administrator role."""
    if context is None:
        return GateResult(error=AuthenticationError("Authentication required"))

    if context.role_key != ADMIN_ROLE_KEY:
        logger.warning(f"User {context.email} denied: administrator access required")
        return GateResult(context=context, error=ForbiddenError("Administrator access required"))

    return GateResult(context=context)


def optional_authenticate(tokens: TokenService, authorization_header: Optional[str]) -> Optional[AuthContext]:
    """
    Identify the caller when a valid bearer token is present.

    Missing, malformed and expired tokens all yield None instead of an error.
    """
    result = authenticate(tokens, authorization_header)
    return result.context if result.ok else None
