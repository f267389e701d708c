"""
Authentication and authorization errors.

Every error carries a stable machine-readable ``kind`` and the HTTP status
it maps to, so the API layer can render it without inspecting messages.
"""

from typing import Any, Dict, Optional


class AuthError(Exception):
    """
    Base class for all auth core failures.

    Attributes:
        message: Human-readable message, safe to show to clients
        detail: Optional structured context (never secrets)
    """

    status_code: int = 400
    kind: str = "error"

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "kind": self.kind,
        }
        if self.detail:
            body["details"] = self.detail
        return body


class AuthenticationError(AuthError):
    """Identity could not be established (401)."""
    status_code = 401
    kind = "authentication_failure"


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password."""

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InactiveAccountError(AuthenticationError):
    """Account exists but is inactive or suspended."""

    def __init__(self, message: str = "Account is not active"):
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    """Access token is malformed, has a bad signature or wrong type."""

    def __init__(self, message: str = "Invalid authentication token"):
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    """Access token is past its expiry instant."""

    def __init__(self, message: str = "Authentication token has expired"):
        super().__init__(message)


class InvalidRefreshTokenError(AuthenticationError):
    """Refresh token is unknown, revoked or expired. Client must log in again."""

    def __init__(self, message: str = "Invalid or revoked refresh token"):
        super().__init__(message)


class AuthorizationError(AuthError):
    """
    Authenticated caller lacks a required permission (403).

    Attributes:
        user_id: The caller that was denied
        required_permission: Permission key that was missing
    """
    status_code = 403
    kind = "authorization_failure"

    def __init__(self, user_id: str, required_permission: str):
        self.user_id = user_id
        self.required_permission = required_permission
        super().__init__(
            "You do not have permission to access this resource",
            {"required": required_permission},
        )


class ValidationError(AuthError):
    """Malformed or unacceptable input (400)."""
    status_code = 400
    kind = "validation_failure"


class NotFoundError(AuthError):
    """User or role does not exist (404)."""
    status_code = 404
    kind = "not_found"


class ConflictError(AuthError):
    """Duplicate email or role name, or role still in use (409)."""
    status_code = 409
    kind = "conflict"


class ForbiddenError(AuthError):
    """Operation would break a business invariant (403)."""
    status_code = 403
    kind = "forbidden"


class RefreshTokenNotFoundError(AuthError):
    """Store-level miss: no live refresh token matches the identifier."""
    status_code = 401
    kind = "authentication_failure"

    def __init__(self, message: str = "Refresh token not found"):
        super().__init__(message)
