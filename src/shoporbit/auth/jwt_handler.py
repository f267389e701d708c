"""
JWT access token generation and validation.

Access tokens are stateless: verification checks signature, structure and
expiry only, and never touches storage.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List

import jwt
from loguru import logger

from .errors import InvalidTokenError, TokenExpiredError


ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60  # 1 hour
TOKEN_TYPE_ACCESS = "access"
REQUIRED_CLAIMS = ["sub", "email", "role", "permissions", "iat", "exp", "jti", "type"]


@dataclass(frozen=True)
class TokenPayload:
    """
    Decoded access token.

    Attributes:
        user_id: User UUID (sub claim)
        email: User email
        role_key: Role key at issuance
        permissions: Permission keys at issuance
        exp: Expiration timestamp
        iat: Issued at timestamp
        jti: JWT ID
    """
    user_id: str
    email: str
    role_key: str
    permissions: List[str]
    exp: datetime
    iat: datetime
    jti: str


class JWTHandler:
    """
    JWT token handler.

    Creates and validates signed access tokens.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = ALGORITHM,
        access_ttl: timedelta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        """
        Initialize handler.

        Args:
            secret_key: Secret key for signing tokens
            algorithm: JWT algorithm (default: HS256)
            access_ttl: Access token lifetime
            clock: Returns the current UTC time
        """
        if not secret_key:
            raise ValueError("JWT secret key must not be empty")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.clock = clock

    def create_access_token(
        self,
        user_id: str,
        email: str,
        role_key: str,
        permissions: List[str]
    ) -> str:
        """
        Create JWT access token.

        Args:
            user_id: User UUID
            email: User email
            role_key: Key of the user's role
            permissions: Permission keys granted to the role

        Returns:
            JWT token string
        """
        now = self.clock()
        expire = now + self.access_ttl

        payload = {
            "sub": user_id,
            "email": email,
            "role": role_key,
            "permissions": list(permissions),
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
            "jti": secrets.token_urlsafe(16),
            "type": TOKEN_TYPE_ACCESS
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Access token created for user {user_id}")

        return token

    def verify_token(self, token: str) -> TokenPayload:
        """
        Verify and decode JWT access token.

        Expiry is checked against the handler's clock: a token is expired
        from its ``exp`` instant onward.

        Args:
            token: JWT token string

        Returns:
            TokenPayload

        Raises:
            TokenExpiredError: If the token is past its expiry
            InvalidTokenError: On bad signature, missing claims or wrong type
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False}
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            raise InvalidTokenError() from e

        if payload.get("type") != TOKEN_TYPE_ACCESS:
            logger.warning("Token is not an access token")
            raise InvalidTokenError()

        permissions = payload["permissions"]
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            logger.warning("Token carries a malformed permissions claim")
            raise InvalidTokenError()

        try:
            exp = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            iat = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidTokenError() from e

        if exp <= self.clock():
            logger.info(f"Token has expired for user {payload['sub']}")
            raise TokenExpiredError()

        return TokenPayload(
            user_id=payload["sub"],
            email=payload["email"],
            role_key=payload["role"],
            permissions=permissions,
            exp=exp,
            iat=iat,
            jti=payload["jti"]
        )
