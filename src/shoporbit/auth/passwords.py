"""
Password hashing and credential verification.
"""

import bcrypt

from .errors import ValidationError


# bcrypt only looks at the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72
DEFAULT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 8


def validate_password(password: str, min_length: int = MIN_PASSWORD_LENGTH) -> None:
    """
    Check password length constraints.

    Args:
        password: Plain text password
        min_length: Minimum number of characters

    Raises:
        ValidationError: If the password is too short or too long for bcrypt
    """
    if not isinstance(password, str) or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters")
    if len(password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Hash a password with bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        bcrypt hash as text
    """
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds)
    ).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against a stored bcrypt hash.

    Malformed hashes and over-long passwords verify as False rather than raising.

    Args:
        password: Plain text password
        password_hash: Stored bcrypt hash

    Returns:
        True if the password matches
    """
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        return False
