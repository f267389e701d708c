"""
Unit tests for password hashing and validation.
"""

import pytest

from shoporbit.auth.errors import ValidationError
from shoporbit.auth.passwords import (
    BCRYPT_MAX_BYTES,
    hash_password,
    validate_password,
    verify_password,
)


class TestHashing:
    """Test bcrypt hashing and verification."""

    def test_hash_verifies(self):
        """A hash verifies against its own password only."""
        hashed = hash_password("correct horse", rounds=4)

        assert hashed.startswith("$2")
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_hashes_are_salted(self):
        """The same password hashes differently each time."""
        assert hash_password("same-password", rounds=4) != hash_password("same-password", rounds=4)

    def test_malformed_hash_does_not_raise(self):
        """A corrupted stored hash simply fails verification."""
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_overlong_password_rejected(self):
        """Passwords past bcrypt's byte limit never verify."""
        hashed = hash_password("a" * BCRYPT_MAX_BYTES, rounds=4)

        assert verify_password("a" * BCRYPT_MAX_BYTES, hashed)
        assert not verify_password("a" * (BCRYPT_MAX_BYTES + 1), hashed)


class TestValidation:
    """Test password policy checks."""

    def test_minimum_length(self):
        with pytest.raises(ValidationError) as exc:
            validate_password("short", min_length=8)
        assert "at least 8" in exc.value.message

        validate_password("longenough", min_length=8)

    def test_multibyte_length_limit(self):
        """The byte limit counts encoded bytes, not characters."""
        # 25 characters, 75 bytes in UTF-8
        with pytest.raises(ValidationError):
            validate_password("€" * 25)

    def test_error_never_echoes_password(self):
        with pytest.raises(ValidationError) as exc:
            validate_password("secret1")
        assert "secret1" not in str(exc.value)
