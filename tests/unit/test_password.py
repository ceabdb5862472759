"""Unit tests for course password hashing."""

import pytest

from classdesk.kernel.identity.password import (
    PasswordHasher,
    hash_password,
    verify_password,
)


class TestPasswordHasher:
    """Tests for PasswordHasher."""

    def test_hash_creates_different_hashes(self):
        """Same password should create different hashes (due to salt)."""
        password = "open-sesame"
        hash1 = PasswordHasher.hash(password, rounds=4)
        hash2 = PasswordHasher.hash(password, rounds=4)

        assert hash1 != hash2
        assert hash1.startswith("$2b$")  # bcrypt prefix

    def test_verify_correct_password(self):
        hashed = PasswordHasher.hash("open-sesame", rounds=4)

        assert PasswordHasher.verify("open-sesame", hashed) is True

    def test_verify_wrong_password(self):
        hashed = PasswordHasher.hash("open-sesame", rounds=4)

        assert PasswordHasher.verify("open-sesame!", hashed) is False

    def test_malformed_hash_does_not_verify(self):
        assert PasswordHasher.verify("open-sesame", "not-a-bcrypt-hash") is False

    @pytest.mark.parametrize("password", ["x" * 72, "x" * 100])
    def test_long_passwords_are_truncated(self, password):
        """bcrypt ignores bytes past 72, so both verify against a 72-byte hash."""
        hashed = hash_password("x" * 72, rounds=4)

        assert verify_password(password, hashed) is True

    def test_convenience_functions(self):
        hashed = hash_password("open-sesame", rounds=4)

        assert verify_password("open-sesame", hashed) is True
        assert verify_password("wrong", hashed) is False
