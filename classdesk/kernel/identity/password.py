"""
Course join password hashing using bcrypt.
"""

import bcrypt

# Number of rounds for bcrypt hashing (12 is secure default)
BCRYPT_ROUNDS = 12


class PasswordHasher:
    """Hashing for the shared password participants use to join a course."""

    @staticmethod
    def _truncate_password(password: str) -> bytes:
        """bcrypt only uses the first 72 bytes of a password."""
        return password.encode("utf-8")[:72]

    @staticmethod
    def hash(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
        pwd_bytes = PasswordHasher._truncate_password(password)
        salt = bcrypt.gensalt(rounds=rounds)
        return bcrypt.hashpw(pwd_bytes, salt).decode("utf-8")

    @staticmethod
    def verify(plain_password: str, hashed_password: str) -> bool:
        try:
            pwd_bytes = PasswordHasher._truncate_password(plain_password)
            return bcrypt.checkpw(pwd_bytes, hashed_password.encode("utf-8"))
        except ValueError:
            # Malformed stored hash
            return False


def hash_password(password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a course password."""
    return PasswordHasher.hash(password, rounds)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a course password."""
    return PasswordHasher.verify(plain_password, hashed_password)
