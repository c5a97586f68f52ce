"""Password hashing and opaque token generation."""

import secrets
from typing import Protocol

import bcrypt

# Min/max lengths for username and password validation (input validation).
USERNAME_MIN_LEN = 1
USERNAME_MAX_LEN = 255
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128

# Bytes of randomness behind reset tokens and session ids (256 bits).
TOKEN_BYTES = 32

# bcrypt only looks at the first 72 bytes of the password.
BCRYPT_MAX_BYTES = 72


class PasswordHasher(Protocol):
    """One-way hash with verify, parameterized by a cost factor."""

    def hash(self, plain_password: str, cost_factor: int) -> str: ...

    def verify(self, plain_password: str, hashed: str) -> bool: ...


class BcryptPasswordHasher:
    """PasswordHasher backed by bcrypt; cost_factor is the bcrypt rounds."""

    def hash(self, plain_password: str, cost_factor: int) -> str:
        """Hash a plain-text password for storage. Do not store plain passwords."""
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=cost_factor)).decode("utf-8")

    def verify(self, plain_password: str, hashed: str) -> bool:
        """Verify a plain password against a stored hash. Malformed hashes never match."""
        pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
        try:
            return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False


def generate_token() -> str:
    """Return an unguessable URL-safe token (reset tokens, session ids)."""
    return secrets.token_urlsafe(TOKEN_BYTES)
