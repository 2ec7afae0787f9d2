"""Credential primitives: password hashing, one-time codes and request context.

Nothing in here touches the database or the cache; the stateful pieces live
in ``services``.
"""

import secrets
from dataclasses import dataclass

from pwdlib import PasswordHash

password_hash = PasswordHash.recommended()

TWO_FACTOR_CODE_LENGTH = 6


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a plain password against a stored hash.

    Args:
        plain_password: The clear-text password provided by the user.
        hashed_password: The stored hash; federated accounts have none.

    Returns:
        bool: True if the password matches, False otherwise.
    """
    if not hashed_password:
        return False
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a plain password using the recommended algorithm (argon2)."""
    return password_hash.hash(password)


def generate_numeric_code(length: int = TWO_FACTOR_CODE_LENGTH) -> str:
    """Return a numeric one-time code drawn from the OS CSPRNG.

    Each digit is one random byte reduced mod 10.
    """
    return "".join(str(byte % 10) for byte in secrets.token_bytes(length))


def generate_opaque_token(nbytes: int = 20) -> str:
    """Return a random hex token for email verification and password reset."""
    return secrets.token_hex(nbytes)


def codes_match(expected: str, provided: str) -> bool:
    return secrets.compare_digest(expected.encode(), provided.strip().encode())


@dataclass(frozen=True)
class RequestContext:
    """Client details captured at login for session tracking.

    Attributes:
        ip_address: Client IP (first hop of `X-Forwarded-For` when proxied).
        device: User-agent string truncated to 255 characters.
    """

    ip_address: str
    device: str
