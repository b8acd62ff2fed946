"""CSRF token primitives."""

import hmac
import secrets
from typing import Optional

TOKEN_BYTES = 32


def generate_token() -> str:
    """64 hex characters from 32 random bytes."""
    return secrets.token_hex(TOKEN_BYTES)


def tokens_match(expected: Optional[str], supplied: Optional[str]) -> bool:
    """Constant-time comparison; absent or empty values never match."""
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def is_expired(created_at: Optional[float], ttl: int, now: float) -> bool:
    """True when the token is older than ttl seconds. ttl <= 0 disables the check."""
    if ttl <= 0:
        return False
    if created_at is None:
        return True
    return now - created_at > ttl
