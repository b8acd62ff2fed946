"""bcrypt password hashing.

bcrypt only considers the first 72 bytes of a password; longer inputs are
truncated explicitly so hashing and verification agree.
"""

import logging
from typing import Optional

import bcrypt

from collabora_api.config.env import get_bcrypt_rounds

logger = logging.getLogger(__name__)

_MAX_PASSWORD_BYTES = 72
_dummy_hash: Optional[bytes] = None


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_MAX_PASSWORD_BYTES]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with a fresh salt.

    Args:
        password: Plaintext password
        rounds: bcrypt cost factor (default: COLLABORA_BCRYPT_ROUNDS)

    Returns:
        Hash string in modular crypt format ($2b$...)
    """
    salt = bcrypt.gensalt(rounds=rounds or get_bcrypt_rounds())
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Check a password against a stored hash. Malformed hashes never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning(
            "Stored password hash is malformed",
            extra={"event": "auth.password.malformed_hash"},
        )
        return False


def burn_verification(password: str) -> None:
    """Run a full bcrypt check against a throwaway hash.

    Used for unknown identifiers so the response time does not reveal
    whether an account exists.
    """
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = bcrypt.hashpw(b"collabora-dummy-password", bcrypt.gensalt(rounds=get_bcrypt_rounds()))
    bcrypt.checkpw(_encode(password), _dummy_hash)
