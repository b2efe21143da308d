"""
Password hashing for family credentials.

Hashes are bcrypt with a configurable cost factor (BCRYPT_ROUNDS). bcrypt only
looks at the first 72 bytes of a password; longer passwords are truncated
explicitly so hashing and verification agree.
"""

import bcrypt

from family_budget.config import settings
from family_budget.managers.logging_manager import get_logger

BCRYPT_MAX_PASSWORD_BYTES: int = 72

logger = get_logger(prefix="[Auth Service Password]")


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(password: str) -> str:
    """
    Hash a plaintext password with a fresh salt.

    Args:
        password (str): The plaintext password.

    Returns:
        str: The bcrypt hash, safe to store.
    """
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Return True if the plaintext password matches the stored hash; malformed hashes never match."""
    if not password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed_password.encode("utf-8"))
    except ValueError as e:
        logger.warning("Stored password hash could not be checked: %s", e)
        return False
