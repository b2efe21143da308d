"""
Session token issuance and validation.

Tokens are HS256 JWTs signed with settings.SECRET_KEY. The subject claim is
the family id; tokens carry no other identity data and expire after
ACCESS_TOKEN_EXPIRE_MINUTES (24 hours by default).
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from jose import JWTError, jwt

from family_budget.config import settings
from family_budget.managers.family_manager import AuthenticationFailure, TokenIssuanceError
from family_budget.managers.logging_manager import get_logger
from family_budget.utils.logging_utils import log_performance

ACCESS_TOKEN_TYPE: str = "access"

logger = get_logger(prefix="[Auth Service Security Tokens]")


def _secret_key() -> str:
    secret_key = settings.SECRET_KEY.get_secret_value()
    if not secret_key:
        logger.error("JWT secret key is missing or invalid. Check your settings.SECRET_KEY.")
        raise TokenIssuanceError("JWT secret key is missing or invalid")
    return secret_key


@log_performance("create_access_token")
def create_access_token(family_id: str) -> str:
    """
    Create a signed access token bound to a family id.

    Args:
        family_id (str): The family id to place in the `sub` claim.

    Returns:
        str: Encoded JWT access token.

    Raises:
        TokenIssuanceError: If the secret is unavailable or signing fails.
    """
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": str(family_id),
        "type": ACCESS_TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    try:
        encoded_jwt = jwt.encode(to_encode, _secret_key(), algorithm=settings.ALGORITHM)
    except JWTError as e:
        logger.error("Failed to sign access token for family %s: %s", family_id, e)
        raise TokenIssuanceError("Error generating authentication token") from e

    logger.debug("JWT access token created for family: %s", family_id)
    return encoded_jwt


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify a token's signature, expiry and type and return its claims.

    Raises:
        AuthenticationFailure: For any invalid, expired or malformed token.
    """
    if not token:
        raise AuthenticationFailure("No token, authorization denied", reason="missing")

    try:
        payload = jwt.decode(token, settings.SECRET_KEY.get_secret_value(), algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        logger.warning("Token has expired")
        raise AuthenticationFailure("Token has expired", reason="expired") from e
    except JWTError as e:
        logger.warning("Invalid token: %s", e)
        raise AuthenticationFailure("Token is not valid", reason="invalid") from e

    if payload.get("type") != ACCESS_TOKEN_TYPE or not payload.get("sub"):
        logger.warning("JWT payload missing 'sub' claim or has wrong type")
        raise AuthenticationFailure("Token is not valid", reason="claims")
    return payload
