"""
Family login and bearer-token resolution.

Login looks the family up by name case-insensitively. An unknown family and a
wrong password both surface as the same InvalidCredentials error so the
response never reveals which family names exist.
"""

from typing import Any, Dict, Optional, Tuple

from family_budget.managers.family_manager import (
    AuthenticationFailure,
    InvalidCredentials,
    ValidationError,
    family_manager,
)
from family_budget.managers.logging_manager import get_logger
from family_budget.routes.auth.services.auth.password import verify_password
from family_budget.routes.auth.services.security.tokens import create_access_token, decode_access_token
from family_budget.utils.logging_utils import log_performance, log_security_event

logger = get_logger(prefix="[Auth Service Login]")


@log_performance("login_family", log_args=False)
async def login_family(name: Any, password: Any, ip_address: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    """
    Authenticate a family by name and password and issue a new token.

    Raises:
        ValidationError: If the name or password is missing.
        InvalidCredentials: If the family is unknown or the password is wrong.
    """
    family_name = name.strip() if isinstance(name, str) else ""
    if not family_name or not isinstance(password, str) or not password:
        raise ValidationError("Family name and password are required")

    family = await family_manager.find_family_by_name(family_name)
    if family is None or not verify_password(password, family.get("hashed_password", "")):
        logger.info("Login failed for family name: %s", family_name)
        log_security_event(
            event_type="login",
            family_id=str(family["_id"]) if family else None,
            ip_address=ip_address,
            success=False,
            details={"name": family_name, "reason": "unknown_family" if family is None else "wrong_password"},
        )
        raise InvalidCredentials("Invalid credentials")

    family_id = str(family["_id"])
    token = create_access_token(family_id)
    log_security_event(event_type="login", family_id=family_id, ip_address=ip_address, success=True)
    logger.info("Family logged in: %s", family_id)
    return family, token


async def get_current_family(token: str) -> Dict[str, Any]:
    """
    Resolve a bearer token to the family document it is bound to.

    Raises:
        AuthenticationFailure: If the token is invalid or its family no longer exists.
    """
    payload = decode_access_token(token)
    family = await family_manager.find_family(payload["sub"])
    if family is None:
        logger.warning("Family not found for JWT 'sub' claim: %s", payload["sub"])
        raise AuthenticationFailure("Token is not valid", reason="unknown_family")
    return family
