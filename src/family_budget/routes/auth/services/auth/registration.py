"""
Family registration: validate, hash, store, then issue the first session token.

If the token cannot be issued after the family document was inserted, the
insert is rolled back so a failed registration leaves no family behind.
"""

from typing import Any, Dict, Optional, Tuple

from family_budget.managers.family_manager import (
    PersistenceError,
    TokenIssuanceError,
    ValidationError,
    family_manager,
)
from family_budget.managers.logging_manager import get_logger
from family_budget.models.family_models import MIN_FAMILY_NAME_LENGTH, MIN_PASSWORD_LENGTH
from family_budget.routes.auth.services.auth.password import hash_password
from family_budget.routes.auth.services.security.tokens import create_access_token
from family_budget.utils.logging_utils import log_performance, log_security_event

logger = get_logger(prefix="[Auth Service Registration]")


def validate_registration(name: Any, password: Any) -> str:
    """Check registration input and return the trimmed family name."""
    family_name = name.strip() if isinstance(name, str) else ""
    if not family_name or not isinstance(password, str) or not password:
        raise ValidationError("Family name and password are required")
    if len(family_name) < MIN_FAMILY_NAME_LENGTH:
        raise ValidationError(
            f"Family name must be at least {MIN_FAMILY_NAME_LENGTH} characters long",
            field="name",
            value=family_name,
            constraint=f"min_length:{MIN_FAMILY_NAME_LENGTH}",
        )
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
            field="password",
            constraint=f"min_length:{MIN_PASSWORD_LENGTH}",
        )
    return family_name


@log_performance("register_family", log_args=False)
async def register_family(name: Any, password: Any, ip_address: Optional[str] = None) -> Tuple[Dict[str, Any], str]:
    """
    Register a new family and return its document and an access token.

    Args:
        name: Family name; surrounding whitespace is removed.
        password: Plaintext password, at least MIN_PASSWORD_LENGTH characters.
        ip_address: Client address for security logging.

    Returns:
        Tuple[Dict[str, Any], str]: The stored family document and the token.

    Raises:
        ValidationError: If the name or password is missing or too short.
        DuplicateFamilyName: If the exact name is already registered.
        TokenIssuanceError: If the token cannot be issued (the family is removed again).
    """
    family_name = validate_registration(name, password)
    logger.info("Registration attempt for family: %s", family_name)

    family = await family_manager.create_family(family_name, hash_password(password))
    family_id = str(family["_id"])

    try:
        token = create_access_token(family_id)
    except TokenIssuanceError as e:
        logger.error("Token generation failed for family %s, rolling back registration", family_id)
        rollback_successful = False
        try:
            rollback_successful = await family_manager.delete_family(family["_id"])
        except PersistenceError as rollback_error:
            logger.error("Rollback of family %s failed: %s", family_id, rollback_error)
        log_security_event(
            event_type="registration_token_failure",
            family_id=family_id,
            ip_address=ip_address,
            success=False,
            details={"rollback_successful": rollback_successful},
        )
        raise TokenIssuanceError("Error generating authentication token", rollback_successful=rollback_successful) from e

    log_security_event(
        event_type="registration", family_id=family_id, ip_address=ip_address, success=True, details={"name": family_name}
    )
    logger.info("Family registered successfully: id=%s name=%s", family_id, family_name)
    return family, token
