"""
FastAPI dependencies for bearer-token authentication.

Protected endpoints depend on get_current_family_dep, which resolves the
`Authorization: Bearer <token>` header to the family document the token is
bound to.
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from family_budget.managers.family_manager import AuthenticationFailure, FamilyError, FamilyNotFound
from family_budget.managers.logging_manager import get_logger
from family_budget.routes.auth.services.auth.login import get_current_family
from family_budget.utils.error_handling import to_http_exception
from family_budget.utils.logging_utils import get_client_ip, log_security_event

logger = get_logger(prefix="[Security Dependencies]")

# auto_error is off so a missing header is answered with 401 instead of 403
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_family_dep(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """Dependency returning the authenticated family document."""
    try:
        if credentials is None:
            raise AuthenticationFailure("No token, authorization denied", reason="missing")
        return await get_current_family(credentials.credentials)
    except AuthenticationFailure as e:
        log_security_event(
            event_type="token_validation",
            ip_address=get_client_ip(request),
            success=False,
            details={"path": request.url.path, "reason": e.context.get("reason")},
        )
        raise to_http_exception(e, operation="authenticate") from e
    except FamilyError as e:
        raise to_http_exception(e, operation="authenticate") from e


def ensure_own_family(family_id: str, current_family: Dict[str, Any]) -> None:
    """
    Reject access to any family other than the token's own.

    Foreign families are reported exactly like absent ones so ids of other
    families cannot be probed.
    """
    if str(current_family["_id"]) != family_id:
        logger.warning("Family %s attempted to access family %s", current_family["_id"], family_id)
        raise to_http_exception(FamilyNotFound("Family not found", family_id=family_id))
