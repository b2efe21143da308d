"""
Translation of family manager exceptions into HTTP errors.

Route handlers catch FamilyError and raise the HTTPException built here, so
every error response has the same body:

    {"detail": {"error": "<ERROR_CODE>", "message": "<human readable text>"}}
"""

from typing import Any, Dict

from fastapi import HTTPException, status

from family_budget.managers.family_manager import FamilyError
from family_budget.utils.logging_utils import log_error_with_context

ERROR_STATUS_CODES: Dict[str, int] = {
    "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
    "DUPLICATE_NAME": status.HTTP_400_BAD_REQUEST,
    "INVALID_CREDENTIALS": status.HTTP_401_UNAUTHORIZED,
    "AUTHENTICATION_FAILED": status.HTTP_401_UNAUTHORIZED,
    "FAMILY_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "MEMBER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PERSISTENCE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    "TOKEN_ISSUANCE_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

GENERIC_SERVER_ERROR_MESSAGE = "Server error"


def create_error_detail(error_code: str, message: str) -> Dict[str, Any]:
    return {"error": error_code, "message": message}


def to_http_exception(error: FamilyError, operation: str = None) -> HTTPException:
    """
    Build the HTTPException for a manager error.

    Server-side failures are logged with their context and answered with a
    generic message; client errors keep their own message.
    """
    status_code = ERROR_STATUS_CODES.get(error.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = None

    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        log_error_with_context(error, error.context, operation=operation)
        message = GENERIC_SERVER_ERROR_MESSAGE
    else:
        message = error.message

    if error.error_code == "AUTHENTICATION_FAILED":
        headers = {"WWW-Authenticate": "Bearer"}

    return HTTPException(status_code=status_code, detail=create_error_detail(error.error_code, message), headers=headers)
