"""
Authentication routes: family registration and login.

Both endpoints return a session token together with the family's id and
name. All business logic is delegated to the service layer.
"""

from fastapi import APIRouter, Request, status

from family_budget.managers.family_manager import FamilyError
from family_budget.managers.logging_manager import get_logger
from family_budget.routes.auth.models import AuthResponse, FamilySummary, LoginRequest, RegisterRequest
from family_budget.routes.auth.services.auth.login import login_family
from family_budget.routes.auth.services.auth.registration import register_family
from family_budget.utils.error_handling import to_http_exception
from family_budget.utils.logging_utils import get_client_ip

logger = get_logger(prefix="[Auth Routes]")

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new family",
    responses={
        400: {"description": "Missing or too short name/password, or family name already exists"},
        500: {"description": "Server error"},
    },
)
async def register(payload: RegisterRequest, request: Request) -> AuthResponse:
    """Create a family account and return a token for immediate API access."""
    try:
        family, token = await register_family(payload.name, payload.password, ip_address=get_client_ip(request))
    except FamilyError as e:
        logger.info("Registration failed for family %s: %s", payload.name, e.message)
        raise to_http_exception(e, operation="register") from e

    return AuthResponse(token=token, family=FamilySummary(id=str(family["_id"]), name=family["name"]))


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Log in to a family account",
    responses={
        400: {"description": "Missing name or password"},
        401: {"description": "Invalid credentials"},
    },
)
async def login(payload: LoginRequest, request: Request) -> AuthResponse:
    """Authenticate by family name (case-insensitive) and password."""
    try:
        family, token = await login_family(payload.name, payload.password, ip_address=get_client_ip(request))
    except FamilyError as e:
        raise to_http_exception(e, operation="login") from e

    return AuthResponse(token=token, family=FamilySummary(id=str(family["_id"]), name=family["name"]))
