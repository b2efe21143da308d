"""System routes for the Family Budget API."""

from fastapi import APIRouter, HTTPException, status

from family_budget.database import db_manager
from family_budget.managers.logging_manager import get_logger

logger = get_logger(prefix="[System Routes]")

router = APIRouter(tags=["System"])


@router.get("/", summary="API Root Endpoint")
async def root():
    """Basic API information for connectivity checks."""
    return {"message": "Family Budget API", "status": "running"}


@router.get(
    "/health",
    summary="Health Check",
    responses={503: {"description": "Database connection failed"}},
)
async def health_check():
    """
    Check that the API is running and MongoDB answers a ping.

    Returns 503 when the database is unreachable, including while the
    connection supervisor is reconnecting.
    """
    db_healthy = await db_manager.health_check()
    if not db_healthy:
        logger.error("Health check failed: database unreachable (state=%s)", db_manager.state.value)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "SERVICE_UNAVAILABLE", "message": "Database connection failed", **db_manager.describe()},
        )

    return {"status": "healthy", "api": "running", **db_manager.describe()}
