"""
Main application module for the Family Budget API.

This module sets up the FastAPI application with lifespan management of the
MongoDB connection (connect, indexes, reconnect supervisor), error handlers,
routing and Prometheus metrics.
"""

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from family_budget.config import settings
from family_budget.database import db_manager
from family_budget.managers.logging_manager import get_logger
from family_budget.routes import auth_router, family_router, main_router
from family_budget.utils.error_handling import GENERIC_SERVER_ERROR_MESSAGE, create_error_detail
from family_budget.utils.logging_utils import (
    RequestLoggingMiddleware,
    log_application_lifecycle,
    log_error_with_context,
)

logger = get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Startup connects to MongoDB (bounded retries), ensures indexes and starts
    the reconnect supervisor. Shutdown stops the supervisor and closes the
    client, so no timers outlive the application.
    """
    startup_start_time = time.time()
    log_application_lifecycle(
        "startup_initiated",
        {
            "app_name": "Family Budget API",
            "version": "1.0.0",
            "environment": "production" if settings.is_production else "development",
            "debug_mode": settings.DEBUG,
        },
    )

    try:
        db_connect_start = time.time()
        logger.info("Initiating database connection...")
        await db_manager.connect()
        log_application_lifecycle(
            "database_connected",
            {
                "connection_duration": f"{time.time() - db_connect_start:.3f}s",
                "database_name": settings.MONGODB_DATABASE,
                "connection_url": (
                    settings.MONGODB_URL.split("@")[-1] if "@" in settings.MONGODB_URL else settings.MONGODB_URL
                ),
            },
        )

        indexes_start = time.time()
        logger.info("Creating/verifying database indexes...")
        await db_manager.create_indexes()
        log_application_lifecycle("database_indexes_ready", {"indexes_duration": f"{time.time() - indexes_start:.3f}s"})
    except Exception as e:
        log_application_lifecycle(
            "startup_failed",
            {
                "error": str(e),
                "error_type": type(e).__name__,
                "startup_duration": f"{time.time() - startup_start_time:.3f}s",
            },
        )
        log_error_with_context(e, {"operation": "application_startup", "phase": "database_connection"})
        raise

    db_manager.start_supervisor()
    log_application_lifecycle("startup_completed", {"startup_duration": f"{time.time() - startup_start_time:.3f}s"})

    yield

    shutdown_start_time = time.time()
    log_application_lifecycle("shutdown_initiated")
    try:
        await db_manager.disconnect()
    except Exception as e:
        log_error_with_context(e, {"operation": "database_disconnection"})
        raise
    log_application_lifecycle(
        "shutdown_completed", {"total_shutdown_duration": f"{time.time() - shutdown_start_time:.3f}s"}
    )


app = FastAPI(
    title="Family Budget API",
    description="""
    ## Family Budget API

    Shared household budgeting: one account per family, members with optional
    salaries, categorized expenses per member and always-consistent totals.

    ### Getting Started
    1. Register a family (or log in) to obtain a bearer token
    2. Add members and record their expenses
    3. Read the family to see total income, total expenses and per-member spending
    """,
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with the common error body."""
    logger.info("Request validation failed for %s %s: %s", request.method, request.url.path, exc.errors())
    detail = create_error_detail("VALIDATION_ERROR", "Invalid request data")
    detail["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Answer unexpected failures with a generic 500; details are exposed only in debug mode."""
    log_error_with_context(exc, {"method": request.method, "path": request.url.path}, operation="unhandled_request")
    detail = create_error_detail("INTERNAL_SERVER_ERROR", GENERIC_SERVER_ERROR_MESSAGE)
    if settings.DEBUG:
        detail["exception"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": detail})


app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_origins_list != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
log_application_lifecycle("middleware_configured", {"middleware": ["RequestLoggingMiddleware", "CORSMiddleware"]})

routers_config = [
    ("main", main_router, "Root and health check endpoints"),
    ("auth", auth_router, "Family registration and login"),
    ("family", family_router, "Family, member and expense endpoints"),
]

for router_name, router, description in routers_config:
    app.include_router(router, prefix=settings.API_PREFIX)
    logger.info("Successfully included %s router: %s", router_name, description)

log_application_lifecycle(
    "routers_configured",
    {"total_routers": len(routers_config), "routers": [name for name, _, _ in routers_config]},
)

instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=False,
    should_instrument_requests_inprogress=True,
)
instrumentator.instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")
log_application_lifecycle("prometheus_configured", {"metrics_endpoint": "/metrics"})


if __name__ == "__main__":
    uvicorn.run("family_budget.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG, log_level="info")
