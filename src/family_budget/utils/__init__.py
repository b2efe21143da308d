"""Utility modules for the Family Budget API."""

from .logging_utils import (
    RequestLoggingMiddleware,
    log_application_lifecycle,
    log_error_with_context,
    log_performance,
    log_security_event,
)
