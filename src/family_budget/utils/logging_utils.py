"""Logging helpers shared by the budget routes, services and managers.

Request logs are tagged with the family and member a URL addresses, so a
single household's activity can be followed through the request, security
and error logs. Passwords, tokens and hashes never reach a log line.
"""

import asyncio
from datetime import datetime, timezone
import functools
import re
import time
import traceback
from typing import Any, Callable, Dict, Optional
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from family_budget.managers.logging_manager import get_logger

REDACTED = "<REDACTED>"
REDACTED_FIELDS = frozenset({"password", "token", "secret", "authorization", "credential", "hash"})
SLOW_REQUEST_SECONDS = 1.0
SLOW_OPERATION_SECONDS = 2.0
MAX_LOGGED_VALUE = 100

_FAMILY_PATH = re.compile(r"/family/(?P<family_id>[^/]+)(?:/members/(?P<member_id>[^/]+))?")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_secret(field: str) -> bool:
    field = field.lower()
    return any(marker in field for marker in REDACTED_FIELDS)


def _clip(value: Any) -> str:
    text = str(value)
    if len(text) > MAX_LOGGED_VALUE:
        return text[:MAX_LOGGED_VALUE] + "..."
    return text


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of `fields` with password, token and hash values masked."""
    return {key: REDACTED if _is_secret(key) else value for key, value in fields.items()}


def get_client_ip(request: Request) -> str:
    """Client address, honouring the first hop of a proxy chain."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.headers.get("x-real-ip") or getattr(request.client, "host", "unknown")


def describe_route(path: str) -> Dict[str, Optional[str]]:
    """
    Classify a request path for the request log.

    Returns the area of the API (auth, family or system) and, for family
    routes, the family and member ids taken from the URL.
    """
    match = _FAMILY_PATH.search(path)
    if match:
        return {"area": "family", "family_id": match.group("family_id"), "member_id": match.group("member_id")}
    if "/auth/" in path:
        return {"area": "auth", "family_id": None, "member_id": None}
    return {"area": "system", "family_id": None, "member_id": None}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each budget API call with the family it targets, its outcome and its latency."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = get_logger(name="Family_Budget_Requests", prefix="[REQUEST]")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        path = request.url.path
        record: Dict[str, Any] = {
            "request_id": uuid.uuid4().hex[:8],
            "method": request.method,
            "path": path,
            "client_ip": get_client_ip(request),
            **describe_route(path),
        }
        request.state.request_id = record["request_id"]

        self.logger.debug({"event": "budget_request", "timestamp": _now(), **record})

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                {
                    "event": "budget_request_failed",
                    "timestamp": _now(),
                    **record,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 1),
                    "error_type": type(e).__name__,
                    "stack_trace": traceback.format_exc(),
                }
            )
            raise

        elapsed = time.perf_counter() - started
        record.update(status_code=response.status_code, duration_ms=round(elapsed * 1000, 1))
        if record["area"] == "auth" and response.status_code == 401:
            record["auth_rejected"] = True

        self.logger.info({"event": "budget_response", "timestamp": _now(), **record})
        if elapsed > SLOW_REQUEST_SECONDS:
            self.logger.warning({"event": "slow_budget_request", "timestamp": _now(), **record})
        return response


def _sanitize_args(args: tuple, kwargs: dict) -> dict:
    """Render call arguments for a debug line, masking anything that looks like a credential."""
    sanitized: Dict[str, Any] = {}
    if args:
        sanitized["args"] = [REDACTED if _is_secret(str(arg)) else _clip(arg) for arg in args]
    if kwargs:
        sanitized["kwargs"] = {key: REDACTED if _is_secret(key) else _clip(value) for key, value in kwargs.items()}
    return sanitized


def log_performance(operation_name: str, log_args: bool = False):
    """
    Decorator timing a budget operation.

    Failures are logged at info level and re-raised; anything slower than
    SLOW_OPERATION_SECONDS is also reported as a warning.

    Args:
        operation_name: Name of the operation for logging
        log_args: Whether to log call arguments (credentials are masked)
    """

    def decorator(func: Callable) -> Callable:
        logger = get_logger(name="Family_Budget_Performance", prefix="[PERFORMANCE]")

        def begin(args, kwargs):
            operation_id = uuid.uuid4().hex[:8]
            if log_args and (args or kwargs):
                logger.debug("[%s] %s started with %s", operation_id, operation_name, _sanitize_args(args, kwargs))
            else:
                logger.debug("[%s] %s started", operation_id, operation_name)
            return operation_id, time.perf_counter()

        def failed(operation_id, started, error):
            logger.info(
                "[%s] %s failed after %.3fs: %s", operation_id, operation_name, time.perf_counter() - started, error
            )

        def finished(operation_id, started):
            elapsed = time.perf_counter() - started
            logger.debug("[%s] %s finished in %.3fs", operation_id, operation_name, elapsed)
            if elapsed > SLOW_OPERATION_SECONDS:
                logger.warning("[%s] Slow budget operation %s: %.3fs", operation_id, operation_name, elapsed)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            operation_id, started = begin(args, kwargs)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                failed(operation_id, started, e)
                raise
            finished(operation_id, started)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            operation_id, started = begin(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                failed(operation_id, started, e)
                raise
            finished(operation_id, started)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def log_security_event(
    event_type: str,
    family_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
):
    """
    Record an authentication decision for a family account.

    Args:
        event_type: registration, login, token_validation, ...
        family_id: Id of the family involved, when one was resolved
        ip_address: Client address, when known
        success: Whether access was granted
        details: Extra fields; `name` is lifted to `family_name` and `reason` to `reason`
    """
    logger = get_logger(name="Family_Budget_Security", prefix="[SECURITY]")

    extra = redact(details or {})
    event_data = {
        "event_type": event_type,
        "timestamp": _now(),
        "outcome": "granted" if success else "denied",
        "family_id": family_id or "unresolved",
        "family_name": extra.pop("name", None),
        "reason": extra.pop("reason", None),
        "ip_address": ip_address or "unknown",
    }
    if extra:
        event_data["details"] = extra

    log = logger.info if success else logger.warning
    log("Family auth %s %s: %s", event_type, event_data["outcome"], event_data)


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None):
    """Log a startup or shutdown step of the budget service."""
    logger = get_logger(name="Family_Budget_Lifecycle", prefix="[LIFECYCLE]")
    logger.info("Service %s: %s", event, {"event": event, "timestamp": _now(), **(details or {})})


def log_error_with_context(error: Exception, context: Optional[Dict[str, Any]] = None, operation: Optional[str] = None):
    """
    Log an unexpected failure with its stack trace.

    Args:
        error: The exception that occurred
        context: Family or member ids and other values describing the failed call
        operation: Name of the operation that failed
    """
    logger = get_logger(name="Family_Budget_Errors", prefix="[ERROR]")

    context = redact(context or {})
    error_data = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "timestamp": _now(),
        "operation": operation or "unknown",
        "family_id": context.pop("family_id", None),
        "stack_trace": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }
    if context:
        error_data["context"] = {key: _clip(value) for key, value in context.items()}

    logger.error("Budget operation failed: %s", error_data)
