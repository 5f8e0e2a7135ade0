"""
Structured logging helpers shared across the application.

- `log_application_lifecycle`: startup/shutdown milestones with timing details
- `log_error_with_context`: exceptions with the operation context they occurred in
- `log_security_event`: security audit lines (mirrors persisted security events)
- `log_performance`: decorator timing sync and async callables
- `RequestLoggingMiddleware`: one line per HTTP request with status and duration
"""

import functools
import inspect
import json
import time
import uuid
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from brandlink.managers.logging_manager import get_logger

lifecycle_logger = get_logger(prefix="[LIFECYCLE]")
error_logger = get_logger(prefix="[ERROR]")
security_logger = get_logger(prefix="[SECURITY]")
perf_logger = get_logger(prefix="[PERFORMANCE]")
request_logger = get_logger(prefix="[REQUEST]")

SLOW_OPERATION_SECONDS = 1.0


def log_application_lifecycle(event: str, details: Optional[Dict[str, Any]] = None) -> None:
    lifecycle_logger.info("%s %s", event, json.dumps(details or {}, default=str))


def log_error_with_context(error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception together with the operation context it was raised in."""
    error_logger.error(
        "%s: %s | context=%s",
        type(error).__name__,
        error,
        json.dumps(context or {}, default=str),
        exc_info=error,
    )


def log_security_event(
    event_type: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    event = {
        "event_type": event_type,
        "user_id": user_id,
        "ip_address": ip_address,
        "success": success,
        "details": details or {},
    }
    if success:
        security_logger.info("SECURITY_EVENT: %s", json.dumps(event, default=str))
    else:
        security_logger.warning("SECURITY_EVENT: %s", json.dumps(event, default=str))


def log_performance(operation: str) -> Callable:
    """
    Decorator that logs how long `operation` took.

    Works for both coroutine functions and plain functions. Calls slower than one
    second are logged as warnings.
    """

    def decorator(func: Callable) -> Callable:
        def _report(start: float) -> None:
            duration = time.time() - start
            if duration > SLOW_OPERATION_SECONDS:
                perf_logger.warning("%s took %.3fs", operation, duration)
            else:
                perf_logger.debug("%s took %.3fs", operation, duration)

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.time()
                try:
                    return await func(*args, **kwargs)
                finally:
                    _report(start)

            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.time()
            try:
                return func(*args, **kwargs)
            finally:
                _report(start)

        return sync_wrapper

    return decorator


def get_client_ip(request: Request) -> str:
    """Client IP, honouring `X-Forwarded-For` from a reverse proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and tags the response with an `X-Request-ID`."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.time()

        response = await call_next(request)

        duration = time.time() - start
        request_logger.info(
            "%s %s -> %d in %.3fs (ip=%s, id=%s)",
            request.method,
            request.url.path,
            response.status_code,
            duration,
            get_client_ip(request),
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
