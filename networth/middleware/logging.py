"""
Logging middleware and structlog processors.

Tags every request with a correlation id, logs request timing and keeps
credentials and account identifiers out of log output.
"""
import asyncio
import functools
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable, Optional

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

CORRELATION_HEADER = "X-Correlation-ID"

# Context variable for correlation ID (task-local)
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)

# Substrings of keys whose values never reach the logs
SENSITIVE_FIELDS = {
    "password", "token", "authorization", "api_key", "secret",
    "account_number", "pan_number", "aadhaar", "ssn",
}

MAX_REDACT_DEPTH = 5
SLOW_REQUEST_MS = 2000


def get_correlation_id() -> str:
    """Get the current request's correlation ID."""
    return correlation_id.get()


def _is_sensitive(key: str) -> bool:
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS)


def redact_sensitive_data(data: Any, depth: int = 0) -> Any:
    """
    Recursively replace sensitive values with "[REDACTED]".

    Args:
        data: Mapping (or list of mappings) to redact
        depth: Current recursion depth

    Returns:
        Copy of data with sensitive values replaced
    """
    if depth > MAX_REDACT_DEPTH:
        return data
    if isinstance(data, list):
        return [redact_sensitive_data(item, depth + 1) for item in data]
    if not isinstance(data, dict):
        return data

    return {
        key: "[REDACTED]" if isinstance(key, str) and _is_sensitive(key) else redact_sensitive_data(value, depth + 1)
        for key, value in data.items()
    }


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware that adds a correlation ID to each request and response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        token = correlation_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id.reset(token)

        response.headers[CORRELATION_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs every API request with its duration."""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.query_params) if request.query_params else None,
            "client_ip": request.client.host if request.client else None,
            "user_id": request.headers.get("X-User-ID"),
        }
        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                **request_info,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info("request_completed", **request_info, status_code=response.status_code, duration_ms=duration_ms)
        if duration_ms > SLOW_REQUEST_MS:
            logger.warning("slow_request", **request_info, duration_ms=duration_ms)
        return response


def log_performance(operation_name: str):
    """
    Decorator that logs the duration of a sync or async callable.

    Usage:
        @log_performance("parse_pipeline")
        async def run(self, ...):
            ...
    """
    def decorator(func: Callable) -> Callable:
        def _finish(start_time: float, error: Optional[Exception] = None) -> None:
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
            if error is None:
                logger.info("operation_completed", operation=operation_name, duration_ms=duration_ms)
            else:
                logger.error(
                    "operation_failed",
                    operation=operation_name,
                    error=str(error),
                    error_type=type(error).__name__,
                    duration_ms=duration_ms,
                )

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _finish(start_time, e)
                raise
            _finish(start_time)
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _finish(start_time, e)
                raise
            _finish(start_time)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def add_correlation_id_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that adds the correlation ID to every entry."""
    request_id = get_correlation_id()
    if request_id:
        event_dict["correlation_id"] = request_id
    return event_dict


def redact_sensitive_processor(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Structlog processor that redacts sensitive values from entries."""
    return redact_sensitive_data(event_dict)
