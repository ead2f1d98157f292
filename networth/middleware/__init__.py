"""
Middleware module initialization.
"""
from networth.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    get_correlation_id,
    log_performance,
    redact_sensitive_data,
    redact_sensitive_processor,
)

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "get_correlation_id",
    "redact_sensitive_data",
    "log_performance",
    "add_correlation_id_processor",
    "redact_sensitive_processor",
]
