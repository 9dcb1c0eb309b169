"""
Middleware modules for the CRM API.

Provides request processing middleware for:
- Correlation ID tracking for request tracing and log correlation
"""

from .correlation import (
    bind_request_id,
    CorrelationIdMiddleware,
    CorrelationLogFilter,
    configure_logging,
    correlation_id_ctx,
    request_id_ctx,
)

__all__ = [
    "bind_request_id",
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "configure_logging",
    "correlation_id_ctx",
    "request_id_ctx",
]
