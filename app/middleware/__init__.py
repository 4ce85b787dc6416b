"""
Middleware package.

WHY: Middleware provides cross-cutting concerns that apply to all
requests; here, request ids for log correlation.
"""

from app.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    RequestIdLogFilter,
    configure_logging,
    current_request_id,
    get_request_context,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "RequestIdLogFilter",
    "configure_logging",
    "current_request_id",
    "get_request_context",
]
