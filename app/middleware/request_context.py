"""
Request context middleware and log correlation.

WHAT: Assigns every request an id, keeps it in a ContextVar for the
duration of the request, and stamps it on every log record.

WHY: A single status change touches the router, the order service, the
history ledger and the notification dispatcher. With the request id on
each log line, one grep reconstructs what happened to an order.

HOW:
- RequestContextMiddleware stores a RequestContext in request.state and
  in a ContextVar, and echoes the id in the X-Request-ID header.
- RequestIdLogFilter copies the current id onto log records (``-`` when
  outside a request, e.g. scheduler jobs).
- configure_logging installs the format and filter on the root logger.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped data available to services without the request object.

    Fields:
    - request_id: Caller-supplied X-Request-ID or a fresh UUID4
    - path / method: For log lines
    - client_ip: Direct peer address (no proxy header parsing)
    """

    request_id: str
    path: str
    method: str
    client_ip: Optional[str] = None


_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Current request context, or None outside a request.

    Example:
        >>> ctx = get_request_context()
        >>> request_id = ctx.request_id if ctx else None
    """
    return _request_context.get()


def current_request_id() -> Optional[str]:
    context = _request_context.get()
    return context.request_id if context else None


class RequestIdLogFilter(logging.Filter):
    """Adds ``request_id`` to every record so the format string can use it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id() or "-"
        return True


def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging once at startup.

    Re-running replaces the handler instead of stacking a second one.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    for handler in list(root.handlers):
        if getattr(handler, "_payment_orders_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdLogFilter())
    handler._payment_orders_handler = True
    root.addHandler(handler)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates the request context.

    WHY: Clients (and upstream proxies) may send their own X-Request-ID;
    reusing it lets support trace a request across systems.

    Example:
        @app.get("/api/example")
        async def example(request: Request):
            print(request.state.context.request_id)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        context = RequestContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            client_ip=request.client.host if request.client else None,
        )
        request.state.context = context
        token = _request_context.set(context)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.debug(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({elapsed_ms:.1f} ms)"
            )
            return response
        finally:
            _request_context.reset(token)
