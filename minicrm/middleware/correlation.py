"""
Correlation IDs for HTTP requests and queue messages.

Headers:
- X-Correlation-ID: Session-level ID from the client (persists across requests)
- X-Request-ID: Per-request unique identifier

A request that publishes a job and the consumer that later handles it log
under different request ids: the consumer binds the queue message id with
``bind_request_id`` for the duration of the handler.
"""

import uuid
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"


def generate_id() -> str:
    """Short unique id for log lines."""
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> str:
    return correlation_id_ctx.get() or "unknown"


def get_request_id() -> str:
    return request_id_ctx.get() or "unknown"


@contextmanager
def bind_request_id(request_id: str) -> Iterator[str]:
    """Set the request id for the enclosed block, restoring the previous one after."""
    token = request_id_ctx.set(request_id)
    try:
        yield request_id
    finally:
        request_id_ctx.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reads or generates both ids and echoes them on the response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID") or generate_id()
        request_id = request.headers.get("X-Request-ID") or generate_id()

        correlation_id_ctx.set(correlation_id)
        request.state.correlation_id = correlation_id
        request.state.request_id = request_id

        with bind_request_id(request_id):
            response = await call_next(request)

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Request-ID"] = request_id
        return response


class CorrelationLogFilter(logging.Filter):
    """Stamps ``correlation_id`` and ``request_id`` on every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.request_id = get_request_id()
        return True


def configure_logging(debug: bool = False) -> None:
    """Install the root handler used by the API and the worker processes."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationLogFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[handler],
    )
