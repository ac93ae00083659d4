import logging
import uuid
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.base.middleware.request_context import (
    client_ip,
    reset_request_context,
    set_request_context,
)

# Context variable to store correlation ID
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

logger = logging.getLogger(__name__)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation ID and its client context for log tracing."""

    async def dispatch(self, request: Request, call_next):
        correlation_id_value = request.headers.get(
            "x-correlation-id", str(uuid.uuid4())
        )
        correlation_id.set(correlation_id_value)

        reset_request_context()
        config = getattr(request.app.state, "auth_config", None)
        trust_proxy = bool(config and config.trust_proxy_headers)
        set_request_context("ip", client_ip(request, trust_proxy))
        set_request_context("method", request.method)
        set_request_context("path", request.url.path)

        logger.debug("Assigned correlation ID to request")

        response: Response = await call_next(request)
        response.headers["x-correlation-id"] = correlation_id_value

        return response


class CorrelationFilter(logging.Filter):
    """Logging filter to add correlation ID to log records."""

    def filter(self, record):
        record.correlation_id = correlation_id.get("")
        return True
