import logging
from contextvars import ContextVar

from fastapi import Request

# Request-scoped properties copied onto every log record (ip, method, path).
request_context: ContextVar[dict[str, str] | None] = ContextVar(
    "request_context", default=None
)

USER_AGENT_MAX_LENGTH = 255


def set_request_context(key: str, value: str) -> None:
    """Set a key in the request context. Creates a new dict if needed."""
    ctx = request_context.get(None)
    if ctx is None:
        ctx = {}
        request_context.set(ctx)
    ctx[key] = value


def reset_request_context() -> None:
    """Reset the request context. Call at the start of each request."""
    request_context.set(None)


def client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """
    Originating client address.

    Proxy headers are client-controlled unless a trusted proxy sets them, so
    they are only consulted when ``trust_proxy_headers`` is on; otherwise the
    socket peer is used.
    """
    if trust_proxy_headers:
        connecting_ip = (request.headers.get("cf-connecting-ip") or "").strip()
        if connecting_ip:
            return connecting_ip
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # First entry is the original client
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    if request.client and request.client.host:
        return request.client.host
    return "anon"


def client_user_agent(request: Request) -> str:
    return (request.headers.get("user-agent") or "")[:USER_AGENT_MAX_LENGTH]


class RequestContextFilter(logging.Filter):
    """Logging filter that adds all request context properties to log records."""

    def filter(self, record):
        for key in ("ip", "method", "path"):
            if not hasattr(record, key):
                setattr(record, key, "")
        ctx = request_context.get(None)
        if ctx:
            for key, value in ctx.items():
                setattr(record, key, value)
        return True
