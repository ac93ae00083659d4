import logging

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.base.core.errors import error_response

logger = logging.getLogger(__name__)


class GlobalExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    Middleware that turns unhandled exceptions into a generic JSON 500.

    The traceback is logged; the client only ever sees {"error": "Internal server error"}.
    """

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next):
        try:
            response = await call_next(request)
            return response

        except Exception as ex:
            return self._handle_exception(request, ex)

    # ------------------------
    # Internal helpers
    # ------------------------
    def _handle_exception(self, request: Request, ex: Exception):
        logger.error(
            "Unhandled exception occurred",
            exc_info=ex,
            extra={"path": request.url.path},
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
        )
