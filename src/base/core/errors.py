"""
Uniform JSON error responses.

Every expected failure is rendered as ``{"error": <message>}`` with the
matching status code; nothing internal (traces, ids) reaches the client.
"""

import json
import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.base.utils.text_utils import well_formed_json

logger = logging.getLogger(__name__)

INVALID_JSON = "Invalid JSON"


class ApiError(Exception):
    """An expected failure that maps directly onto an HTTP status and message."""

    def __init__(
        self,
        status_code: int,
        message: str,
        headers: dict[str, str] | None = None,
    ):
        self.status_code = status_code
        self.message = message
        self.headers = headers
        super().__init__(message)


def error_response(
    status_code: int, message: str, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"error": message}, headers=headers
    )


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("ApiError %s: %s", exc.status_code, exc.message)
    else:
        logger.info("ApiError %s: %s", exc.status_code, exc.message)
    return error_response(exc.status_code, exc.message, exc.headers)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail), exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Request validation failed for %s", request.url.path)
    return error_response(status.HTTP_400_BAD_REQUEST, INVALID_JSON)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)


async def read_json_object(request: Request) -> dict[str, Any]:
    """Read the request body as a JSON object, or fail with 400 "Invalid JSON"."""
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        raise ApiError(status.HTTP_400_BAD_REQUEST, INVALID_JSON) from None
    if not isinstance(payload, dict):
        raise ApiError(status.HTTP_400_BAD_REQUEST, INVALID_JSON)
    return well_formed_json(payload)
