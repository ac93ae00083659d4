import logging

from fastapi import Request, Response

logger = logging.getLogger(__name__)

SESSION_COOKIE = "pm_session"
ACCESS_OVERRIDE_COOKIE = "pm_access_override"
ACCESS_OVERRIDE_MAX_AGE = 15 * 60

CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"
CSRF_SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def verify_csrf_header(request: Request) -> bool:
    """Require the custom X-Requested-With header on state-changing requests."""
    if request.method.upper() in CSRF_SAFE_METHODS:
        return True
    valid = request.headers.get(CSRF_HEADER) == CSRF_HEADER_VALUE
    if not valid:
        logger.warning(
            "CSRF header missing for %s %s", request.method, request.url.path
        )
    return valid


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE) or None


def has_access_override(request: Request) -> bool:
    return request.cookies.get(ACCESS_OVERRIDE_COOKIE) == "1"


def _set_cookie(response: Response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=True,
        samesite="lax",
    )


def set_session_cookie(response: Response, token: str, max_age: int) -> None:
    _set_cookie(response, SESSION_COOKIE, token, max_age)


def clear_session_cookie(response: Response) -> None:
    _set_cookie(response, SESSION_COOKIE, "", 0)


def set_access_override_cookie(response: Response) -> None:
    """Ask the next requests to skip SSO and rely on a local session only."""
    _set_cookie(response, ACCESS_OVERRIDE_COOKIE, "1", ACCESS_OVERRIDE_MAX_AGE)


def clear_access_override_cookie(response: Response) -> None:
    _set_cookie(response, ACCESS_OVERRIDE_COOKIE, "", 0)
