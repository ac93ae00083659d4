import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.auth.auth_core import (
    clear_access_override_cookie,
    clear_session_cookie,
    get_session_token,
    set_access_override_cookie,
    set_session_cookie,
    verify_csrf_header,
)
from src.base.config.auth_config import AuthConfig
from src.base.core.dependencies import (
    get_auth_config,
    get_bootstrapper,
    get_db_session,
    get_rate_limiter,
    get_session_manager,
    get_user_service,
)
from src.base.core.errors import ApiError, read_json_object
from src.base.middleware.request_context import client_ip, client_user_agent
from src.base.utils.text_utils import normalize_email
from src.domain.auth.bootstrap import DefaultOwnerBootstrapper
from src.domain.auth.rate_limit import RateLimiter
from src.domain.auth.sessions import SessionManager
from src.domain.models.auth_schemas import (
    AuthResponse,
    InviteAcceptRequest,
    LoginRequest,
    OkResponse,
)
from src.domain.models.entities.user import User
from src.domain.services.user_service import MIN_PASSWORD_LENGTH, UserService

router = APIRouter(prefix="/auth", tags=["Auth"])
logger = logging.getLogger(__name__)

TOO_MANY_ATTEMPTS = "Too many attempts. Please try again later."

ERROR_MAP = {
    "invalid_credentials": (status.HTTP_401_UNAUTHORIZED, "Invalid credentials"),
    "account_disabled": (status.HTTP_403_FORBIDDEN, "Account disabled"),
    "invalid_invite": (status.HTTP_400_BAD_REQUEST, "Invalid or expired invite"),
    "invite_expired": (status.HTTP_400_BAD_REQUEST, "Invite expired"),
}


def _map_error(e: ValueError) -> ApiError:
    code = str(e)
    if code not in ERROR_MAP:
        raise e
    status_code, message = ERROR_MAP[code]
    return ApiError(status_code, message)


def require_csrf(request: Request) -> None:
    if not verify_csrf_header(request):
        raise ApiError(status.HTTP_403_FORBIDDEN, "CSRF validation failed")


async def enforce_rate_limit(
    limiter: RateLimiter, key: str, limit: int, window_ms: int
) -> None:
    result = await limiter.check(key, limit, window_ms)
    if not result.allowed:
        raise ApiError(
            status.HTTP_429_TOO_MANY_REQUESTS,
            TOO_MANY_ATTEMPTS,
            headers={"Retry-After": str(result.retry_after_seconds)},
        )


async def _start_session(
    request: Request,
    response: Response,
    session: AsyncSession,
    sessions: SessionManager,
    config: AuthConfig,
    user: User,
) -> None:
    issued = await sessions.create_session(
        session,
        user.id,
        user_agent=client_user_agent(request),
        ip=client_ip(request, config.trust_proxy_headers),
    )
    set_session_cookie(response, issued.token, issued.ttl)
    clear_access_override_cookie(response)


@router.post("", response_model=AuthResponse)
async def login(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter),
    bootstrapper: DefaultOwnerBootstrapper = Depends(get_bootstrapper),
    sessions: SessionManager = Depends(get_session_manager),
    service: UserService = Depends(get_user_service),
):
    """Log in with email and password and receive a session cookie."""
    require_csrf(request)
    limiter.maybe_cleanup()
    rate_key = f"login:{client_ip(request, config.trust_proxy_headers)}"
    await enforce_rate_limit(
        limiter, rate_key, config.login_rate_limit, config.rate_limit_window_ms
    )

    body = LoginRequest.model_validate(await read_json_object(request))
    email = normalize_email(body.email)
    if not email or not body.password:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Email and password required")

    await bootstrapper.ensure_default_owner()
    try:
        user = await service.authenticate(session, email, body.password)
    except ValueError as e:
        raise _map_error(e) from None

    await _start_session(request, response, session, sessions, config, user)
    await limiter.reset(rate_key)
    return AuthResponse(user=user.to_auth_user())


@router.put("", response_model=AuthResponse)
async def accept_invite(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    config: AuthConfig = Depends(get_auth_config),
    limiter: RateLimiter = Depends(get_rate_limiter),
    sessions: SessionManager = Depends(get_session_manager),
    service: UserService = Depends(get_user_service),
):
    """Redeem an invite token: set a password and log in."""
    require_csrf(request)
    limiter.maybe_cleanup()
    rate_key = f"invite:{client_ip(request, config.trust_proxy_headers)}"
    await enforce_rate_limit(
        limiter, rate_key, config.invite_rate_limit, config.rate_limit_window_ms
    )

    body = InviteAcceptRequest.model_validate(await read_json_object(request))
    if not body.token or not body.password:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Token and password required")
    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST, "Password must be at least 8 characters."
        )

    try:
        user = await service.accept_invite(
            session, body.token, body.password, body.name or None
        )
    except ValueError as e:
        raise _map_error(e) from None

    await _start_session(request, response, session, sessions, config, user)
    await limiter.reset(rate_key)
    return AuthResponse(user=user.to_auth_user())


@router.delete("", response_model=OkResponse)
async def logout(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_db_session),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Destroy the current session. Always succeeds."""
    require_csrf(request)
    await sessions.destroy_session(session, get_session_token(request))
    clear_session_cookie(response)
    set_access_override_cookie(response)
    return OkResponse()
