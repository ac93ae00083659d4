import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.auth.auth_core import set_session_cookie
from src.base.config.auth_config import AuthConfig
from src.base.core.dependencies import (
    get_auth_config,
    get_db_session,
    get_session_manager,
    get_user_service,
)
from src.base.core.errors import ApiError, read_json_object
from src.base.middleware.request_context import client_ip, client_user_agent
from src.base.models.user import AuthUser
from src.domain.auth.authorization import require_user
from src.domain.auth.sessions import SessionManager
from src.domain.models.auth_schemas import (
    PasswordChangeRequest,
    PasswordChangeResponse,
)
from src.domain.services.user_service import MIN_PASSWORD_LENGTH, UserService

router = APIRouter(prefix="/password", tags=["Auth"])
logger = logging.getLogger(__name__)

ERROR_MAP = {
    "user_not_found": (status.HTTP_404_NOT_FOUND, "User not found"),
    "account_disabled": (status.HTTP_403_FORBIDDEN, "Account disabled"),
    "current_password_required": (
        status.HTTP_400_BAD_REQUEST,
        "Current password required",
    ),
    "current_password_incorrect": (
        status.HTTP_400_BAD_REQUEST,
        "Current password is incorrect",
    ),
}


@router.put("", response_model=PasswordChangeResponse)
async def change_password(
    request: Request,
    response: Response,
    user: AuthUser = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    config: AuthConfig = Depends(get_auth_config),
    sessions: SessionManager = Depends(get_session_manager),
    service: UserService = Depends(get_user_service),
):
    """Set or change the caller's password. Every other session is signed out."""
    body = PasswordChangeRequest.model_validate(await read_json_object(request))
    if len(body.new_password) < MIN_PASSWORD_LENGTH:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST, "New password must be at least 8 characters."
        )

    try:
        await service.change_password(
            session, user.id, body.current_password, body.new_password
        )
    except ValueError as e:
        code = str(e)
        if code not in ERROR_MAP:
            raise
        raise ApiError(*ERROR_MAP[code]) from None

    issued = await sessions.create_session(
        session,
        user.id,
        user_agent=client_user_agent(request),
        ip=client_ip(request, config.trust_proxy_headers),
    )
    set_session_cookie(response, issued.token, issued.ttl)
    return PasswordChangeResponse()
