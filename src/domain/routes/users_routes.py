import logging

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.core.dependencies import get_db_session, get_user_service
from src.base.core.errors import ApiError, read_json_object
from src.base.models.user import AuthUser
from src.base.utils.text_utils import is_valid_email
from src.domain.auth.authorization import require_admin
from src.domain.models.auth_schemas import OkResponse
from src.domain.models.user_schemas import (
    UserAdminCreate,
    UserAdminResponse,
    UserAdminUpdate,
    UserUpdateResponse,
)
from src.domain.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Admin"])
logger = logging.getLogger(__name__)

ERROR_MAP = {
    "user_exists": (status.HTTP_409_CONFLICT, "User already exists"),
    "user_not_found": (status.HTTP_404_NOT_FOUND, "Not found"),
}


def _map_error(e: ValueError) -> ApiError:
    code = str(e)
    if code not in ERROR_MAP:
        raise e
    return ApiError(*ERROR_MAP[code])


def _require_id(user_id: str | None) -> str:
    if not user_id:
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Missing id")
    return user_id


def _base_url(request: Request) -> str:
    return f"{request.url.scheme}://{request.url.netloc}"


@router.get("", response_model=list[UserAdminResponse])
async def list_users(
    admin: AuthUser = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
):
    """List every user, newest first (admin only)."""
    users = await service.list_users(session)
    return [UserAdminResponse.from_user(u) for u in users]


@router.post("", response_model=UserAdminResponse)
async def invite_user(
    request: Request,
    response: Response,
    admin: AuthUser = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
):
    """Invite a user by email, or re-invite a disabled one (admin only)."""
    body = UserAdminCreate.model_validate(await read_json_object(request))
    if not body.name or not body.email or not is_valid_email(body.email):
        raise ApiError(status.HTTP_400_BAD_REQUEST, "Name and valid email required")

    try:
        user, created = await service.invite_user(
            session,
            name=body.name,
            email=body.email,
            features=body.features,
            is_admin=body.is_admin,
            is_approver=body.is_approver,
            base_url=_base_url(request),
        )
    except ValueError as e:
        raise _map_error(e) from None

    if created:
        response.status_code = status.HTTP_201_CREATED
    logger.info("Admin %s invited %s", admin.id, user.id)
    return UserAdminResponse.from_user(user)


@router.put("", response_model=UserUpdateResponse)
async def update_user(
    request: Request,
    user_id: str | None = Query(None, alias="id"),
    admin: AuthUser = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
):
    """Edit a user's profile, flags or status, or resend their invite (admin only)."""
    user_id = _require_id(user_id)
    body = UserAdminUpdate.model_validate(await read_json_object(request))

    try:
        user, invite_resent = await service.update_user(
            session,
            user_id,
            name=body.name,
            features=body.features,
            is_admin=body.is_admin,
            is_approver=body.is_approver,
            status=body.status,
            resend_invite=body.resend_invite,
            base_url=_base_url(request),
        )
    except ValueError as e:
        raise _map_error(e) from None

    return UserUpdateResponse(
        user=UserAdminResponse.from_user(user), invite_resent=invite_resent
    )


@router.delete("", response_model=OkResponse)
async def disable_user(
    user_id: str | None = Query(None, alias="id"),
    admin: AuthUser = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
):
    """Disable a user and sign them out everywhere (admin only)."""
    user_id = _require_id(user_id)
    try:
        await service.disable_user(session, user_id)
    except ValueError as e:
        raise _map_error(e) from None
    logger.info("Admin %s disabled %s", admin.id, user_id)
    return OkResponse()
