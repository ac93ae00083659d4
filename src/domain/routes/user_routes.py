import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.core.dependencies import get_db_session, get_user_service
from src.base.core.errors import ApiError, read_json_object
from src.base.models.user import AuthUser
from src.base.utils.time_utils import utcnow
from src.domain.auth.authorization import require_user
from src.domain.models.user_schemas import (
    CurrentUserResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
)
from src.domain.services.user_service import MAX_AVATAR_LENGTH, UserService

router = APIRouter(prefix="/user", tags=["User"])
logger = logging.getLogger(__name__)


@router.get("", response_model=CurrentUserResponse)
async def get_current_user(user: AuthUser = Depends(require_user)):
    """Return the authenticated principal."""
    return CurrentUserResponse(**user.model_dump(), ts=utcnow())


@router.put("", response_model=ProfileUpdateResponse)
async def update_profile(
    request: Request,
    user: AuthUser = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
    service: UserService = Depends(get_user_service),
):
    """Change the caller's display name and/or avatar."""
    body = ProfileUpdate.model_validate(await read_json_object(request))
    if body.avatar and len(body.avatar) > MAX_AVATAR_LENGTH:
        raise ApiError(
            status.HTTP_400_BAD_REQUEST,
            "Avatar too large. Please upload an image under 200KB.",
        )

    try:
        updated = await service.update_profile(
            session,
            user.id,
            name=body.name,
            avatar=body.avatar,
            avatar_given=body.avatar_given,
        )
    except ValueError as e:
        code = str(e)
        if code == "no_changes":
            raise ApiError(
                status.HTTP_400_BAD_REQUEST, "No changes requested."
            ) from None
        if code == "user_not_found":
            raise ApiError(status.HTTP_404_NOT_FOUND, "User not found") from None
        raise

    return ProfileUpdateResponse(user=updated.to_auth_user())
