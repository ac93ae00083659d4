# Route-level guards. They run the full request authorizer (which may read
# and write the users/sessions tables) and expose the principal on
# request.state.user. Token-level helpers without DB access live in
# src/base/auth/.

import logging

from fastapi import Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.core.dependencies import get_authorizer, get_db_session
from src.base.core.errors import ApiError
from src.base.models.user import AuthFailure, AuthUser
from src.domain.auth.authorizer import RequestAuthorizer

logger = logging.getLogger(__name__)


async def require_user(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    authorizer: RequestAuthorizer = Depends(get_authorizer),
) -> AuthUser:
    """Dependency that authorizes the request. Returns the user or raises."""
    result = await authorizer.authorize(request, session)
    if isinstance(result, AuthFailure):
        raise ApiError(result.status, result.error)
    request.state.user = result.user
    return result.user


async def require_admin(user: AuthUser = Depends(require_user)) -> AuthUser:
    """Dependency that additionally enforces admin access."""
    if not user.is_admin:
        logger.warning("Non-admin user %s denied admin route", user.id)
        raise ApiError(status.HTTP_403_FORBIDDEN, "Forbidden")
    return user
