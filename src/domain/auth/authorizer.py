"""
Request authorization chain.

Order: CSRF gate, default-owner bootstrap, dev bypass, session cookie,
SSO identity, otherwise 401. The first step that decides wins.
"""

import logging

from fastapi import Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.auth.auth_core import has_access_override, verify_csrf_header
from src.base.config.auth_config import AuthConfig
from src.base.models.user import AuthFailure, AuthResult, AuthSuccess, AuthUser
from src.base.utils.text_utils import normalize_email
from src.domain.auth.access import AccessIdentityResolver
from src.domain.auth.bootstrap import DefaultOwnerBootstrapper
from src.domain.auth.sessions import SessionManager

logger = logging.getLogger(__name__)

DEV_USER_ID = "dev"


class RequestAuthorizer:
    def __init__(
        self,
        config: AuthConfig,
        bootstrapper: DefaultOwnerBootstrapper,
        sessions: SessionManager,
        access: AccessIdentityResolver,
    ):
        self._config = config
        self._bootstrapper = bootstrapper
        self._sessions = sessions
        self._access = access

    async def authorize(self, request: Request, session: AsyncSession) -> AuthResult:
        if not verify_csrf_header(request):
            return AuthFailure(
                status=status.HTTP_403_FORBIDDEN, error="CSRF validation failed"
            )

        await self._bootstrapper.ensure_default_owner()

        if self._config.dev_bypass_requested:
            if self._config.deployed:
                logger.warning(
                    "Unauthenticated access requested in a deployed environment; ignoring"
                )
            else:
                return self._dev_user()

        user = await self._sessions.authorize_via_session(session, request.cookies)
        if user is not None:
            return AuthSuccess(user=user)

        if not self._config.access_require_session and not has_access_override(request):
            outcome = await self._access.authorize_via_access(request, session)
            if isinstance(outcome, AuthFailure):
                return outcome
            if outcome is not None:
                return AuthSuccess(user=outcome)

        return AuthFailure(status=status.HTTP_401_UNAUTHORIZED, error="Unauthorized")

    def _dev_user(self) -> AuthResult:
        email = normalize_email(self._config.dev_auth_email)
        if not email:
            logger.warning("Dev bypass is on but DEV_AUTH_EMAIL is not set")
            return AuthFailure(status=status.HTTP_401_UNAUTHORIZED, error="Unauthorized")
        return AuthSuccess(
            user=AuthUser(
                id=DEV_USER_ID,
                email=email,
                name=self._config.dev_auth_name or email,
                is_admin=self._config.dev_auth_is_admin,
                is_approver=self._config.dev_auth_is_approver,
                status="active",
                features=list(self._config.dev_auth_features),
                has_password=True,
            )
        )
