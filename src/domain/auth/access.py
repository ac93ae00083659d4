"""
Identity resolution for requests that arrive through the SSO access proxy.

The proxy forwards a signed assertion header; we exchange it at the team's
identity endpoint, map the returned email to a local user and provision one
when allowed.
"""

import json
import logging
from typing import Any, Mapping

import httpx
from fastapi import Request, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.auth.crypto import random_id
from src.base.config.auth_config import AuthConfig
from src.base.models.user import AuthFailure, AuthUser
from src.base.utils.text_utils import normalize_email
from src.base.utils.time_utils import utcnow
from src.domain.models.entities.enums import UserStatus
from src.domain.models.entities.user import User

logger = logging.getLogger(__name__)

ASSERTION_HEADER = "cf-access-jwt-assertion"

# Provider responses vary; candidates are tried in order, first non-empty string wins.
EMAIL_FIELDS: tuple[tuple[str, ...], ...] = (
    ("email",),
    ("user_email",),
    ("user",),
    ("identity",),
    ("login",),
    ("payload", "email"),
)
NAME_FIELDS: tuple[tuple[str, ...], ...] = (
    ("name",),
    ("user_name",),
    ("payload", "name"),
)


class AccessIdentity(BaseModel):
    email: str
    name: str
    # False when the name is only the email fallback
    name_provided: bool = False


def first_present(
    data: Mapping[str, Any], candidates: tuple[tuple[str, ...], ...]
) -> str | None:
    """Return the first non-empty string found along the candidate key paths."""
    for path in candidates:
        value: Any = data
        for key in path:
            if not isinstance(value, Mapping):
                value = None
                break
            value = value.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def identity_from_payload(payload: Any) -> AccessIdentity | None:
    if not isinstance(payload, Mapping):
        return None
    email_candidate = first_present(payload, EMAIL_FIELDS)
    email = normalize_email(email_candidate)
    if not email:
        return None
    name = first_present(payload, NAME_FIELDS)
    return AccessIdentity(
        email=email,
        name=name or email_candidate or email,
        name_provided=name is not None,
    )


class AccessIdentityResolver:
    def __init__(self, config: AuthConfig, http_client: httpx.AsyncClient):
        self._config = config
        self._http = http_client

    @property
    def enabled(self) -> bool:
        return self._config.access_configured

    @property
    def identity_url(self) -> str:
        return f"https://{self._config.access_team_domain}/cdn-cgi/access/get-identity"

    async def fetch_identity(self, request: Request) -> AccessIdentity | None:
        """Exchange the forwarded assertion for an identity; any failure means no identity."""
        if not self.enabled:
            return None
        assertion = request.headers.get(ASSERTION_HEADER)
        if not assertion:
            return None
        if not assertion.isascii():
            # Header values must stay ASCII on the outbound request
            logger.warning("Ignoring non-ASCII access assertion")
            return None

        try:
            response = await self._http.get(
                self.identity_url,
                headers={
                    "cf-access-client-id": self._config.access_client_id,
                    "cf-access-client-secret": self._config.access_client_secret,
                    ASSERTION_HEADER: assertion,
                },
                timeout=self._config.access_timeout_seconds,
            )
        except httpx.HTTPError as e:
            logger.warning("Access identity lookup failed: %s", e)
            return None

        if not response.is_success:
            logger.warning(
                "Access identity lookup returned status %s", response.status_code
            )
            return None

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Access identity response was not valid JSON")
            return None

        identity = identity_from_payload(payload)
        if identity is None:
            logger.warning("Access identity response carried no usable email")
        return identity

    async def authorize_via_access(
        self, request: Request, session: AsyncSession
    ) -> AuthUser | AuthFailure | None:
        """
        Resolve the request's SSO identity to a local user.

        Returns:
            AuthUser on success, AuthFailure(403) for an explicitly rejected
            identity, or None when no identity could be established.
        """
        identity = await self.fetch_identity(request)
        if identity is None:
            return None

        allowed = self._config.access_allowed_emails
        if allowed and identity.email not in allowed:
            logger.warning("Access identity %s is not on the allow-list", identity.email)
            return AuthFailure(status=status.HTTP_403_FORBIDDEN, error="Forbidden")

        user = await self._ensure_user(session, identity)
        if user is None:
            return None
        if user.is_disabled:
            logger.warning("Disabled user %s rejected via Access", identity.email)
            return AuthFailure(status=status.HTTP_403_FORBIDDEN, error="Forbidden")
        return user.to_auth_user()

    async def _find_by_email(self, session: AsyncSession, email: str) -> User | None:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def _ensure_user(
        self, session: AsyncSession, identity: AccessIdentity
    ) -> User | None:
        is_admin = identity.email in self._config.admin_emails
        existing = await self._find_by_email(session, identity.email)
        if existing is not None:
            await self._sync_user(session, existing, identity, is_admin)
            return existing

        if not self._config.access_auto_provision:
            logger.info("Auto-provision disabled; unknown Access user %s", identity.email)
            return None

        now = utcnow()
        user = User(
            id=random_id("usr_"),
            email=identity.email,
            name=identity.name or identity.email,
            status=UserStatus.ACTIVE,
            is_admin=is_admin,
            features=json.dumps(self._config.features_for(is_admin)),
            created_at=now,
            updated_at=now,
        )
        session.add(user)
        try:
            await session.commit()
        except IntegrityError:
            # Another instance provisioned the same email first
            await session.rollback()
            return await self._find_by_email(session, identity.email)

        logger.info("Provisioned user %s from Access identity", identity.email)
        return user

    async def _sync_user(
        self,
        session: AsyncSession,
        user: User,
        identity: AccessIdentity,
        is_admin: bool,
    ) -> None:
        changed = False
        if identity.name_provided and identity.name != user.name:
            user.name = identity.name
            changed = True
        if is_admin and not user.is_admin:
            user.is_admin = True
            changed = True
        if not user.feature_list:
            user.features = json.dumps(self._config.features_for(bool(user.is_admin)))
            changed = True
        if user.status == UserStatus.PENDING:
            user.status = UserStatus.ACTIVE
            changed = True
        if changed:
            user.updated_at = utcnow()
            await session.commit()
