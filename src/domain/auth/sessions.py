"""
Server-side sessions keyed by the hash of an opaque bearer token.

The plaintext token only ever exists in the cookie handed to the client;
the ``sessions`` table stores its one-way hash.
"""

import datetime
import logging
from typing import Mapping

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.auth.auth_core import SESSION_COOKIE
from src.base.auth.crypto import generate_token, hash_token, random_id
from src.base.config.auth_config import AuthConfig
from src.base.models.user import AuthUser
from src.base.utils.time_utils import utcnow
from src.domain.models.entities.session import Session
from src.domain.models.entities.user import User

logger = logging.getLogger(__name__)


class IssuedSession(BaseModel):
    token: str
    ttl: int


class SessionManager:
    def __init__(self, config: AuthConfig):
        self._ttl = config.session_ttl_seconds

    @property
    def ttl(self) -> int:
        return self._ttl

    async def create_session(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        user_agent: str = "",
        ip: str = "",
    ) -> IssuedSession:
        """Persist a new session and return its token. The token is not retrievable later."""
        token = generate_token(32)
        now = utcnow()
        session.add(
            Session(
                id=random_id("ses_"),
                user_id=user_id,
                token_hash=hash_token(token),
                created_at=now,
                expires_at=now + datetime.timedelta(seconds=self._ttl),
                user_agent=(user_agent or "")[:255],
                ip=ip or None,
            )
        )
        await session.commit()
        logger.info("Created session for user_id=%s", user_id)
        return IssuedSession(token=token, ttl=self._ttl)

    async def authorize_via_session(
        self, session: AsyncSession, cookies: Mapping[str, str]
    ) -> AuthUser | None:
        """
        Resolve the session cookie to its user.

        Expired sessions are deleted on sight; disabled users never authenticate.
        """
        token = cookies.get(SESSION_COOKIE)
        if not token:
            return None

        result = await session.execute(
            select(Session).where(Session.token_hash == hash_token(token))
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None

        if record.expires_at and record.expires_at < utcnow():
            logger.info("Session expired for user_id=%s", record.user_id)
            await self._delete_quietly(session, Session.id == record.id)
            return None

        user = await session.get(User, record.user_id)
        if user is None or user.is_disabled:
            return None
        return user.to_auth_user()

    async def destroy_session(self, session: AsyncSession, token: str | None) -> None:
        """Delete the session behind ``token``; unknown or missing tokens are a no-op."""
        if not token:
            return
        await self._delete_quietly(session, Session.token_hash == hash_token(token))

    async def destroy_user_sessions(self, session: AsyncSession, user_id: str) -> int:
        """Delete every session of a user. Errors propagate to the caller."""
        result = await session.execute(delete(Session).where(Session.user_id == user_id))
        await session.commit()
        removed = result.rowcount or 0
        logger.info("Revoked %d session(s) for user_id=%s", removed, user_id)
        return removed

    async def _delete_quietly(self, session: AsyncSession, condition) -> None:
        try:
            await session.execute(delete(Session).where(condition))
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            logger.warning("Session delete failed", exc_info=True)
