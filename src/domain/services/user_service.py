import datetime
import json
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.auth.crypto import (
    generate_token,
    hash_password,
    hash_token,
    random_id,
    verify_password,
)
from src.base.config.auth_config import AuthConfig
from src.base.utils.time_utils import utcnow
from src.domain.auth.sessions import SessionManager
from src.domain.models.entities.enums import UserStatus
from src.domain.models.entities.user import User
from src.domain.services.invite_notifier import InviteNotifier, deliver_invite

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
MAX_AVATAR_LENGTH = 400_000


def invite_link(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}?invite={token}"


class UserService:
    """
    Account lifecycle: invites, credentials, profile and admin edits.

    Failures are signalled with ``ValueError(<code>)``; routes translate the
    codes into HTTP responses.
    """

    def __init__(
        self,
        config: AuthConfig,
        sessions: SessionManager,
        notifier: InviteNotifier,
    ):
        self._config = config
        self._sessions = sessions
        self._notifier = notifier

    @property
    def _invite_ttl(self) -> datetime.timedelta:
        return datetime.timedelta(hours=self._config.invite_ttl_hours)

    async def get_user(self, session: AsyncSession, user_id: str) -> User | None:
        return await session.get(User, user_id, populate_existing=True)

    async def find_by_email(self, session: AsyncSession, email: str) -> User | None:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_by_invite_token(
        self, session: AsyncSession, token: str
    ) -> User | None:
        result = await session.execute(
            select(User).where(User.invite_token == hash_token(token))
        )
        return result.scalar_one_or_none()

    async def list_users(self, session: AsyncSession) -> list[User]:
        """Return all users, newest first."""
        result = await session.execute(
            select(User).order_by(User.created_at.desc(), User.id)
        )
        return list(result.scalars().all())

    async def authenticate(
        self, session: AsyncSession, email: str, password: str
    ) -> User:
        """Verify credentials and record the login.

        Raises ValueError("invalid_credentials") for unknown users, users
        without a password and wrong passwords.
        Raises ValueError("account_disabled") for disabled users.
        """
        user = await self.find_by_email(session, email)
        if user is None or not user.password_hash:
            raise ValueError("invalid_credentials")
        if user.is_disabled:
            raise ValueError("account_disabled")
        if not verify_password(password, user.password_hash):
            logger.warning("Failed login for %s", email)
            raise ValueError("invalid_credentials")

        now = utcnow()
        user.last_login_at = now
        if user.status == UserStatus.PENDING:
            user.status = UserStatus.ACTIVE
        await session.commit()
        logger.info("User %s logged in", user.id)
        return user

    async def accept_invite(
        self,
        session: AsyncSession,
        token: str,
        password: str,
        name: str | None = None,
    ) -> User:
        """Redeem an invite token: set the password and activate the account.

        Raises ValueError("invalid_invite"), ValueError("invite_expired") or
        ValueError("account_disabled").
        """
        user = await self.find_by_invite_token(session, token)
        if user is None:
            raise ValueError("invalid_invite")
        now = utcnow()
        if user.invite_expires_at is not None and user.invite_expires_at < now:
            raise ValueError("invite_expired")
        if user.is_disabled:
            raise ValueError("account_disabled")

        user.password_hash = hash_password(password)
        user.invite_token = None
        user.invite_expires_at = None
        user.status = UserStatus.ACTIVE
        if name:
            user.name = name
        user.updated_at = now
        user.last_login_at = now
        await session.commit()
        logger.info("Invite accepted by user %s", user.id)
        return user

    async def change_password(
        self,
        session: AsyncSession,
        user_id: str,
        current_password: str,
        new_password: str,
    ) -> User:
        """Set a new password and revoke every existing session of the user.

        Raises ValueError("user_not_found"), ValueError("account_disabled"),
        ValueError("current_password_required") or
        ValueError("current_password_incorrect").
        """
        user = await self.get_user(session, user_id)
        if user is None:
            raise ValueError("user_not_found")
        if user.is_disabled:
            raise ValueError("account_disabled")
        if user.password_hash:
            if not current_password:
                raise ValueError("current_password_required")
            if not verify_password(current_password, user.password_hash):
                raise ValueError("current_password_incorrect")

        user.password_hash = hash_password(new_password)
        user.status = UserStatus.ACTIVE
        user.invite_token = None
        user.invite_expires_at = None
        user.updated_at = utcnow()
        await self._sessions.destroy_user_sessions(session, user.id)
        logger.info("Password changed for user %s", user.id)
        return user

    async def update_profile(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        name: str | None = None,
        avatar: str | None = None,
        avatar_given: bool = False,
    ) -> User:
        """Raises ValueError("no_changes") or ValueError("user_not_found")."""
        if not name and not avatar_given:
            raise ValueError("no_changes")
        user = await self.get_user(session, user_id)
        if user is None:
            raise ValueError("user_not_found")
        if name:
            user.name = name
        if avatar_given:
            user.avatar_url = avatar or None
        user.updated_at = utcnow()
        await session.commit()
        return user

    async def invite_user(
        self,
        session: AsyncSession,
        *,
        name: str,
        email: str,
        features: list[str],
        is_admin: bool,
        is_approver: bool,
        base_url: str,
    ) -> tuple[User, bool]:
        """Invite a new user, or re-invite a disabled one.

        Returns:
            The user and whether a new row was created.

        Raises ValueError("user_exists") if a non-disabled user has the email.
        """
        existing = await self.find_by_email(session, email)
        if existing is not None and not existing.is_disabled:
            raise ValueError("user_exists")

        token = generate_token()
        now = utcnow()
        if existing is None:
            user = User(id=random_id("usr_"), email=email, created_at=now)
            session.add(user)
        else:
            user = existing
        user.name = name
        user.features = json.dumps(features)
        user.status = UserStatus.PENDING
        user.is_admin = is_admin
        user.is_approver = is_approver
        user.invite_token = hash_token(token)
        user.invite_expires_at = now + self._invite_ttl
        user.updated_at = now
        await session.commit()

        logger.info(
            "%s user %s", "Invited" if existing is None else "Re-invited", user.id
        )
        await deliver_invite(
            self._notifier, email, name, token, invite_link(base_url, token)
        )
        return user, existing is None

    async def update_user(
        self,
        session: AsyncSession,
        user_id: str,
        *,
        name: str | None = None,
        features: list[str] | None = None,
        is_admin: bool | None = None,
        is_approver: bool | None = None,
        status: UserStatus | None = None,
        resend_invite: bool = False,
        base_url: str = "",
    ) -> tuple[User, bool]:
        """Apply an admin edit. Disabling revokes all sessions of the user.

        Returns:
            The user and whether a fresh invite was sent.

        Raises ValueError("user_not_found").
        """
        user = await self.get_user(session, user_id)
        if user is None:
            raise ValueError("user_not_found")

        changed = False
        if name:
            user.name = name
            changed = True
        if features is not None:
            user.features = json.dumps(features)
            changed = True
        if is_admin is not None:
            user.is_admin = is_admin
            changed = True
        if is_approver is not None:
            user.is_approver = is_approver
            changed = True
        if status is not None:
            user.status = status
            changed = True

        token = None
        if resend_invite:
            token = generate_token()
            user.invite_token = hash_token(token)
            user.invite_expires_at = utcnow() + self._invite_ttl
            changed = True

        if not changed:
            return user, False

        user.updated_at = utcnow()
        if status == UserStatus.DISABLED:
            await self._sessions.destroy_user_sessions(session, user.id)
        else:
            await session.commit()
        logger.info("Updated user %s", user.id)

        if token:
            await deliver_invite(
                self._notifier, user.email, user.name, token, invite_link(base_url, token)
            )
        return user, token is not None

    async def disable_user(self, session: AsyncSession, user_id: str) -> User:
        """Disable a user, drop their invite and revoke all sessions.

        Raises ValueError("user_not_found").
        """
        user = await self.get_user(session, user_id)
        if user is None:
            raise ValueError("user_not_found")
        user.status = UserStatus.DISABLED
        user.invite_token = None
        user.invite_expires_at = None
        user.updated_at = utcnow()
        await self._sessions.destroy_user_sessions(session, user.id)
        logger.info("Disabled user %s", user.id)
        return user
