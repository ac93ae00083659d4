"""
Lazy schema setup and default-owner provisioning.

Runs at the start of every authorized request. Schema work is done once per
instance; the owner reconcile is cheap (one indexed read) and runs each time
so an owner that was edited into an unusable state heals itself.
"""

import json
import logging

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.base.auth.crypto import generate_token, hash_token, random_id
from src.base.config.auth_config import AuthConfig
from src.base.config.database import Base
from src.base.models.features import Feature
from src.base.utils.text_utils import normalize_email
from src.base.utils.time_utils import utcnow
from src.domain.models.entities import RateLimitEntry, Session, User, UserStatus
from src.domain.services.invite_notifier import InviteNotifier, deliver_invite

logger = logging.getLogger(__name__)

# Additive columns for databases created before these fields existed
USER_ALTERS = (
    "ALTER TABLE users ADD COLUMN invite_token TEXT",
    "ALTER TABLE users ADD COLUMN invite_expires_at TIMESTAMP",
    "ALTER TABLE users ADD COLUMN features TEXT",
    "ALTER TABLE users ADD COLUMN status VARCHAR(16) DEFAULT 'pending'",
    "ALTER TABLE users ADD COLUMN is_admin BOOLEAN DEFAULT FALSE",
    "ALTER TABLE users ADD COLUMN last_login_at TIMESTAMP",
    "ALTER TABLE users ADD COLUMN is_approver BOOLEAN DEFAULT FALSE",
    "ALTER TABLE users ADD COLUMN avatar_url TEXT",
)

AUTH_TABLES = (User.__table__, Session.__table__, RateLimitEntry.__table__)


class DefaultOwnerBootstrapper:
    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        config: AuthConfig,
        notifier: InviteNotifier,
    ):
        self._engine = engine
        self._session_factory = session_factory
        self._config = config
        self._notifier = notifier
        self._schema_ready = False

    async def ensure_default_owner(self) -> None:
        """Idempotent. Never raises: failures are logged and the request carries on."""
        try:
            await self._ensure_schema()
            owner_email = normalize_email(self._config.default_owner_email)
            if not owner_email:
                return
            await self._ensure_owner(owner_email)
        except Exception:
            logger.warning("Default owner bootstrap failed", exc_info=True)

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, tables=list(AUTH_TABLES))
        for statement in USER_ALTERS:
            try:
                async with self._engine.begin() as conn:
                    await conn.execute(text(statement))
            except (OperationalError, ProgrammingError):
                # Column already present
                continue
        self._schema_ready = True
        logger.info("Auth schema ensured")

    @property
    def _owner_name(self) -> str:
        return self._config.default_owner_name or "Owner"

    async def _ensure_owner(self, email: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            owner = result.scalar_one_or_none()
            if owner is None:
                await self._create_owner(session, email)
            else:
                await self._reconcile_owner(session, owner)

    async def _create_owner(self, session: AsyncSession, email: str) -> None:
        token = generate_token()
        now = utcnow()
        session.add(
            User(
                id=random_id("usr_"),
                email=email,
                name=self._owner_name,
                status=UserStatus.PENDING,
                is_admin=True,
                is_approver=True,
                features=json.dumps(Feature.admin_features()),
                invite_token=hash_token(token),
                invite_expires_at=None,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.info("Default owner %s was created concurrently", email)
            return

        logger.info("Created default owner %s with a pending invite", email)
        await deliver_invite(self._notifier, email, self._owner_name, token)

    async def _reconcile_owner(self, session: AsyncSession, owner: User) -> None:
        changed: list[str] = []
        if not owner.is_admin:
            owner.is_admin = True
            changed.append("is_admin")
        if not owner.is_approver:
            owner.is_approver = True
            changed.append("is_approver")
        if not (owner.name or "").strip():
            owner.name = self._owner_name
            changed.append("name")
        if not owner.feature_list:
            owner.features = json.dumps(Feature.admin_features())
            changed.append("features")
        if owner.status == UserStatus.DISABLED:
            owner.status = UserStatus.PENDING
            changed.append("status")

        token = None
        if not owner.password_hash and not owner.invite_token:
            token = generate_token()
            owner.invite_token = hash_token(token)
            owner.invite_expires_at = None
            changed.append("invite")

        if not changed:
            return

        owner.updated_at = utcnow()
        await session.commit()
        logger.warning(
            "Default owner %s reconciled: %s", owner.email, ", ".join(changed)
        )
        if token:
            await deliver_invite(self._notifier, owner.email, owner.name, token)
