import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.base.config.auth_config import AuthConfig
from src.base.config.database import close_db, init_db
from src.domain.auth.access import AccessIdentityResolver
from src.domain.auth.authorizer import RequestAuthorizer
from src.domain.auth.bootstrap import DefaultOwnerBootstrapper
from src.domain.auth.rate_limit import RateLimiter
from src.domain.auth.sessions import SessionManager
from src.domain.services.invite_notifier import InviteNotifier, LoggingInviteNotifier
from src.domain.services.user_service import UserService

logger = logging.getLogger(__name__)


def configure_services(
    app: FastAPI,
    engine: AsyncEngine,
    session_factory: async_sessionmaker[AsyncSession],
    config: AuthConfig,
    http_client: httpx.AsyncClient,
    notifier: InviteNotifier | None = None,
) -> None:
    """Wire the auth components onto app.state."""
    notifier = notifier or LoggingInviteNotifier()
    sessions = SessionManager(config)
    bootstrapper = DefaultOwnerBootstrapper(engine, session_factory, config, notifier)
    access = AccessIdentityResolver(config, http_client)

    app.state.db_engine = engine
    app.state.db_session_factory = session_factory
    app.state.auth_config = config
    app.state.invite_notifier = notifier
    app.state.session_manager = sessions
    app.state.bootstrapper = bootstrapper
    app.state.rate_limiter = RateLimiter(
        session_factory, fail_open=config.rate_limit_fail_open
    )
    app.state.authorizer = RequestAuthorizer(config, bootstrapper, sessions, access)
    app.state.user_service = UserService(config, sessions, notifier)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Centralized initialization and teardown for app services."""
    logger.info("Starting application lifespan...")

    engine, session_factory = await init_db()
    config = AuthConfig.from_env()
    http_client = httpx.AsyncClient(timeout=config.access_timeout_seconds)

    logger.info("Initializing services...")
    configure_services(app, engine, session_factory, config, http_client)
    if config.dev_bypass_active:
        logger.warning("Unauthenticated dev access is enabled")
    if not config.access_configured:
        logger.info("SSO identity provider not configured; session auth only")
    logger.info("Services initialized.")

    yield  # --- Application runs here ---

    await http_client.aclose()
    await close_db(engine)
    logger.info("Application shutdown complete.")
