from collections.abc import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.base.config.auth_config import AuthConfig
from src.domain.auth.authorizer import RequestAuthorizer
from src.domain.auth.bootstrap import DefaultOwnerBootstrapper
from src.domain.auth.rate_limit import RateLimiter
from src.domain.auth.sessions import SessionManager
from src.domain.services.user_service import UserService


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a request-scoped session from the app's session factory."""
    async with request.app.state.db_session_factory() as session:
        yield session


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_authorizer(request: Request) -> RequestAuthorizer:
    """Return the singleton RequestAuthorizer instance from app state."""
    return request.app.state.authorizer


def get_bootstrapper(request: Request) -> DefaultOwnerBootstrapper:
    return request.app.state.bootstrapper


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service
