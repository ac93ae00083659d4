import json

import httpx
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

import src.domain.models.entities  # noqa: F401
from src.app import create_app
from src.base.auth.auth_core import SESSION_COOKIE
from src.base.auth.crypto import hash_password, random_id
from src.base.config.auth_config import AuthConfig
from src.base.config.database import (
    Base,
    create_engine_for_url,
    create_session_factory,
)
from src.base.core.lifespan import configure_services
from src.base.utils.time_utils import utcnow
from src.domain.auth.rate_limit import RateLimiter
from src.domain.models.entities.enums import UserStatus
from src.domain.models.entities.user import User

XHR = {"X-Requested-With": "XMLHttpRequest"}
TEAM_DOMAIN = "team.example.com"
ACCESS_ENV = {
    "ACCESS_TEAM_DOMAIN": TEAM_DOMAIN,
    "ACCESS_CLIENT_ID": "client-id",
    "ACCESS_CLIENT_SECRET": "client-secret",
}


class RecordingNotifier:
    """Captures invite tokens instead of delivering them."""

    def __init__(self):
        self.sent: list[dict] = []

    async def send_invite(self, email, name, token, link=None):
        self.sent.append({"email": email, "name": name, "token": token, "link": link})

    def last_token_for(self, email: str) -> str | None:
        for entry in reversed(self.sent):
            if entry["email"] == email:
                return entry["token"]
        return None


class FakeAccessProvider:
    """Identity endpoint served through httpx.MockTransport.

    ``identities`` maps an assertion header value to the JSON payload (or raw
    text) the endpoint returns for it.
    """

    def __init__(self):
        self.identities: dict[str, object] = {}
        self.status_code = 200
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "nope"})
        payload = self.identities.get(request.headers.get("cf-access-jwt-assertion"))
        if payload is None:
            return httpx.Response(403, json={"error": "unknown assertion"})
        if isinstance(payload, str):
            return httpx.Response(200, text=payload)
        return httpx.Response(200, json=payload)


def cookie_header(**cookies: str) -> dict[str, str]:
    return {"Cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


def set_cookie_value(response: httpx.Response, name: str) -> str | None:
    """Value of a Set-Cookie header by name; None if the header is absent."""
    for header in response.headers.get_list("set-cookie"):
        key, _, rest = header.partition("=")
        if key.strip() == name:
            return rest.split(";", 1)[0].strip('"')
    return None


def set_cookie_header(response: httpx.Response, name: str) -> str | None:
    for header in response.headers.get_list("set-cookie"):
        if header.partition("=")[0].strip() == name:
            return header
    return None


def make_request(
    method: str = "GET",
    headers: dict[str, str] | None = None,
    path: str = "/api/user",
) -> Request:
    raw_headers = [
        (key.lower().encode("latin-1"), value.encode("latin-1"))
        for key, value in (headers or {}).items()
    ]
    return Request(
        {
            "type": "http",
            "method": method,
            "path": path,
            "root_path": "",
            "scheme": "http",
            "query_string": b"",
            "headers": raw_headers,
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }
    )


async def create_user(
    session: AsyncSession,
    email: str,
    *,
    password: str | None = None,
    name: str = "Test User",
    status: UserStatus = UserStatus.ACTIVE,
    is_admin: bool = False,
    is_approver: bool = False,
    features: list[str] | None = None,
) -> User:
    now = utcnow()
    user = User(
        id=random_id("usr_"),
        email=email,
        name=name,
        password_hash=hash_password(password) if password else None,
        status=status,
        is_admin=is_admin,
        is_approver=is_approver,
        features=json.dumps(features if features is not None else ["calendar"]),
        created_at=now,
        updated_at=now,
    )
    session.add(user)
    await session.commit()
    return user


async def login(client: AsyncClient, email: str, password: str) -> str:
    """Log in through the API and return the session token."""
    resp = await client.post(
        "/api/auth", json={"email": email, "password": password}, headers=XHR
    )
    assert resp.status_code == 200, resp.text
    token = set_cookie_value(resp, SESSION_COOKIE)
    assert token
    return token


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
async def db_session(db_session_factory):
    async with db_session_factory() as session:
        yield session


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def access_provider():
    return FakeAccessProvider()


@pytest.fixture
async def http_client(access_provider):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(access_provider.handler)
    ) as c:
        yield c


@pytest.fixture
def make_app(db_engine, db_session_factory, notifier, http_client):
    def factory(env: dict[str, str] | None = None) -> FastAPI:
        config = AuthConfig.from_env(env or {})
        test_app = create_app()
        configure_services(
            test_app, db_engine, db_session_factory, config, http_client, notifier
        )
        # No random background cleanup during tests
        test_app.state.rate_limiter = RateLimiter(
            db_session_factory,
            fail_open=config.rate_limit_fail_open,
            rng=lambda: 1.0,
        )
        return test_app

    return factory


@pytest.fixture
def auth_env() -> dict[str, str]:
    """Environment for the app under test; override per module."""
    return {}


@pytest.fixture
def app(make_app, auth_env):
    return make_app(auth_env)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c
