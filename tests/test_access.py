import json

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from src.base.config.auth_config import AuthConfig
from src.base.models.user import AuthFailure, AuthUser
from src.base.models.features import Feature
from src.domain.auth.access import AccessIdentityResolver, identity_from_payload
from src.domain.models.entities.enums import UserStatus
from src.domain.models.entities.user import User
from tests.conftest import ACCESS_ENV, TEAM_DOMAIN, create_user, make_request

ASSERTION = {"cf-access-jwt-assertion": "jwt-1"}


def _resolver(http_client, **env) -> AccessIdentityResolver:
    return AccessIdentityResolver(AuthConfig.from_env({**ACCESS_ENV, **env}), http_client)


async def _user_by_email(db_session, email: str) -> User | None:
    result = await db_session.execute(
        select(User).where(User.email == email).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


class TestIdentityFromPayload:
    def test_email_field_priority(self):
        identity = identity_from_payload(
            {"user_email": "second@example.com", "email": "First@Example.com "}
        )
        assert identity.email == "first@example.com"

    def test_falls_through_empty_candidates(self):
        identity = identity_from_payload(
            {"email": "  ", "user_email": None, "user": "u@example.com"}
        )
        assert identity.email == "u@example.com"

    def test_nested_payload_email(self):
        identity = identity_from_payload(
            {"payload": {"email": "nested@example.com", "name": "Nested"}}
        )
        assert identity.email == "nested@example.com"
        assert identity.name == "Nested"

    def test_name_falls_back_to_raw_email(self):
        identity = identity_from_payload({"login": "Someone@Example.com"})
        assert identity.email == "someone@example.com"
        assert identity.name == "Someone@Example.com"

    def test_rejects_non_email_or_non_object(self):
        assert identity_from_payload({"email": "not-an-email"}) is None
        assert identity_from_payload(["a@example.com"]) is None
        assert identity_from_payload({}) is None


class TestFetchIdentity:
    async def test_disabled_without_configuration(self, http_client, access_provider):
        resolver = AccessIdentityResolver(AuthConfig.from_env({}), http_client)
        assert resolver.enabled is False
        assert await resolver.fetch_identity(make_request(headers=ASSERTION)) is None
        assert access_provider.requests == []

    async def test_no_assertion_header(self, http_client, access_provider):
        resolver = _resolver(http_client)
        assert await resolver.fetch_identity(make_request()) is None
        assert access_provider.requests == []

    async def test_calls_identity_endpoint(self, http_client, access_provider):
        access_provider.identities["jwt-1"] = {"email": "a@example.com", "name": "A"}
        resolver = _resolver(http_client)

        identity = await resolver.fetch_identity(make_request(headers=ASSERTION))

        assert identity.email == "a@example.com"
        sent = access_provider.requests[0]
        assert str(sent.url) == f"https://{TEAM_DOMAIN}/cdn-cgi/access/get-identity"
        assert sent.headers["cf-access-client-id"] == "client-id"
        assert sent.headers["cf-access-client-secret"] == "client-secret"
        assert sent.headers["cf-access-jwt-assertion"] == "jwt-1"

    async def test_non_success_status(self, http_client, access_provider):
        access_provider.status_code = 500
        resolver = _resolver(http_client)
        assert await resolver.fetch_identity(make_request(headers=ASSERTION)) is None

    async def test_malformed_json(self, http_client, access_provider):
        access_provider.identities["jwt-1"] = "{not json"
        resolver = _resolver(http_client)
        assert await resolver.fetch_identity(make_request(headers=ASSERTION)) is None

    @pytest.mark.parametrize(
        "error",
        [httpx.ConnectTimeout("timed out"), httpx.ConnectError("refused")],
    )
    async def test_transport_errors(self, http_client, access_provider, error):
        access_provider.error = error
        resolver = _resolver(http_client)
        assert await resolver.fetch_identity(make_request(headers=ASSERTION)) is None

    async def test_non_ascii_assertion_is_ignored(self, http_client, access_provider):
        resolver = _resolver(http_client)
        request = make_request(headers={"cf-access-jwt-assertion": "café"})

        assert await resolver.fetch_identity(request) is None
        assert access_provider.requests == []

    async def test_non_ascii_assertion_on_endpoint_is_unauthorized(
        self, make_app, access_provider
    ):
        app = make_app(ACCESS_ENV)
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as c:
            resp = await c.get(
                "/api/user",
                headers={"cf-access-jwt-assertion": "café".encode("latin-1")},
            )

        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert access_provider.requests == []


class TestAuthorizeViaAccess:
    async def test_auto_provisions_active_user(
        self, http_client, access_provider, db_session
    ):
        access_provider.identities["jwt-1"] = {"email": "new@example.com", "name": "New"}
        resolver = _resolver(http_client)

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert isinstance(result, AuthUser)
        assert result.email == "new@example.com"
        assert result.status == "active"
        assert result.is_admin is False
        assert result.features == Feature.base_features()
        stored = await _user_by_email(db_session, "new@example.com")
        assert stored.id.startswith("usr_")

    async def test_admin_emails_get_admin_features(
        self, http_client, access_provider, db_session
    ):
        access_provider.identities["jwt-1"] = {"email": "boss@example.com"}
        resolver = _resolver(http_client, ADMIN_EMAILS="Boss@example.com")

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert result.is_admin is True
        assert result.features == Feature.admin_features()

    async def test_allow_list_miss_is_forbidden(
        self, http_client, access_provider, db_session
    ):
        access_provider.identities["jwt-1"] = {"email": "stranger@example.com"}
        resolver = _resolver(http_client, ACCESS_ALLOWED_EMAILS="a@example.com")

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert isinstance(result, AuthFailure)
        assert result.status == 403
        assert await _user_by_email(db_session, "stranger@example.com") is None

    async def test_auto_provision_disabled(self, http_client, access_provider, db_session):
        access_provider.identities["jwt-1"] = {"email": "new@example.com"}
        resolver = _resolver(http_client, ACCESS_AUTO_PROVISION="0")

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert result is None
        assert await _user_by_email(db_session, "new@example.com") is None

    async def test_disabled_user_is_forbidden(
        self, http_client, access_provider, db_session
    ):
        await create_user(db_session, "gone@example.com", status=UserStatus.DISABLED)
        access_provider.identities["jwt-1"] = {"email": "gone@example.com"}
        resolver = _resolver(http_client, ADMIN_EMAILS="gone@example.com")

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert isinstance(result, AuthFailure)
        assert result.status == 403
        stored = await _user_by_email(db_session, "gone@example.com")
        assert stored.status == UserStatus.DISABLED

    async def test_existing_user_is_synced(self, http_client, access_provider, db_session):
        await create_user(
            db_session,
            "pending@example.com",
            name="Old Name",
            status=UserStatus.PENDING,
            features=[],
        )
        access_provider.identities["jwt-1"] = {
            "email": "pending@example.com",
            "name": "New Name",
        }
        resolver = _resolver(http_client, ADMIN_EMAILS="pending@example.com")

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert result.name == "New Name"
        assert result.status == "active"
        assert result.is_admin is True
        assert result.features == Feature.admin_features()

    async def test_sync_never_revokes_admin_or_overwrites_features(
        self, http_client, access_provider, db_session
    ):
        await create_user(
            db_session, "admin@example.com", is_admin=True, features=["ideas"]
        )
        access_provider.identities["jwt-1"] = {"email": "admin@example.com"}
        resolver = _resolver(http_client)

        result = await resolver.authorize_via_access(
            make_request(headers=ASSERTION), db_session
        )

        assert result.is_admin is True
        assert result.features == ["ideas"]
        assert result.name == "Test User"
        stored = await _user_by_email(db_session, "admin@example.com")
        assert json.loads(stored.features) == ["ideas"]
