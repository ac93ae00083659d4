import os
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from src.base.models.features import Feature
from src.base.utils.env_utils import (
    is_deployed_environment,
    is_flag_set,
    parse_csv,
    parse_email_set,
    parse_feature_list,
    parse_positive_number,
)

DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7
DEFAULT_INVITE_TTL_HOURS = 24 * 7
DEFAULT_DEPLOYMENT_SIGNALS = ("CF_PAGES_URL", "CF_PAGES_BRANCH")


class AuthConfig(BaseModel):
    """Read-only authentication settings, passed explicitly to every auth component."""

    model_config = ConfigDict(frozen=True)

    # Identity provider (SSO)
    access_team_domain: str | None = None
    access_client_id: str | None = None
    access_client_secret: str | None = None
    access_allowed_emails: frozenset[str] = frozenset()
    access_auto_provision: bool = True
    access_require_session: bool = False
    access_timeout_seconds: float = 5.0
    access_default_features: list[str] = Field(default_factory=Feature.base_features)
    access_admin_features: list[str] = Field(default_factory=Feature.admin_features)
    admin_emails: frozenset[str] = frozenset()

    # Sessions and invites
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    invite_ttl_hours: float = DEFAULT_INVITE_TTL_HOURS

    # Default owner bootstrap
    default_owner_email: str | None = None
    default_owner_name: str | None = None

    # Dev bypass
    dev_bypass_requested: bool = False
    deployed: bool = False
    dev_auth_email: str | None = None
    dev_auth_name: str | None = None
    dev_auth_is_admin: bool = False
    dev_auth_is_approver: bool = False
    dev_auth_features: list[str] = Field(default_factory=Feature.base_features)

    # Rate limiting
    login_rate_limit: int = 5
    invite_rate_limit: int = 5
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_fail_open: bool = True

    # Client address for rate-limit keys comes from proxy headers only when set
    trust_proxy_headers: bool = False

    @property
    def access_configured(self) -> bool:
        return bool(
            self.access_team_domain
            and self.access_client_id
            and self.access_client_secret
        )

    @property
    def dev_bypass_active(self) -> bool:
        """Both the explicit flag and a non-deployed environment are required."""
        return self.dev_bypass_requested and not self.deployed

    @property
    def rate_limit_window_ms(self) -> int:
        return self.rate_limit_window_seconds * 1000

    def features_for(self, is_admin: bool) -> list[str]:
        """Default feature set for a newly provisioned SSO user."""
        if is_admin:
            return self.access_admin_features or Feature.admin_features()
        return self.access_default_features or Feature.base_features()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AuthConfig":
        """
        Build the configuration from environment-style key/value pairs.

        Args:
            environ: Mapping to read from (default: os.environ)
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(name)
            if value is None:
                return None
            value = str(value).strip()
            return value or None

        signals = parse_csv(get("DEPLOYMENT_SIGNALS")) or list(DEFAULT_DEPLOYMENT_SIGNALS)

        return cls(
            access_team_domain=get("ACCESS_TEAM_DOMAIN"),
            access_client_id=get("ACCESS_CLIENT_ID"),
            access_client_secret=get("ACCESS_CLIENT_SECRET"),
            access_allowed_emails=parse_email_set(get("ACCESS_ALLOWED_EMAILS")),
            access_auto_provision=get("ACCESS_AUTO_PROVISION") != "0",
            access_require_session=is_flag_set(get("ACCESS_REQUIRE_SESSION")),
            access_timeout_seconds=parse_positive_number(
                get("ACCESS_TIMEOUT_SECONDS"), 5.0
            ),
            access_default_features=parse_feature_list(
                get("ACCESS_DEFAULT_FEATURES"), Feature.base_features()
            ),
            access_admin_features=parse_feature_list(
                get("ACCESS_ADMIN_FEATURES"), Feature.admin_features()
            ),
            admin_emails=parse_email_set(get("ADMIN_EMAILS")),
            session_ttl_seconds=int(
                parse_positive_number(
                    get("SESSION_TTL_SECONDS"), DEFAULT_SESSION_TTL_SECONDS
                )
            ),
            invite_ttl_hours=parse_positive_number(
                get("INVITE_TTL_HOURS"), DEFAULT_INVITE_TTL_HOURS
            ),
            default_owner_email=get("DEFAULT_OWNER_EMAIL"),
            default_owner_name=get("DEFAULT_OWNER_NAME"),
            dev_bypass_requested=is_flag_set(get("ALLOW_UNAUTHENTICATED"))
            or is_flag_set(get("ACCESS_ALLOW_UNAUTHENTICATED")),
            deployed=is_deployed_environment(env, signals),
            dev_auth_email=get("DEV_AUTH_EMAIL"),
            dev_auth_name=get("DEV_AUTH_NAME"),
            dev_auth_is_admin=is_flag_set(get("DEV_AUTH_IS_ADMIN")),
            dev_auth_is_approver=is_flag_set(get("DEV_AUTH_IS_APPROVER")),
            dev_auth_features=parse_feature_list(
                get("DEV_AUTH_FEATURES"), Feature.base_features()
            ),
            login_rate_limit=int(parse_positive_number(get("LOGIN_RATE_LIMIT"), 5)),
            invite_rate_limit=int(parse_positive_number(get("INVITE_RATE_LIMIT"), 5)),
            rate_limit_window_seconds=int(
                parse_positive_number(get("RATE_LIMIT_WINDOW_SECONDS"), 15 * 60)
            ),
            rate_limit_fail_open=not is_flag_set(get("RATE_LIMIT_FAIL_CLOSED")),
            trust_proxy_headers=is_flag_set(get("TRUSTED_PROXY_HEADERS")),
        )
