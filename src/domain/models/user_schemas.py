import datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from src.base.models.user import AuthUser
from src.base.utils.text_utils import normalize_email
from src.base.utils.time_utils import isoformat_utc
from src.domain.models.entities.enums import UserStatus
from src.domain.models.entities.user import User

CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def clean_string_list(value: Any) -> list[str]:
    """Keep trimmed, non-empty string entries; anything that isn't a list is empty."""
    if not isinstance(value, list):
        return []
    return [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]


def _stripped(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class UserAdminCreate(BaseModel):
    model_config = CAMEL_CONFIG

    name: str = ""
    email: str = ""
    features: list[str] = []
    is_admin: bool = False
    is_approver: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str:
        return _stripped(value)

    @field_validator("email", mode="before")
    @classmethod
    def _email(cls, value: Any) -> str:
        return normalize_email(value)

    @field_validator("features", mode="before")
    @classmethod
    def _features(cls, value: Any) -> list[str]:
        return clean_string_list(value)

    @field_validator("is_admin", "is_approver", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)


class UserAdminUpdate(BaseModel):
    """Partial admin edit. Fields left as None are not touched."""

    model_config = CAMEL_CONFIG

    name: str | None = None
    features: list[str] | None = None
    is_admin: bool | None = None
    is_approver: bool | None = None
    status: UserStatus | None = None
    resend_invite: bool = False

    @model_validator(mode="before")
    @classmethod
    def _drop_unusable(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key in ("isAdmin", "is_admin", "isApprover", "is_approver"):
            if key in cleaned and not isinstance(cleaned[key], bool):
                del cleaned[key]
        status = cleaned.get("status")
        valid_statuses = {member.value for member in UserStatus}
        if not isinstance(status, str) or status not in valid_statuses:
            cleaned.pop("status", None)
        if not cleaned.get("features"):
            cleaned.pop("features", None)
        return cleaned

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str | None:
        return _stripped(value) or None

    @field_validator("features", mode="before")
    @classmethod
    def _features(cls, value: Any) -> list[str]:
        return clean_string_list(value)

    @field_validator("resend_invite", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)


class ProfileUpdate(BaseModel):
    """Self-service profile edit. ``avatar`` set to null or "" clears it."""

    name: str | None = None
    avatar: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _drop_unusable(cls, data: Any) -> Any:
        if isinstance(data, dict) and "avatar" in data:
            if data["avatar"] is not None and not isinstance(data["avatar"], str):
                data = {k: v for k, v in data.items() if k != "avatar"}
        return data

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, value: Any) -> str | None:
        return _stripped(value) or None

    @property
    def avatar_given(self) -> bool:
        return "avatar" in self.model_fields_set


class UserAdminResponse(BaseModel):
    model_config = CAMEL_CONFIG

    id: str
    email: str
    name: str
    status: str
    is_admin: bool
    is_approver: bool
    avatar_url: str | None = None
    features: list[str]
    invite_pending: bool
    invite_expires_at: datetime.datetime | None = None
    last_login_at: datetime.datetime | None = None
    created_at: datetime.datetime | None = None

    @field_serializer("invite_expires_at", "last_login_at", "created_at")
    def _utc_iso(self, value: datetime.datetime | None) -> str | None:
        return isoformat_utc(value) if value is not None else None

    @classmethod
    def from_user(cls, user: User) -> "UserAdminResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            status=(user.status or UserStatus.PENDING).value,
            is_admin=bool(user.is_admin),
            is_approver=bool(user.is_approver),
            avatar_url=user.avatar_url or None,
            features=user.feature_list,
            invite_pending=bool(user.invite_token),
            invite_expires_at=user.invite_expires_at,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class UserUpdateResponse(BaseModel):
    model_config = CAMEL_CONFIG

    ok: bool = True
    user: UserAdminResponse
    invite_resent: bool = False


class CurrentUserResponse(AuthUser):
    ts: datetime.datetime

    @field_serializer("ts")
    def _utc_iso(self, value: datetime.datetime) -> str:
        return isoformat_utc(value)


class ProfileUpdateResponse(BaseModel):
    ok: bool = True
    user: AuthUser
