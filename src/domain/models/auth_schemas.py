from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from src.base.models.user import AuthUser


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""

    @field_validator("email", "password", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class InviteAcceptRequest(BaseModel):
    token: str = ""
    password: str = ""
    name: str = ""

    @field_validator("token", "password", "name", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("token", "name")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    current_password: str = ""
    new_password: str = ""

    @field_validator("current_password", "new_password", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class AuthResponse(BaseModel):
    ok: bool = True
    user: AuthUser


class OkResponse(BaseModel):
    ok: bool = True


class PasswordChangeResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ok: bool = True
    has_password: bool = True
