import datetime
import json

from sqlalchemy import Enum, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from src.base.config.database import Base
from src.base.models.user import AuthUser
from src.domain.models.entities.enums import UserStatus


def parse_features(value: str | None) -> list[str]:
    """Decode the JSON feature column; anything unreadable is an empty list."""
    if not value:
        return []
    try:
        parsed = json.loads(value)
    except ValueError:
        return []
    if not isinstance(parsed, list):
        return []
    return [entry for entry in parsed if isinstance(entry, str)]


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True)
    name: Mapped[str] = mapped_column(String(255))
    password_hash: Mapped[str | None] = mapped_column(String(255), default=None)
    # One-way hash of the invite token, never the token itself
    invite_token: Mapped[str | None] = mapped_column(
        String(128), index=True, default=None
    )
    invite_expires_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    # JSON encoded list of feature names
    features: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[UserStatus] = mapped_column(
        Enum(
            UserStatus,
            native_enum=False,
            length=16,
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=UserStatus.PENDING,
        server_default=UserStatus.PENDING.value,
    )
    is_admin: Mapped[bool] = mapped_column(default=False, server_default=false())
    is_approver: Mapped[bool] = mapped_column(default=False, server_default=false())
    avatar_url: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(default=None)
    last_login_at: Mapped[datetime.datetime | None] = mapped_column(default=None)

    @property
    def is_disabled(self) -> bool:
        return self.status == UserStatus.DISABLED

    @property
    def feature_list(self) -> list[str]:
        return parse_features(self.features)

    def to_auth_user(self) -> AuthUser:
        return AuthUser(
            id=self.id,
            email=self.email,
            name=self.name,
            is_admin=bool(self.is_admin),
            is_approver=bool(self.is_approver),
            status=(self.status or UserStatus.PENDING).value,
            features=self.feature_list,
            avatar_url=self.avatar_url or None,
            has_password=bool(self.password_hash),
        )
