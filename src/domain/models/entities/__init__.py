from src.domain.models.entities.enums import UserStatus
from src.domain.models.entities.rate_limit import RateLimitEntry
from src.domain.models.entities.session import Session
from src.domain.models.entities.user import User

__all__ = [
    "RateLimitEntry",
    "Session",
    "User",
    "UserStatus",
]
