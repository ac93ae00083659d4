from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from src.base.config.database import Base


class RateLimitEntry(Base):
    __tablename__ = "rate_limits"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    count: Mapped[int] = mapped_column(default=0)
    # Epoch milliseconds
    window_start: Mapped[int] = mapped_column(BigInteger, index=True)
