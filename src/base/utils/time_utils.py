import datetime
import time


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, matching what SQLite hands back for DateTime columns."""
    return datetime.datetime.now(datetime.UTC).replace(tzinfo=None)


def now_ms() -> int:
    return int(time.time() * 1000)


def isoformat_utc(value: datetime.datetime) -> str:
    """ISO 8601 in UTC with millisecond precision and a trailing Z."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.UTC).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"
