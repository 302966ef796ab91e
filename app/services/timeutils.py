from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (sqlite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch(value: Any) -> datetime:
    """Seconds when the value has up to 10 digits, milliseconds otherwise; now() when not numeric."""
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return utcnow()
    digits = str(abs(number))
    if len(digits) <= 10:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    return datetime.fromtimestamp(number / 1000, tz=timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)) or str(value).strip().isdigit():
        return from_epoch(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).strip().replace("Z", "+00:00")))
    except ValueError:
        return None
