"""UTC timestamp helpers.

Older documents may carry naive timestamps; they are treated as UTC so they
sort alongside timezone-aware ones.
"""
from datetime import datetime, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> datetime:
    """Timezone-aware UTC datetime for sorting; missing values sort oldest."""
    if value is None:
        return EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
