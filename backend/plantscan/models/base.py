"""
Shared model helpers

Common column types and time helpers used by every table model.
"""
from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.types import TypeDecorator
from sqlmodel import SQLModel


def utc_now() -> datetime:
    """
    Current time in UTC

    Returns:
        timezone-aware datetime
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to a naive datetime, convert an aware one to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime column

    Every value is stored as UTC. Backends that drop the offset on the way
    back (SQLite) get it re-attached, so comparisons with ``utc_now()``
    never mix naive and aware datetimes.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[no-untyped-def]
        return as_utc(value)

    def process_result_value(self, value, dialect):  # type: ignore[no-untyped-def]
        return as_utc(value)


__all__ = ["SQLModel", "UTCDateTime", "as_utc", "utc_now"]
