"""Custom Column Types - timezone-safe datetimes across PostgreSQL and SQLite.

Invariants:
    - Values written are converted to UTC; naive values are rejected
    - Values read are always timezone-aware UTC, whatever the backend returns

Design Decisions:
    - TypeDecorator over DateTime(timezone=True): SQLite drops the offset and hands back
      naive datetimes, which cannot be compared with the aware clock values used everywhere
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, TypeDecorator


class UTCDateTime(TypeDecorator):
    """DateTime that stores UTC and always loads aware UTC values."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
