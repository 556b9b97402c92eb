import math
from datetime import datetime, timezone

from sqlalchemy import DateTime, Float
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back timezone-aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return value.replace(tzinfo=timezone.utc)


class NaNFloat(TypeDecorator):
    """
    Float column that lets NaN survive a round trip.
    SQLite stores NaN as NULL, so NULL is read back as NaN.
    """

    impl = Float
    cache_ok = True

    def process_result_value(self, value, dialect):
        if value is None:
            return math.nan
        return float(value)
