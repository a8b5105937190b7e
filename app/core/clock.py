"""UTC helpers shared by sessions and location leases."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """SQLite returns naive datetimes even for timezone=True columns."""
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
