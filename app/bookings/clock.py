"""UTC time helpers shared by the lifecycle rules."""

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by some drivers) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the beginning of ``day``."""
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
