"""Time utilities for database models."""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends that drop tzinfo."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def cutoff_before(max_age_seconds: float, now: datetime | None = None) -> datetime:
    """Return the instant ``max_age_seconds`` before ``now`` (default: current time)."""
    reference = as_utc(now) if now is not None else utcnow()
    return reference - timedelta(seconds=max_age_seconds)
