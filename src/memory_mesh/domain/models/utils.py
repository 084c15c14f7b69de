"""Utility functions for domain models."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Get the current UTC datetime with timezone awareness."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with stored timestamps."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def from_epoch(value: float) -> datetime:
    """Convert epoch seconds as stored in Neo4j back to an aware datetime."""
    return datetime.fromtimestamp(value, UTC)
