"""
Time utilities.

The engine runs on integer seconds supplied by the caller. These helpers
convert between that clock and wall-clock datetimes at the edges (API, CLI,
log records).
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC time as a naive datetime (for JSON serialization compatibility).

    Returns:
        Current UTC time as a naive datetime object
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def now_seconds() -> int:
    """Current UTC time as integer epoch seconds."""
    return int(datetime.now(timezone.utc).timestamp())


def to_epoch_seconds(value) -> int:
    """
    Convert an int, float, ISO-8601 string or datetime to epoch seconds.

    Naive datetimes are treated as UTC.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp())
    raise ValueError(f"not a timestamp: {value!r}")


def from_epoch_seconds(seconds: int) -> datetime:
    """Epoch seconds to a naive UTC datetime."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
