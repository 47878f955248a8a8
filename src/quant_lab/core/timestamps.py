"""Timestamp parsing and bucketing utilities."""

from datetime import UTC, datetime

SECONDS_PER_MINUTE = 60
SECONDS_PER_DAY = 86_400


def parse_timestamp(value: str) -> int:
    """Parse a date string or raw integer into a Unix timestamp.

    Accept ISO 8601 date strings (``2024-01-01``, ``2024-01-01T12:00:00``)
    or raw integer Unix timestamps.

    Args:
        value: Date string or integer timestamp.

    Returns:
        Unix timestamp in seconds.

    Raises:
        ValueError: If the value cannot be parsed.

    """
    try:
        return int(value)
    except ValueError:
        pass

    for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%SZ"):
        try:
            dt = datetime.strptime(value, fmt).replace(tzinfo=UTC)
            return int(dt.timestamp())
        except ValueError:
            continue

    msg = f"Cannot parse timestamp: {value!r}. Use ISO 8601 (YYYY-MM-DD) or a Unix timestamp."
    raise ValueError(msg)


def day_key(timestamp: int) -> str:
    """Return the UTC calendar date (``YYYY-MM-DD``) of a Unix timestamp."""
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%d")


def bucket_start(timestamp: int, interval_min: int) -> int:
    """Return the start of the ``interval_min`` bucket containing ``timestamp``."""
    width = interval_min * SECONDS_PER_MINUTE
    return timestamp - timestamp % width


def format_timestamp(timestamp: int) -> str:
    """Format a Unix timestamp as an ISO 8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
