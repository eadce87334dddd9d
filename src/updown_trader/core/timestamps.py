"""Timestamp helpers for recorded ticks, UTC day rollover and CLI output."""

from datetime import UTC, date, datetime


def parse_timestamp(value: str) -> int:
    """Parse a date string or raw integer into a Unix timestamp.

    Accept ISO 8601 date strings (``2024-01-01``, ``2024-01-01T12:00:00``,
    optionally suffixed with ``Z``) or raw integer Unix timestamps.

    Args:
        value: Date string or integer timestamp.

    Returns:
        Unix timestamp in seconds.

    Raises:
        ValueError: If the value cannot be parsed.

    """
    # Try raw integer first
    try:
        return int(value)
    except ValueError:
        pass

    text = value.removesuffix("Z")
    for fmt in ("%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M:%S.%f"):
        try:
            dt = datetime.strptime(text, fmt).replace(tzinfo=UTC)
            return int(dt.timestamp())
        except ValueError:
            continue

    msg = f"Cannot parse timestamp: {value!r}. Use ISO 8601 (YYYY-MM-DD) or a Unix timestamp."
    raise ValueError(msg)


def utc_date(timestamp: int) -> date:
    """Return the UTC calendar date of a Unix timestamp."""
    return datetime.fromtimestamp(timestamp, tz=UTC).date()


def format_timestamp(timestamp: int | None) -> str:
    """Render a Unix timestamp as ``YYYY-MM-DD HH:MM:SS`` UTC, or ``-`` if unset."""
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")
