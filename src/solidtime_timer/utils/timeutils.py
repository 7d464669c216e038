"""Timestamp and duration helpers."""

from datetime import datetime, timedelta, timezone

WIRE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_wire_timestamp(moment: datetime | None = None) -> str:
    """Format a datetime the way the service expects it on the wire.

    Args:
        moment: Datetime to format. Naive values are taken as UTC.
            Defaults to now.

    Returns:
        Timestamp like ``2024-01-01T12:00:00Z`` (no fractional seconds).
    """
    if moment is None:
        moment = utc_now()
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(WIRE_FORMAT)


def parse_wire_timestamp(value: str) -> datetime:
    """Parse a service timestamp into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_duration(duration: timedelta) -> str:
    """Format a duration as ``HH:MM:SS``.

    Hours are not wrapped at 24. Negative durations render as ``00:00:00``.
    """
    total_seconds = int(duration.total_seconds())
    if total_seconds < 0:
        return "00:00:00"
    hours, remainder = divmod(total_seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
