"""
RFC3339 timestamp formatting with nanosecond-style fractional seconds.
"""

from datetime import datetime, timedelta, timezone


def format_rfc3339_nano(value: datetime) -> str:
    """
    Format a datetime the way Go's time.RFC3339Nano layout does.

    Trailing zeros of the fractional second are trimmed (the dot is dropped
    when nothing remains), UTC is written as "Z" and other offsets as +HH:MM.
    Naive datetimes are treated as UTC.

    Examples:
        >>> format_rfc3339_nano(datetime(2024, 5, 1, 12, 0, 0, 120000, tzinfo=timezone.utc))
        '2024-05-01T12:00:00.12Z'
        >>> format_rfc3339_nano(datetime(2024, 5, 1, 12, 0, 0))
        '2024-05-01T12:00:00Z'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)

    text = value.strftime("%Y-%m-%dT%H:%M:%S")

    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")

    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"

    sign = "+" if offset > timedelta(0) else "-"
    total_minutes = abs(int(offset.total_seconds())) // 60
    hours, minutes = divmod(total_minutes, 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def from_epoch_millis(millis: int) -> datetime:
    """Convert a Kafka timestamp (milliseconds since epoch) to an aware UTC datetime."""
    seconds, remainder = divmod(millis, 1000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=remainder * 1000)
