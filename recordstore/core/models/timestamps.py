"""
Canonical timestamp handling for stored records.

Every timestamp column is written as ``YYYY-MM-DD HH:MM:SS`` in UTC, the same
shape SQLite produces for ``CURRENT_TIMESTAMP``. Values read back are restored
to the local display zone as timezone-aware datetimes, so a file copied between
devices in different zones still round-trips to the same instant.
"""

from datetime import datetime, timezone

from recordstore.core.errors import MalformedRecordData

STORE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
STORE_TIMEZONE = timezone.utc


def utc_now() -> datetime:
    """Default store clock."""
    return datetime.now(tz=STORE_TIMEZONE)


def normalize(value: datetime) -> datetime:
    """
    Make a datetime timezone-aware and drop sub-second precision.

    Naive datetimes are interpreted as local time.

    Args:
        value: Datetime to normalize

    Returns:
        Aware datetime truncated to whole seconds
    """
    if value.tzinfo is None:
        value = value.astimezone()
    return value.replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """
    Format a datetime for storage.

    Args:
        value: Datetime in any zone (naive means local time)

    Returns:
        Canonical UTC string
    """
    return normalize(value).astimezone(STORE_TIMEZONE).strftime(STORE_DATE_FORMAT)


def parse_timestamp(text: str) -> datetime:
    """
    Parse a stored timestamp back into local display time.

    Args:
        text: Canonical UTC string as written by format_timestamp()

    Returns:
        Aware datetime in the local zone

    Raises:
        MalformedRecordData: If the text is not in the canonical format
    """
    try:
        stored = datetime.strptime(text, STORE_DATE_FORMAT)
    except (TypeError, ValueError) as e:
        raise MalformedRecordData(
            f"invalid stored timestamp {text!r}: {e}", operation="parse_timestamp"
        ) from e
    return stored.replace(tzinfo=STORE_TIMEZONE).astimezone()
