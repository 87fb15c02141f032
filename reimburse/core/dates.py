"""UTC-anchored calendar date normalization.

Transaction dates are persisted as calendar dates while clients send full
timestamps. Every conversion goes through the UTC calendar components and
the midday anchor below so a date never drifts by a day when it crosses a
timezone boundary.
"""

from datetime import UTC, date, datetime, time

ANCHOR_TIME = time(12, 0, 0, tzinfo=UTC)
STORAGE_FORMAT = "%Y-%m-%d"


def _parse_iso(value: str) -> datetime | date:
    text = value.strip()
    if not text:
        msg = "Date is required"
        raise ValueError(msg)
    if len(text) == len("YYYY-MM-DD"):
        return date.fromisoformat(text)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def to_utc_date(value: date | datetime | str) -> date:
    """Return the UTC calendar date of a date, datetime or ISO-8601 string.

    Aware datetimes are converted to UTC first; naive ones are taken as UTC.
    """
    if isinstance(value, str):
        value = _parse_iso(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return date(value.year, value.month, value.day)
    if isinstance(value, date):
        return value
    msg = f"Unsupported date value: {value!r}"
    raise TypeError(msg)


def anchor(value: date | datetime | str) -> datetime:
    """Return the value's UTC calendar date pinned to 12:00 UTC."""
    return datetime.combine(to_utc_date(value), ANCHOR_TIME)


def to_storage_date_string(value: date | datetime | str) -> str:
    """Normalize a date-like value to ``YYYY-MM-DD`` using UTC calendar components."""
    return anchor(value).strftime(STORAGE_FORMAT)


def from_storage_date_string(value: str) -> datetime:
    """Inverse of :func:`to_storage_date_string`: a stored date at the UTC midday anchor."""
    return datetime.combine(datetime.strptime(value, STORAGE_FORMAT).date(), ANCHOR_TIME)


def to_storage_date(value: date | datetime | str) -> date:
    """Return the ``date`` object written to the database column."""
    return anchor(value).date()


def format_display_date(value: date | datetime | str | None) -> str:
    """Format a date for humans (``March 1, 2024``); ``N/A`` when missing."""
    if value is None:
        return "N/A"
    stable = anchor(value)
    return f"{stable:%B} {stable.day}, {stable.year}"
