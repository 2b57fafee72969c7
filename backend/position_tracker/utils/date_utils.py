# backend/position_tracker/utils/date_utils.py
"""
Date utility functions for the Position Tracker.

All calendar arithmetic in the engine is done on UTC days. These helpers
normalize the datetimes coming from the database and the HTTP boundary.

Usage:
    from position_tracker.utils.date_utils import date_range, to_utc_date

    for day in date_range(start_date, end_date):
        ...
"""

from collections.abc import Iterator
from datetime import date, datetime, timedelta, timezone


def date_range(start_date: date, end_date: date) -> Iterator[date]:
    """
    Yield every calendar day from start_date to end_date (both inclusive).

    Weekends and holidays are included; nothing is yielded when
    start_date is after end_date.

    Example:
        >>> list(date_range(date(2024, 1, 1), date(2024, 1, 3)))
        [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
    """
    if start_date > end_date:
        return

    current = start_date
    while True:
        yield current
        # date.max has no successor
        if current == end_date:
            return
        current += timedelta(days=1)


def to_utc_date(value: date | datetime) -> date:
    """
    Reduce a date or datetime to its UTC calendar day.

    Aware datetimes are converted to UTC first; naive datetimes are
    taken to already be in UTC.

    Args:
        value: Date or datetime to normalize

    Returns:
        The UTC calendar day
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to a naive datetime, convert an aware one to UTC.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so values read
    back from it are naive.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_today() -> date:
    """Current calendar day in UTC."""
    return datetime.now(timezone.utc).date()


def parse_flexible_date(value: str) -> datetime:
    """
    Parse an ISO 8601 date/datetime or a Unix timestamp in seconds.

    Args:
        value: e.g. "2024-02-10", "2024-02-10T15:30:00+01:00" or "1707523200"

    Returns:
        Aware datetime in UTC (naive ISO input is taken as UTC)

    Raises:
        ValueError: If the value matches neither format

    Example:
        >>> parse_flexible_date("1707523200")
        datetime(2024, 2, 10, 0, 0, tzinfo=timezone.utc)
    """
    text = value.strip()
    if not text:
        raise ValueError("Empty date value")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"Timestamp out of range: '{value}'") from e

    # fromisoformat does not accept a trailing Z before Python 3.11
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(
            f"Invalid date: '{value}'. Use ISO 8601 (YYYY-MM-DD) or a Unix timestamp"
        ) from e

    try:
        return ensure_utc(parsed)
    except OverflowError as e:
        raise ValueError(f"Date out of range in UTC: '{value}'") from e
