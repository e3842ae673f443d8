"""Logical-day computation.

A user's "day" is the calendar date in their own UTC offset, not the
server's. The date rolls over `utc_offset` hours after UTC midnight
(for utc_offset=-5 the day changes at 05:00 UTC).
"""

from datetime import UTC, date, datetime, timedelta

DAY_FORMAT = "%Y/%m/%d"


def todays_date(utc_offset: int | None, now: datetime | None = None) -> date:
    """Return today's calendar date for a user at ``utc_offset`` hours.

    Args:
        utc_offset: Whole hours east of UTC. None is treated as UTC.
        now: Current instant (aware or naive UTC); defaults to the wall clock.
    """
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is not None:
        now = now.astimezone(UTC)
    return (now + timedelta(hours=utc_offset or 0)).date()


def format_day(day: date) -> str:
    """Render a logical day as YYYY/MM/DD."""
    return day.strftime(DAY_FORMAT)
