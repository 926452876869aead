"""Reference clock and calendar helpers.

Calendar days are taken from the server's reference clock
(``reference_timezone``), never from the user's timezone. Weeks start on
Sunday.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from habitz.config import get_settings


def reference_tz() -> ZoneInfo:
    """Timezone of the server reference clock."""
    return ZoneInfo(get_settings().reference_timezone)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_date(dt: datetime | None = None) -> date:
    """Calendar day of ``dt`` (default: now) on the reference clock.

    Naive datetimes are taken as UTC.
    """
    if dt is None:
        dt = utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(reference_tz()).date()


def week_start(d: date) -> date:
    """Sunday of the week containing ``d``."""
    # date.weekday(): Monday=0 .. Sunday=6
    return d - timedelta(days=(d.weekday() + 1) % 7)


def week_days(d: date) -> list[date]:
    """The seven days Sun..Sat of the week containing ``d``."""
    start = week_start(d)
    return [start + timedelta(days=i) for i in range(7)]


def start_of_day(d: date) -> datetime:
    """Midnight at the start of ``d`` on the reference clock."""
    return datetime.combine(d, time.min, tzinfo=reference_tz())


def as_aware(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt
