"""Weekly activity matrix (Sun..Sat) derived from the ledger."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from habitz.dates import week_days
from habitz.db.models import UserCheckIn
from habitz.errors import ExternalServiceError
from habitz.resilience import bounded_store_call

logger = logging.getLogger(__name__)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


@dataclass(frozen=True)
class DayActivity:
    day: date
    name: str
    activity_point: bool = False
    nutrition_point: bool = False

    @property
    def completed(self) -> bool:
        # Partial days never count.
        return self.activity_point and self.nutrition_point


def empty_week(reference_date: date) -> list[DayActivity]:
    """The all-false matrix for the week containing ``reference_date``."""
    return [DayActivity(day=d, name=name) for d, name in zip(week_days(reference_date), DAY_NAMES)]


def build_weekly_activity(
    checkins: Iterable[tuple[date, str]],
    reference_date: date,
) -> list[DayActivity]:
    """Fold ``(checkin_date, type)`` pairs into the Sun..Sat matrix.

    Check-ins outside the week are ignored.
    """
    activity_days: set[date] = set()
    nutrition_days: set[date] = set()
    for checkin_date, checkin_type in checkins:
        if checkin_type == "activity":
            activity_days.add(checkin_date)
        elif checkin_type == "nutrition":
            nutrition_days.add(checkin_date)

    return [
        DayActivity(
            day=day.day,
            name=day.name,
            activity_point=day.day in activity_days,
            nutrition_point=day.day in nutrition_days,
        )
        for day in empty_week(reference_date)
    ]


@bounded_store_call("weekly_activity")
async def _fetch_week(db: AsyncSession, user_id: str, first: date, last: date) -> list[tuple[date, str]]:
    result = await db.execute(
        select(UserCheckIn.checkin_date, UserCheckIn.type).where(
            UserCheckIn.user_id == user_id,
            UserCheckIn.checkin_date >= first,
            UserCheckIn.checkin_date <= last,
        )
    )
    return [(row.checkin_date, row.type) for row in result]


async def compute_weekly_activity(
    db: AsyncSession,
    user_id: str,
    reference_date: date,
) -> list[DayActivity]:
    """Weekly matrix for the user. A failed read degrades to the all-false week."""
    days = week_days(reference_date)
    try:
        rows = await _fetch_week(db, user_id, days[0], days[-1])
    except (SQLAlchemyError, ExternalServiceError):
        logger.warning("Weekly activity read failed for user=%s, returning default week", user_id, exc_info=True)
        return empty_week(reference_date)
    return build_weekly_activity(rows, reference_date)
